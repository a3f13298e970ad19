"""Entry point: python -m memory_graph"""

from .mcp_server import run

run()
