"""
MCP Server for the Memory Graph
Exposes memory, link and graph operations as tools over stdio.

Setup:
1. Install the package:
   pip install memory-graph

2. Add to the MCP client config:
   {
     "mcpServers": {
       "memory-graph": {
         "command": "memory-graph-mcp",
         "env": {"MEMORY_GRAPH_DIR": "~/.claude_memory"}
       }
     }
   }

Set MEMORY_GRAPH_BACKEND=graph to store memories in CogDB instead of JSON.
"""

import asyncio
import json
import logging
import sys
from functools import partial

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from .config import MemoryGraphConfig, load_config
from .memory import MemoryStore

logger = logging.getLogger(__name__)

SERVER_NAME = "memory-graph"


async def run_sync(func, *args, **kwargs):
    """Run a synchronous function in a thread pool to avoid blocking."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args, **kwargs))


TOOLS = [
    Tool(
        name="save_memory",
        description="Save a value with a key to memory, optionally with tags and expiration",
        inputSchema={
            "type": "object",
            "properties": {
                "key": {"type": "string", "description": "The key to store the value under"},
                "value": {"type": "string", "description": "The value to store"},
                "tags": {"type": "array", "items": {"type": "string"}, "description": "Optional tags for categorization"},
                "expires_in_seconds": {"type": "number", "description": "Optional expiration time in seconds"}
            },
            "required": ["key", "value"]
        }
    ),
    Tool(
        name="recall_memory",
        description="Retrieve a value by key from memory, with optional related memories",
        inputSchema={
            "type": "object",
            "properties": {
                "key": {"type": "string", "description": "The key to retrieve"},
                "include_related": {"type": "boolean", "description": "Include related memories in response"},
                "max_related": {"type": "number", "description": "Maximum number of related memories to return"}
            },
            "required": ["key"]
        }
    ),
    Tool(
        name="list_memories",
        description="List all memory keys, optionally filtered by tag",
        inputSchema={
            "type": "object",
            "properties": {
                "tag": {"type": "string", "description": "Optional tag to filter by"}
            }
        }
    ),
    Tool(
        name="delete_memory",
        description="Delete a memory by key",
        inputSchema={
            "type": "object",
            "properties": {
                "key": {"type": "string", "description": "The key to delete"}
            },
            "required": ["key"]
        }
    ),
    Tool(
        name="list_all_tags",
        description="List all unique tags used across all memories",
        inputSchema={"type": "object", "properties": {}}
    ),
    Tool(
        name="search_memory_content",
        description="Search memory content using fuzzy search",
        inputSchema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The search query"}
            },
            "required": ["query"]
        }
    ),
    Tool(
        name="link_memories",
        description="Create a link between two memories with a relationship type",
        inputSchema={
            "type": "object",
            "properties": {
                "source_key": {"type": "string", "description": "The source memory key"},
                "target_key": {"type": "string", "description": "The target memory key"},
                "relationship_type": {"type": "string", "description": "Type of relationship (e.g., related_to, depends_on)"}
            },
            "required": ["source_key", "target_key", "relationship_type"]
        }
    ),
    Tool(
        name="get_linked_memories",
        description="Get all memories linked from a source memory",
        inputSchema={
            "type": "object",
            "properties": {
                "source_key": {"type": "string", "description": "The source memory key"},
                "relationship_type": {"type": "string", "description": "Optional filter by relationship type"}
            },
            "required": ["source_key"]
        }
    ),
    Tool(
        name="find_related_memories",
        description="Find memories related to a given memory through content, tags, or links",
        inputSchema={
            "type": "object",
            "properties": {
                "memory_key": {"type": "string", "description": "The memory key to find relations for"},
                "include_content": {"type": "boolean", "description": "Include content similarity matches"},
                "include_tags": {"type": "boolean", "description": "Include tag similarity matches"},
                "include_links": {"type": "boolean", "description": "Include direct link matches"},
                "max_results": {"type": "number", "description": "Maximum number of results to return"},
                "min_similarity": {"type": "number", "description": "Minimum similarity threshold"}
            },
            "required": ["memory_key"]
        }
    ),
    Tool(
        name="find_memory_path",
        description="Find the shortest path between two memories through their links",
        inputSchema={
            "type": "object",
            "properties": {
                "from_key": {"type": "string", "description": "Starting memory key"},
                "to_key": {"type": "string", "description": "Target memory key"}
            },
            "required": ["from_key", "to_key"]
        }
    ),
    Tool(
        name="search_by_relationship",
        description="Search for memories based on relationship patterns",
        inputSchema={
            "type": "object",
            "properties": {
                "pattern": {"type": "string", "description": 'Pattern in format "source relationship target" (use * for wildcards)'}
            },
            "required": ["pattern"]
        }
    ),
    Tool(
        name="find_memories_within_degrees",
        description="Find all memories within N degrees of separation from a starting memory",
        inputSchema={
            "type": "object",
            "properties": {
                "start_key": {"type": "string", "description": "Starting memory key"},
                "max_degrees": {"type": "number", "description": "Maximum degrees of separation to search"},
                "relationship_type": {"type": "string", "description": "Optional filter by relationship type"}
            },
            "required": ["start_key"]
        }
    ),
]


def _int(value):
    return int(value) if value else None


def dispatch(store: MemoryStore, name: str, arguments: dict) -> dict:
    """Run one tool call against the store and return its result object."""
    args = arguments or {}

    if name == "save_memory":
        return store.save_memory(
            args.get("key"),
            args.get("value"),
            tags=args.get("tags"),
            expires_in_seconds=args.get("expires_in_seconds"),
        )

    elif name == "recall_memory":
        return store.recall_memory(
            args.get("key"),
            include_related=args.get("include_related") is not False,
            max_related=_int(args.get("max_related")),
        )

    elif name == "list_memories":
        return store.list_memories(args.get("tag"))

    elif name == "delete_memory":
        return store.delete_memory(args.get("key"))

    elif name == "list_all_tags":
        return store.list_all_tags()

    elif name == "search_memory_content":
        return store.search_memory_content(args.get("query"))

    elif name == "link_memories":
        return store.link_memories(
            args.get("source_key"), args.get("target_key"), args.get("relationship_type")
        )

    elif name == "get_linked_memories":
        return store.get_linked_memories(args.get("source_key"), args.get("relationship_type"))

    elif name == "find_related_memories":
        return store.find_related_memories(
            args.get("memory_key"),
            include_content=args.get("include_content") is not False,
            include_tags=args.get("include_tags") is not False,
            include_links=args.get("include_links") is not False,
            max_results=_int(args.get("max_results")),
            min_similarity=args.get("min_similarity"),
        )

    elif name == "find_memory_path":
        return store.find_memory_path(args.get("from_key"), args.get("to_key"))

    elif name == "search_by_relationship":
        return store.search_by_relationship(args.get("pattern"))

    elif name == "find_memories_within_degrees":
        return store.find_memories_within_degrees(
            args.get("start_key"),
            max_degrees=_int(args.get("max_degrees")),
            relationship_type=args.get("relationship_type"),
        )

    raise ValueError(f"Unknown tool: {name}")


async def handle_call(store: MemoryStore, name: str, arguments: dict) -> list[TextContent]:
    """Run a tool off the event loop and wrap its result as one JSON text block."""
    # Store operations do blocking file I/O
    try:
        result = await run_sync(dispatch, store, name, arguments)
    except ValueError as e:
        logger.warning(f"Tool {name} failed: {e}")
        raise
    return [TextContent(type="text", text=json.dumps(result, indent=2))]


def create_server(config: MemoryGraphConfig) -> Server:
    server = Server(SERVER_NAME)
    store = MemoryStore(
        memory_dir=config.memory_dir,
        backend=config.backend,
        search_threshold=config.search_threshold,
    )

    @server.list_tools()
    async def list_tools():
        return TOOLS

    @server.call_tool()
    async def call_tool(name: str, arguments: dict):
        return await handle_call(store, name, arguments)

    return server


def _setup_logging(level: str) -> None:
    # stdout carries the protocol
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


async def main():
    config = load_config()
    _setup_logging(config.log_level)
    server = create_server(config)
    logger.info(f"Memory graph MCP server running on stdio ({config.backend} backend at {config.memory_dir})")
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
