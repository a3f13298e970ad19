"""
Memory Graph Package
Keyed memories with typed links, relatedness scoring and graph traversal,
served to agents over MCP.

Supports two storage backends:
- JSONBackend (default): Single flat-file storage, zero dependencies
- GraphBackend: Embedded graph storage via CogDB

Usage:
    from memory_graph import MemoryStore

    store = MemoryStore()
    store = MemoryStore(backend="graph")
"""

from .backends import (
    Link,
    Memory,
    StorageBackend,
    JSONBackend,
    GraphBackend,
    get_backend,
    DEFAULT_MEMORY_DIR,
)

from .records import RecordSet, ValidationError, NotFoundError
from .memory import MemoryStore
from .config import MemoryGraphConfig, load_config

__all__ = [
    # Core
    "Link",
    "Memory",
    "MemoryStore",
    "RecordSet",
    "ValidationError",
    "NotFoundError",
    # Backends
    "StorageBackend",
    "JSONBackend",
    "GraphBackend",
    "get_backend",
    # Config
    "MemoryGraphConfig",
    "load_config",
    "DEFAULT_MEMORY_DIR",
]
