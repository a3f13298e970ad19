"""
Storage Backends for the Memory Graph

Provides pluggable snapshot storage:
- JSONBackend: Single flat-file JSON storage (default, zero dependencies)
- GraphBackend: Embedded graph database via CogDB (pip install cogdb)

Both backends read and write the whole record set at once. There is no
partial update and no coordination between writers: the last save wins.

Usage:
    from memory_graph.backends import JSONBackend, GraphBackend

    backend = JSONBackend()
    memories = backend.load()
    backend.save(memories)
"""

import json
import fcntl
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

# Default storage location
DEFAULT_MEMORY_DIR = Path.home() / ".claude_memory"


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as aware UTC. Naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Link:
    """Directed, typed edge owned by its source memory."""
    target_key: str
    relationship_type: str

    def to_dict(self) -> dict:
        return {"target_key": self.target_key, "relationship_type": self.relationship_type}

    @classmethod
    def from_dict(cls, data: dict) -> "Link":
        return cls(target_key=data["target_key"], relationship_type=data["relationship_type"])


@dataclass
class Memory:
    """Single keyed record. The key is stored as the snapshot's mapping key."""
    key: str
    value: str
    tags: list[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    expires_at: Optional[str] = None
    links: list[Link] = field(default_factory=list)

    def is_expired(self, now: datetime) -> bool:
        if not self.expires_at:
            return False
        expires_at = parse_timestamp(self.expires_at)
        if expires_at is None:
            logger.warning(f"Ignoring unreadable expires_at {self.expires_at!r} on memory {self.key!r}")
            return False
        return expires_at < now

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "tags": list(self.tags),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "expires_at": self.expires_at,
            "links": [link.to_dict() for link in self.links],
        }

    @classmethod
    def from_dict(cls, key: str, data: dict) -> "Memory":
        return cls(
            key=key,
            value=data.get("value", ""),
            tags=list(data.get("tags") or []),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
            expires_at=data.get("expires_at"),
            links=[Link.from_dict(link) for link in data.get("links") or []],
        )


@runtime_checkable
class StorageBackend(Protocol):
    """Protocol for memory snapshot storage."""

    def load(self) -> dict[str, Memory]:
        """Load the full record set, keyed by memory key."""
        ...

    def save(self, memories: dict[str, Memory]) -> None:
        """Persist the full record set, replacing whatever was stored."""
        ...


class JSONBackend:
    """
    JSON file storage backend.

    Features:
    - Zero dependencies
    - Atomic rename on every write, writers serialized by a lock file
    - Human-readable storage format

    Storage: ~/.claude_memory/memory.json (lock: memory.lock)

    Storage Format:
        {
            "<key>": {
                "value": "...",
                "tags": [...],
                "created_at": "...",
                "updated_at": "...",
                "expires_at": null,
                "links": [{"target_key": "...", "relationship_type": "..."}]
            }
        }
    """

    def __init__(self, memory_dir: Path = DEFAULT_MEMORY_DIR):
        self.memory_dir = memory_dir
        self.memory_file = memory_dir / "memory.json"
        self.lock_file = memory_dir / "memory.lock"
        self._ensure_storage()

    def _ensure_storage(self):
        self.memory_dir.mkdir(parents=True, exist_ok=True)
        if not self.memory_file.exists() or not self.memory_file.read_text().strip():
            self.memory_file.write_text("{}")

    def load(self) -> dict[str, Memory]:
        """Load all memories from the JSON file."""
        try:
            with open(self.memory_file, 'r') as f:
                data = json.load(f)

            if not isinstance(data, dict):
                logger.warning(f"Unknown memory file format in {self.memory_file}")
                return {}
            return {key: Memory.from_dict(key, record) for key, record in data.items()}

        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse memory file: {e}")
            return {}
        except FileNotFoundError:
            return {}
        except OSError as e:
            logger.warning(f"Failed to load memories: {e}")
            return {}

    def save(self, memories: dict[str, Memory]) -> None:
        """
        Save all memories to the JSON file.

        The snapshot is written to a temp file and renamed over the memory
        file, so readers see either the old or the new snapshot, never a
        truncated one. The lock file serializes writers across processes.
        """
        data = {key: memory.to_dict() for key, memory in memories.items()}
        with open(self.lock_file, 'a') as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                fd, tmp_path = tempfile.mkstemp(dir=self.memory_dir, prefix=".memory-", suffix=".json")
                try:
                    with os.fdopen(fd, 'w') as f:
                        json.dump(data, f, indent=2)
                    os.replace(tmp_path, self.memory_file)
                except BaseException:
                    os.unlink(tmp_path)
                    raise
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
        logger.debug(f"Saved {len(data)} memories to {self.memory_file}")


class GraphBackend:
    """
    Graph database storage backend using CogDB.

    Features:
    - Links persisted as real graph edges, queryable with CogDB's torque API
    - Flat-file persistence (no server required)

    Requires: pip install cogdb
    Storage: ~/.claude_memory/graph/

    Graph Structure:
    - (memory:<key>)-[type]->(memory)
    - (memory:<key>)-[record]->(<serialized record>)
    - (memory:<key>)-[<relationship_type>]->(memory:<target_key>) for each link
    """

    def __init__(self, memory_dir: Path = DEFAULT_MEMORY_DIR):
        self.memory_dir = memory_dir
        self.graph_dir = memory_dir / "graph"
        self._graph = None
        # Serialized record per key as currently stored, used to drop stale triples
        self._records: dict[str, str] = {}
        self._init_graph()

    def _init_graph(self):
        """Initialize CogDB graph."""
        try:
            from cog.torque import Graph
            from cog import config
        except ImportError:
            raise ImportError(
                "CogDB not installed. Install with: pip install cogdb\n"
                "Or use JSONBackend for zero-dependency storage."
            )

        # Graph files live under <memory_dir>/graph/
        self.graph_dir.mkdir(parents=True, exist_ok=True)
        config.COG_HOME = self.graph_dir.name
        config.COG_PATH_PREFIX = str(self.memory_dir)

        self._graph = Graph(
            "memory_graph",
            cog_home=self.graph_dir.name,
            cog_path_prefix=str(self.memory_dir),
        )
        logger.info(f"GraphBackend initialized at {self.graph_dir}")

    @staticmethod
    def _node(key: str) -> str:
        return f"memory:{key}"

    @staticmethod
    def _ids(result) -> list[str]:
        if isinstance(result, dict):
            return [item["id"] for item in result.get("result", []) if "id" in item]
        return []

    def _load_cache(self):
        """Read the serialized record of every memory vertex."""
        self._records.clear()
        try:
            for node in self._ids(self._graph.v().has("type", "memory").all()):
                serialized = self._ids(self._graph.v(node).out("record").all())
                if serialized:
                    self._records[node[len("memory:"):]] = serialized[0]
        except (KeyError, TypeError) as e:
            logger.warning(f"Failed to load memories from graph: {e}")

    def _drop_record(self, key: str, serialized: str):
        node = self._node(key)
        record = json.loads(serialized)
        for link in record.get("links", []):
            self._graph.drop(node, link["relationship_type"], self._node(link["target_key"]))
        self._graph.drop(node, "record", serialized)
        self._graph.drop(node, "type", "memory")

    def _put_record(self, memory: Memory, serialized: str):
        node = self._node(memory.key)
        self._graph.put(node, "type", "memory")
        self._graph.put(node, "record", serialized)
        for link in memory.links:
            self._graph.put(node, link.relationship_type, self._node(link.target_key))

    def load(self) -> dict[str, Memory]:
        """Load all memories from the graph."""
        self._load_cache()
        memories = {}
        for key, serialized in self._records.items():
            try:
                memories[key] = Memory.from_dict(key, json.loads(serialized))
            except (json.JSONDecodeError, KeyError) as e:
                logger.warning(f"Skipping unreadable graph record {key!r}: {e}")
        return memories

    def save(self, memories: dict[str, Memory]) -> None:
        """Rewrite the graph so it holds exactly the given snapshot."""
        self._load_cache()
        written: dict[str, str] = {}
        for key, memory in memories.items():
            serialized = json.dumps(memory.to_dict(), sort_keys=True)
            previous = self._records.get(key)
            if previous != serialized:
                if previous is not None:
                    self._drop_record(key, previous)
                self._put_record(memory, serialized)
            written[key] = serialized

        for key, previous in self._records.items():
            if key not in written:
                self._drop_record(key, previous)

        self._records = written
        logger.debug(f"Saved {len(written)} memories to graph at {self.graph_dir}")


def get_backend(backend_type: str = "json", **kwargs) -> StorageBackend:
    """
    Factory function to get a storage backend.

    Args:
        backend_type: "json" or "graph"
        **kwargs: Passed to backend constructor

    Returns:
        StorageBackend instance
    """
    if backend_type == "json":
        return JSONBackend(**kwargs)
    elif backend_type == "graph":
        return GraphBackend(**kwargs)
    else:
        raise ValueError(f"Unknown backend type: {backend_type}. Use 'json' or 'graph'.")
