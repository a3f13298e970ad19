"""
Memory Graph Store
Persistent keyed memories with typed links, relatedness and graph queries.

Every operation loads the full snapshot from the storage backend, purges
expired records, runs against that snapshot, and writes it back only if
something changed. Nothing is shared between calls.

Usage:
    store = MemoryStore()
    store.save_memory("a", "cats are great", tags=["pets"])
    store.save_memory("b", "cats are wonderful")
    store.link_memories("a", "b", "related_to")
    store.find_memory_path("a", "b")
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator, Optional, Union

from .backends import StorageBackend, get_backend, DEFAULT_MEMORY_DIR
from .config import DEFAULT_SEARCH_THRESHOLD
from .matcher import FuzzyMatcher
from .records import RecordSet, NotFoundError, ValidationError
from .relatedness import find_related, memory_candidates, DEFAULT_MAX_RESULTS, DEFAULT_MIN_SIMILARITY
from .traversal import find_path, find_within_degrees, search_by_relationship

__all__ = ["MemoryStore", "ValidationError"]

logger = logging.getLogger(__name__)

RECALL_MAX_RELATED = 5
RECALL_MIN_SIMILARITY = 0.4
DEFAULT_MAX_DEGREES = 2


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require(message: str, *values) -> None:
    if not all(values):
        raise ValidationError(message)


class MemoryStore:
    """
    Keyed memory store with a link graph.

    Args:
        memory_dir: Directory for storage (default: ~/.claude_memory)
        backend: Storage backend - "json" (default), "graph", or an instance
        search_threshold: Minimum similarity for content search results
        clock: Returns the current time; timezone-aware UTC by default
    """

    def __init__(
        self,
        memory_dir: Path = DEFAULT_MEMORY_DIR,
        backend: Union[str, StorageBackend] = "json",
        search_threshold: float = DEFAULT_SEARCH_THRESHOLD,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.memory_dir = memory_dir
        if isinstance(backend, str):
            self._backend = get_backend(backend, memory_dir=memory_dir)
        else:
            self._backend = backend
        self.search_threshold = search_threshold
        self._clock = clock
        self._matcher = FuzzyMatcher()
        # Serializes load-sweep-operate-save cycles across server worker threads
        self._lock = threading.Lock()

    @contextmanager
    def _records(self) -> Iterator[RecordSet]:
        """Load and sweep a snapshot; write it back on exit if it changed."""
        with self._lock:
            records = RecordSet(self._backend.load(), self._clock())
            records.sweep_expired()
            try:
                yield records
            finally:
                if records.changed:
                    self._backend.save(records.memories)

    # === RECORDS ===

    def save_memory(
        self,
        key: str,
        value: str,
        tags: Optional[list[str]] = None,
        expires_in_seconds: Optional[float] = None,
    ) -> dict:
        """Create or update a memory. Omitted tags/expiration keep existing values."""
        with self._records() as records:
            records.upsert(key, value, tags=tags, expires_in_seconds=expires_in_seconds)
        return {"success": True, "message": f"Saved memory for key: {key}"}

    def recall_memory(
        self,
        key: str,
        include_related: bool = True,
        max_related: Optional[int] = None,
    ) -> dict:
        _require("key is required", key)
        with self._records() as records:
            memory = records.get(key)
            if memory is None:
                return {
                    "value": None,
                    "tags": [],
                    "created_at": None,
                    "updated_at": None,
                    "expires_at": None,
                    "links": [],
                    "related_memories": [],
                }

            result = memory.to_dict()
            if include_related:
                related = find_related(
                    records.memories,
                    key,
                    max_results=max_related or RECALL_MAX_RELATED,
                    min_similarity=RECALL_MIN_SIMILARITY,
                    matcher=self._matcher,
                )
                result["related_memories"] = [r.to_dict() for r in related]
            return result

    def list_memories(self, tag: Optional[str] = None) -> dict:
        with self._records() as records:
            return {"keys": records.list_keys(tag)}

    def delete_memory(self, key: str) -> dict:
        _require("key is required", key)
        with self._records() as records:
            if records.delete(key):
                return {"success": True, "message": f"Deleted memory for key: {key}"}
            return {"success": False, "message": f"Key not found: {key}"}

    def list_all_tags(self) -> dict:
        with self._records() as records:
            return {"tags": records.all_tags()}

    def search_memory_content(self, query: str) -> dict:
        """Fuzzy search over keys, values and tags."""
        _require("query is required", query)
        with self._records() as records:
            matches = self._matcher.search(
                memory_candidates(records.memories), query, self.search_threshold
            )
        results = [
            {
                "key": m.id,
                "score": round(m.score, 4),
                "similarity": m.similarity,
                "matches": [fm.to_dict() for fm in m.matches],
            }
            for m in matches
        ]
        return {"keys": [r["key"] for r in results], "results": results}

    # === LINKS ===

    def link_memories(self, source_key: str, target_key: str, relationship_type: str) -> dict:
        _require(
            "source_key, target_key, and relationship_type are required",
            source_key, target_key, relationship_type,
        )
        with self._records() as records:
            try:
                added = records.add_link(source_key, target_key, relationship_type)
            except NotFoundError as e:
                return {"success": False, "message": str(e)}
        if not added:
            return {
                "success": False,
                "message": f"Link already exists from {source_key} to {target_key} with type {relationship_type}",
            }
        return {
            "success": True,
            "message": f"Linked {source_key} to {target_key} with type {relationship_type}",
        }

    def get_linked_memories(self, source_key: str, relationship_type: Optional[str] = None) -> dict:
        _require("source_key is required", source_key)
        with self._records() as records:
            try:
                links = records.get_links(source_key, relationship_type)
            except NotFoundError as e:
                return {"success": False, "message": str(e)}
        return {"links": [link.to_dict() for link in links]}

    # === DISCOVERY ===

    def find_related_memories(
        self,
        memory_key: str,
        include_content: bool = True,
        include_tags: bool = True,
        include_links: bool = True,
        max_results: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> dict:
        _require("memory_key is required", memory_key)
        with self._records() as records:
            if records.get(memory_key) is None:
                return {"success": False, "message": f"Memory key not found: {memory_key}"}
            related = find_related(
                records.memories,
                memory_key,
                include_content=include_content,
                include_tags=include_tags,
                include_links=include_links,
                max_results=max_results or DEFAULT_MAX_RESULTS,
                min_similarity=min_similarity or DEFAULT_MIN_SIMILARITY,
                matcher=self._matcher,
            )
        return {
            "memory_key": memory_key,
            "related_memories": [r.to_dict() for r in related],
            "total_found": len(related),
        }

    def find_memory_path(self, from_key: str, to_key: str) -> dict:
        _require("from_key and to_key are required", from_key, to_key)
        with self._records() as records:
            path = find_path(records.memories, from_key, to_key)
        if path is None:
            return {
                "path_found": False,
                "message": f"No connection path found between {from_key} and {to_key}",
            }
        return {
            "path_found": True,
            "path": path.path,
            "length": path.length,
            "connections": [c.to_dict() for c in path.connections],
        }

    def search_by_relationship(self, pattern: str) -> dict:
        _require(
            'pattern is required (format: "source relationship target", use * for wildcards)',
            pattern,
        )
        with self._records() as records:
            matches = search_by_relationship(records.memories, pattern)
            return {
                "pattern": pattern,
                "matches": [m.to_dict() for m in matches],
                "total_matches": len(matches),
            }

    def find_memories_within_degrees(
        self,
        start_key: str,
        max_degrees: Optional[int] = None,
        relationship_type: Optional[str] = None,
    ) -> dict:
        _require("start_key is required", start_key)
        max_degrees = max_degrees or DEFAULT_MAX_DEGREES
        relationship = relationship_type or None
        with self._records() as records:
            if records.get(start_key) is None:
                return {"success": False, "message": f"Start key not found: {start_key}"}
            connected = find_within_degrees(records.memories, start_key, max_degrees, relationship)
            return {
                "start_key": start_key,
                "max_degrees": max_degrees,
                "relationship_filter": relationship,
                "connected_memories": [c.to_dict() for c in connected],
                "total_found": len(connected),
            }
