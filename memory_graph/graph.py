"""
Transient adjacency view over the links embedded in memory records.

The graph is rebuilt from a snapshot whenever a traversal needs it and is
never persisted. Links point from source to target, but for connectivity
every link can be walked in both directions.
"""

from typing import Iterator, Optional

from .backends import Memory

REVERSE_LINK = "reverse_link"


class LinkGraph:
    """
    Forward edges plus a reverse-edge index, built in one pass.

    Only links whose target is present in the snapshot become edges.
    """

    def __init__(self, memories: dict[str, Memory]):
        self.memories = memories
        self.forward: dict[str, list[tuple[str, str]]] = {key: [] for key in memories}
        self.reverse: dict[str, list[tuple[str, str]]] = {key: [] for key in memories}

        for source, memory in memories.items():
            for link in memory.links:
                if link.target_key not in memories:
                    continue
                self.forward[source].append((link.target_key, link.relationship_type))
                self.reverse[link.target_key].append((source, link.relationship_type))

    def __contains__(self, key: str) -> bool:
        return key in self.memories

    def neighbors(self, key: str, relationship: Optional[str] = None) -> Iterator[str]:
        """
        Keys reachable from key in one step, link direction ignored.

        Outgoing targets come first in link order, then the sources of
        incoming links in snapshot order. Each neighbor is yielded once.
        """
        seen = set()
        for other, rel in self.forward.get(key, []) + self.reverse.get(key, []):
            if relationship and rel != relationship:
                continue
            if other not in seen:
                seen.add(other)
                yield other

    def label(self, source: str, target: str) -> str:
        """Relationship of the first source -> target link, else REVERSE_LINK."""
        for other, rel in self.forward.get(source, []):
            if other == target:
                return rel
        return REVERSE_LINK
