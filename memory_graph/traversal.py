"""
Graph traversal over memory links.

- find_path: shortest connection between two memories
- find_within_degrees: every memory reachable within N hops
- search_by_relationship: "source relationship target" pattern queries

Both breadth-first searches treat links as undirected for reachability;
relationship labels still report the original link direction.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from .backends import Memory
from .graph import LinkGraph

logger = logging.getLogger(__name__)

WILDCARD = "*"


@dataclass
class Connection:
    source: str
    target: str
    relationship: str

    def to_dict(self) -> dict:
        return {"from": self.source, "to": self.target, "relationship": self.relationship}


@dataclass
class MemoryPath:
    path: list[str]
    connections: list[Connection] = field(default_factory=list)

    @property
    def length(self) -> int:
        return len(self.path) - 1


@dataclass
class ConnectedMemory:
    key: str
    degree: int
    path: list[str]
    memory: Memory

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "degree": self.degree,
            "path": self.path,
            "memory": self.memory.to_dict(),
        }


@dataclass
class RelationshipMatch:
    source: str
    target: str
    relationship: str
    source_memory: Memory
    target_memory: Optional[Memory]

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "target": self.target,
            "relationship": self.relationship,
            "source_memory": self.source_memory.to_dict(),
            "target_memory": self.target_memory.to_dict() if self.target_memory else None,
        }


def find_path(memories: dict[str, Memory], from_key: str, to_key: str) -> Optional[MemoryPath]:
    """
    Breadth-first shortest path between two memories.

    Returns None when the keys are equal, either key is missing, or the two
    memories are not connected.
    """
    if from_key == to_key or from_key not in memories or to_key not in memories:
        return None

    graph = LinkGraph(memories)
    parents: dict[str, Optional[str]] = {from_key: None}
    queue = deque([from_key])

    while queue:
        key = queue.popleft()
        if key == to_key:
            break
        for neighbor in graph.neighbors(key):
            if neighbor not in parents:
                parents[neighbor] = key
                queue.append(neighbor)

    if to_key not in parents:
        logger.debug(f"No path between {from_key!r} and {to_key!r}")
        return None

    path = [to_key]
    while parents[path[-1]] is not None:
        path.append(parents[path[-1]])
    path.reverse()

    connections = [
        Connection(source=a, target=b, relationship=graph.label(a, b))
        for a, b in zip(path, path[1:])
    ]
    return MemoryPath(path=path, connections=connections)


def find_within_degrees(
    memories: dict[str, Memory],
    start_key: str,
    max_degrees: int = 2,
    relationship: Optional[str] = None,
) -> list[ConnectedMemory]:
    """
    Memories reachable from start_key in at most max_degrees hops.

    Each memory is reported once, at the hop count where it was first
    reached. Results are ordered by degree, then discovery order. With a
    relationship filter only links of that type are walked.
    """
    if start_key not in memories:
        return []

    graph = LinkGraph(memories)
    paths = {start_key: [start_key]}
    queue = deque([start_key])
    results = []

    while queue:
        key = queue.popleft()
        degree = len(paths[key]) - 1
        if degree >= max_degrees:
            continue
        for neighbor in graph.neighbors(key, relationship):
            if neighbor in paths:
                continue
            paths[neighbor] = paths[key] + [neighbor]
            results.append(ConnectedMemory(
                key=neighbor,
                degree=degree + 1,
                path=paths[neighbor],
                memory=memories[neighbor],
            ))
            queue.append(neighbor)

    return sorted(results, key=lambda r: r.degree)


def search_by_relationship(memories: dict[str, Memory], pattern: str) -> list[RelationshipMatch]:
    """
    Links matching a "source relationship target" pattern.

    Each token is matched literally unless it is "*". Only the stored link
    direction is considered. A pattern that is not exactly three
    space-separated tokens matches nothing.
    """
    parts = pattern.split(" ")
    if len(parts) != 3:
        return []
    source_pattern, relationship_pattern, target_pattern = parts

    def matches(token: str, value: str) -> bool:
        return token == WILDCARD or token == value

    results = []
    for key, memory in memories.items():
        if not matches(source_pattern, key):
            continue
        for link in memory.links:
            if matches(relationship_pattern, link.relationship_type) and matches(target_pattern, link.target_key):
                results.append(RelationshipMatch(
                    source=key,
                    target=link.target_key,
                    relationship=link.relationship_type,
                    source_memory=memory,
                    target_memory=memories.get(link.target_key),
                ))
    return results
