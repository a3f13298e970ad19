"""
Relatedness scoring between memories.

Three independent signals nominate related memories:
- content similarity of values (weighted 0.6)
- shared tags (weighted 0.8)
- direct links (1.0) and reverse links (0.9), not re-weighted

When a memory is nominated more than once, the highest score wins.
"""

from dataclasses import dataclass
from typing import Optional

from .backends import Memory
from .matcher import Candidate, FuzzyMatcher

CONTENT_WEIGHT = 0.6
TAG_WEIGHT = 0.8
DIRECT_LINK_SCORE = 1.0
REVERSE_LINK_SCORE = 0.9

DEFAULT_MAX_RESULTS = 10
DEFAULT_MIN_SIMILARITY = 0.3


@dataclass
class RelatedMemory:
    key: str
    similarity: float
    reason: str
    score: float
    relationship: Optional[str] = None
    shared_tags: Optional[list[str]] = None

    def to_dict(self) -> dict:
        data = {
            "key": self.key,
            "similarity": self.similarity,
            "reason": self.reason,
            "score": self.score,
        }
        if self.relationship is not None:
            data["relationship"] = self.relationship
        if self.shared_tags is not None:
            data["shared_tags"] = self.shared_tags
        return data


def memory_candidates(memories: dict[str, Memory], exclude: Optional[str] = None) -> list[Candidate]:
    """Searchable key/value/tags fields for every memory except `exclude`."""
    return [
        Candidate(id=key, fields={"key": key, "value": memory.value, "tags": " ".join(memory.tags)})
        for key, memory in memories.items()
        if key != exclude
    ]


def _by_content(memories, target, min_similarity, matcher):
    candidates = memory_candidates(memories, exclude=target.key)
    for match in matcher.search(candidates, target.value, min_similarity):
        yield RelatedMemory(
            key=match.id,
            similarity=match.similarity,
            reason="content_similarity",
            score=match.similarity * CONTENT_WEIGHT,
        )


def _by_tags(memories, target):
    for key, memory in memories.items():
        if key == target.key or not memory.tags:
            continue
        shared = [tag for tag in target.tags if tag in memory.tags]
        if shared:
            similarity = len(shared) / max(len(target.tags), len(memory.tags))
            yield RelatedMemory(
                key=key,
                similarity=similarity,
                reason="shared_tags",
                score=similarity * TAG_WEIGHT,
                shared_tags=shared,
            )


def _by_links(memories, target):
    for link in target.links:
        if link.target_key in memories and link.target_key != target.key:
            yield RelatedMemory(
                key=link.target_key,
                similarity=1.0,
                reason="direct_link",
                score=DIRECT_LINK_SCORE,
                relationship=link.relationship_type,
            )

    for key, memory in memories.items():
        if key == target.key:
            continue
        incoming = next((link for link in memory.links if link.target_key == target.key), None)
        if incoming:
            yield RelatedMemory(
                key=key,
                similarity=1.0,
                reason="reverse_link",
                score=REVERSE_LINK_SCORE,
                relationship=incoming.relationship_type,
            )


def find_related(
    memories: dict[str, Memory],
    target_key: str,
    include_content: bool = True,
    include_tags: bool = True,
    include_links: bool = True,
    max_results: int = DEFAULT_MAX_RESULTS,
    min_similarity: float = DEFAULT_MIN_SIMILARITY,
    matcher: Optional[FuzzyMatcher] = None,
) -> list[RelatedMemory]:
    """
    Rank the memories related to target_key.

    Args:
        memories: Live snapshot to search
        target_key: Memory to find relations for
        include_content: Use content similarity of values
        include_tags: Use tag overlap
        include_links: Use direct and reverse links
        max_results: Maximum number of results
        min_similarity: Minimum content similarity to consider

    Returns:
        Related memories sorted by score, highest first. Empty if the target
        does not exist or no signal fires.
    """
    target = memories.get(target_key)
    if target is None:
        return []

    nominated: list[RelatedMemory] = []
    if include_content and target.value:
        nominated.extend(_by_content(memories, target, min_similarity, matcher or FuzzyMatcher()))
    if include_tags and target.tags:
        nominated.extend(_by_tags(memories, target))
    if include_links:
        nominated.extend(_by_links(memories, target))

    best: dict[str, RelatedMemory] = {}
    for related in nominated:
        existing = best.get(related.key)
        if existing is None or related.score > existing.score:
            best[related.key] = related

    ranked = sorted(best.values(), key=lambda r: r.score, reverse=True)
    return ranked[:max_results]
