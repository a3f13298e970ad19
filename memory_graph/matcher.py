"""
Approximate text matching over memory fields.

FuzzyMatcher scores a query against weighted text fields of each candidate
using partial sequence matching: the query is aligned against the best
window of each field, so a short query that appears inside a long value
still scores highly. Matching is case-insensitive.
"""

from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import Iterable

# Field weights used when matching memories
FIELD_WEIGHTS = {"key": 0.4, "value": 0.5, "tags": 0.3}

MIN_MATCH_CHAR_LENGTH = 2


@dataclass
class Candidate:
    """Searchable item: an id plus named text fields."""
    id: str
    fields: dict[str, str]


@dataclass
class FieldMatch:
    field: str
    value: str
    indices: list[tuple[int, int]]

    def to_dict(self) -> dict:
        return {"field": self.field, "value": self.value, "indices": [list(i) for i in self.indices]}


@dataclass
class Match:
    id: str
    similarity: float
    matches: list[FieldMatch] = field(default_factory=list)

    @property
    def score(self) -> float:
        """Distance form of the similarity (0 is a perfect match)."""
        return 1 - self.similarity


def partial_ratio(query: str, text: str) -> tuple[float, list[tuple[int, int]]]:
    """
    Best similarity between query and any query-sized window of text.

    Returns the ratio in [0, 1] and the matched spans in text as inclusive
    (start, end) index pairs.
    """
    if not query or not text:
        return 0.0, []

    if len(text) <= len(query):
        windows = [0]
    else:
        # Anchor candidate windows on the blocks the two strings share
        anchor = SequenceMatcher(None, query, text, autojunk=False)
        windows = sorted({
            min(max(b - a, 0), len(text) - len(query))
            for a, b, size in anchor.get_matching_blocks()
            if size
        }) or [0]

    best_ratio, best_spans = 0.0, []
    for start in windows:
        window = text[start:start + len(query)]
        matcher = SequenceMatcher(None, query, window, autojunk=False)
        ratio = matcher.ratio()
        if ratio > best_ratio:
            best_ratio = ratio
            best_spans = [
                (start + b, start + b + size - 1)
                for a, b, size in matcher.get_matching_blocks()
                if size >= MIN_MATCH_CHAR_LENGTH
            ]
            if ratio == 1.0:
                break
    return best_ratio, best_spans


class FuzzyMatcher:
    """
    Ranks candidates by approximate similarity to a query.

    Each field's partial ratio is scaled by its weight relative to the
    heaviest field; a candidate's similarity is its best scaled field score.
    """

    def __init__(self, weights: dict[str, float] = FIELD_WEIGHTS):
        self.weights = weights
        self._max_weight = max(weights.values())

    def search(self, candidates: Iterable[Candidate], query: str, threshold: float) -> list[Match]:
        """
        Return candidates whose similarity is at least threshold, best first.

        Candidates with equal similarity keep their input order.
        """
        query = query.lower()
        results = []
        for candidate in candidates:
            best = 0.0
            matched = []
            for name, text in candidate.fields.items():
                weight = self.weights.get(name, 0.0) / self._max_weight
                if not weight or not text:
                    continue
                ratio, spans = partial_ratio(query, text.lower())
                similarity = ratio * weight
                if similarity >= threshold and spans:
                    matched.append(FieldMatch(field=name, value=text, indices=spans))
                best = max(best, similarity)
            if best >= threshold and best > 0:
                results.append(Match(id=candidate.id, similarity=round(best, 4), matches=matched))
        results.sort(key=lambda m: m.similarity, reverse=True)
        return results
