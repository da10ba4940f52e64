from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from app.services.fuzzy_index import FuzzyCandidate
from app.services.records import ItemRecord

EXACT_SCORE = 100000.0
PREFIX_BONUS = 50000.0
WHOLE_WORD_BONUS = 20000.0
SUBSTRING_BONUS = 10000.0
SHORT_NAME_LENGTH = 30
SHORT_NAME_BOOST = 5.0


@dataclass(frozen=True, slots=True)
class SearchResult:
    record: ItemRecord
    relevance_score: float


def relevance_score(name: str, query: str, quality: float) -> float:
    """
    Tiered score for a normalized ``name`` against a normalized ``query``.
    Tiers are 10000 wide and the fuzzy baseline is at most a few hundred,
    so tier membership always dominates: exact > prefix > whole word >
    substring > fuzzy only.
    """
    baseline = (1.0 - float(quality)) * 100.0
    if name == query:
        return EXACT_SCORE
    if name.startswith(query):
        return PREFIX_BONUS + baseline
    if f" {query} " in f" {name} ":
        return WHOLE_WORD_BONUS + baseline
    if query in name:
        return SUBSTRING_BONUS + baseline
    if len(name) < SHORT_NAME_LENGTH:
        return baseline + (SHORT_NAME_LENGTH - len(name)) * SHORT_NAME_BOOST
    return baseline


class RelevanceScorer:
    """Reorders fuzzy candidates; ties fall back to catalog order."""

    def score(self, candidate: FuzzyCandidate, query: str) -> float:
        return relevance_score(candidate.record.normalized_name, query, candidate.quality)

    def rank(self, candidates: Sequence[FuzzyCandidate], query: str) -> List[SearchResult]:
        scored = [(self.score(c, query), c.position, c.record) for c in candidates]
        scored.sort(key=lambda it: (-it[0], it[1]))
        return [SearchResult(record=rec, relevance_score=score) for score, _, rec in scored]
