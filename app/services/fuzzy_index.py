"""Approximate name lookup over one catalog generation.

Match quality per key is ``1 - partial_ratio / 100`` (typo tolerant substring
similarity); the raw name counts twice as much as the normalized one. Scores
are computed for the whole catalog in one vectorised ``cdist`` call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
from rapidfuzz import fuzz, process

from app.services.records import ItemRecord, normalize_name

DEFAULT_THRESHOLD = 0.4
RAW_WEIGHT = 2.0
NORMALIZED_WEIGHT = 1.0


@dataclass(frozen=True, slots=True)
class FuzzyCandidate:
    record: ItemRecord
    position: int  # index of the record in its catalog
    quality: float  # 0 = perfect, 1 = worst


class FuzzyIndex:
    """Immutable once built; safe to share between concurrent searches."""

    def __init__(
        self,
        records: Sequence[ItemRecord],
        positions: Sequence[int],
        *,
        threshold: float = DEFAULT_THRESHOLD,
    ) -> None:
        self._records = tuple(records)
        self._positions = np.asarray(positions, dtype=np.int64)
        self._raw = [r.name.lower() for r in self._records]
        self._normalized = [r.normalized_name for r in self._records]
        self.threshold = float(threshold)

    @classmethod
    def build(cls, records: Sequence[ItemRecord], *, threshold: float = DEFAULT_THRESHOLD) -> "FuzzyIndex":
        # records without a usable name stay listable but never match
        keep = [(pos, r) for pos, r in enumerate(records) if r.searchable]
        return cls(
            [r for _, r in keep],
            [pos for pos, _ in keep],
            threshold=threshold,
        )

    def __len__(self) -> int:
        return len(self._records)

    def quality(self, query: str) -> np.ndarray:
        """Weighted distance of ``query`` to every indexed record, in index order."""
        # the normalized query is compared with both keys
        q = normalize_name(query) or query.strip().lower()
        raw = process.cdist([q], self._raw, scorer=fuzz.partial_ratio, dtype=np.float32, workers=-1)[0]
        norm = process.cdist([q], self._normalized, scorer=fuzz.partial_ratio, dtype=np.float32, workers=-1)[0]
        combined = (RAW_WEIGHT * raw + NORMALIZED_WEIGHT * norm) / (RAW_WEIGHT + NORMALIZED_WEIGHT)
        return 1.0 - combined.astype(np.float64) / 100.0

    def search(self, query: str, limit: Optional[int] = None) -> List[FuzzyCandidate]:
        if not query or not query.strip() or not self._records:
            return []
        quality = self.quality(query)
        hits = np.flatnonzero(quality <= self.threshold + 1e-9)
        # stable: equal distances keep catalog order
        order = hits[np.argsort(quality[hits], kind="stable")]
        if limit is not None:
            order = order[: max(0, int(limit))]
        return [
            FuzzyCandidate(
                record=self._records[i],
                position=int(self._positions[i]),
                quality=max(0.0, float(quality[i])),
            )
            for i in order
        ]


def query_words(query: str) -> List[str]:
    return normalize_name(query).split()


def require_all_words(candidates: Sequence[FuzzyCandidate], query: str) -> List[FuzzyCandidate]:
    """Drop candidates missing any query word when the query has two or more words.

    Fuzzy scoring alone is too generous with disjoint multi-word queries.
    """
    words = query_words(query)
    if len(words) < 2:
        return list(candidates)
    return [c for c in candidates if all(w in c.record.normalized_name for w in words)]
