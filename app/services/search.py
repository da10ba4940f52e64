from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass
from typing import Optional, Tuple

from app.core.errors import InvalidInput, NotReady
from app.services.cache import TieredCache
from app.services.catalog import Catalog, CatalogStore
from app.services.fuzzy_index import require_all_words
from app.services.records import ItemRecord, normalize_name
from app.services.scoring import RelevanceScorer, SearchResult


@dataclass(frozen=True)
class SearchPage:
    total: int
    page: int
    per_page: int
    results: Tuple[SearchResult, ...]
    generation: int
    cached: bool = False

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.per_page) if self.per_page else 0


@dataclass(frozen=True)
class GamesPage:
    total: int
    page: int
    per_page: int
    games: Tuple[ItemRecord, ...]


def scoring_query(query: str) -> str:
    return normalize_name(query) or (query or "").strip().lower()


class SearchService:
    """Paginated fuzzy search and plain listing over the active catalog."""

    def __init__(
        self,
        store: CatalogStore,
        cache: TieredCache,
        *,
        scorer: Optional[RelevanceScorer] = None,
        search_ttl: float = 300.0,
    ) -> None:
        self._store = store
        self._cache = cache
        self._scorer = scorer or RelevanceScorer()
        self._search_ttl = float(search_ttl)

    async def _ready_catalog(self) -> Catalog:
        catalog = await self._store.ensure_ready()
        if not catalog.ready:
            raise NotReady()
        return catalog

    def rank(self, catalog: Catalog, query: str) -> Tuple[SearchResult, ...]:
        """Fuzzy candidates -> multi-word filter -> tiered relevance order.

        Every hit under the fuzzy threshold is rescored; `total` is the full match count.
        """
        candidates = catalog.index.search(query)
        candidates = require_all_words(candidates, query)
        return tuple(self._scorer.rank(candidates, scoring_query(query)))

    async def search(self, query: str, page: int = 1, per_page: int = 16) -> SearchPage:
        if not query or not query.strip():
            raise InvalidInput("Query parameter 'q' required")
        # one catalog reference for the whole request: never a mix of generations
        catalog = await self._ready_catalog()
        key = f"search_{catalog.generation}_{scoring_query(query)}"

        ranked = self._cache.get(key)
        cached = ranked is not None
        if ranked is None:
            ranked = await asyncio.to_thread(self.rank, catalog, query)
            self._cache.set(key, ranked, self._search_ttl)

        start = (page - 1) * per_page
        return SearchPage(
            total=len(ranked),
            page=page,
            per_page=per_page,
            results=ranked[start : start + per_page],
            generation=catalog.generation,
            cached=cached,
        )

    async def list_games(self, page: int = 1, per_page: int = 16) -> GamesPage:
        catalog = await self._ready_catalog()
        return GamesPage(
            total=len(catalog),
            page=page,
            per_page=per_page,
            games=catalog.page(page, per_page),
        )
