from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, NamedTuple, Optional, Protocol

from app.clients.steamgriddb import AssetKind
from app.core.errors import Misconfiguration, NotFound, UpstreamUnavailable
from app.schemas import AppDetails, Asset, FeaturedCategories
from app.services.cache import TieredCache

logger = logging.getLogger(__name__)

HOT_LIMIT = 46
TOP_LIMIT = 40


class ArtworkLookup(NamedTuple):
    assets: List[Asset]
    ttl: float


class DetailSource(Protocol):
    async def fetch_app_details(self, appid: int) -> AppDetails: ...

    async def fetch_featured_categories(self) -> FeaturedCategories: ...


class AssetSource(Protocol):
    async def resolve_game_id(self, appid: int) -> int: ...

    async def fetch_assets(self, kind: AssetKind, game_id: int) -> List[Asset]: ...


class GameService:
    """Cached detail, featured-list and artwork lookups."""

    def __init__(
        self,
        details_source: DetailSource,
        asset_source: AssetSource,
        cache: TieredCache,
        *,
        ttl_details: float = 5 * 3600,
        ttl_featured: float = 5 * 3600,
        ttl_assets: float = 24 * 3600,
        ttl_assets_not_found: float = 3600,
    ) -> None:
        self._details = details_source
        self._assets = asset_source
        self._cache = cache
        self._ttl_details = ttl_details
        self._ttl_featured = ttl_featured
        self._ttl_assets = ttl_assets
        self._ttl_assets_not_found = ttl_assets_not_found

    async def _app_details(self, appid: int) -> AppDetails:
        return await self._cache.get_or_compute(
            f"appDetails_{appid}",
            self._ttl_details,
            lambda: self._details.fetch_app_details(appid),
        )

    async def details(self, appid: int) -> Dict[str, Any]:
        wrapper = await self._app_details(appid)
        if not wrapper.success:
            raise NotFound("Game not found")
        return wrapper.data or {}

    async def _featured(self) -> FeaturedCategories:
        return await self._cache.get_or_compute(
            "featuredCategories",
            self._ttl_featured,
            self._details.fetch_featured_categories,
        )

    async def _details_or_none(self, appid: Optional[int]) -> Optional[Dict[str, Any]]:
        if appid is None:
            return None
        try:
            wrapper = await self._app_details(appid)
        except UpstreamUnavailable as exc:
            logger.warning("Skipping app %s: %s", appid, exc.message)
            return None
        return wrapper.data if wrapper.success else None

    async def _detailed(self, appids: List[Optional[int]]) -> List[Dict[str, Any]]:
        detailed = await asyncio.gather(*(self._details_or_none(a) for a in appids))
        return [d for d in detailed if d]

    async def hot(self) -> List[Dict[str, Any]]:
        featured = await self._featured()
        return await self._detailed([it.id for it in featured.specials.items[:HOT_LIMIT]])

    async def top(self) -> List[Dict[str, Any]]:
        featured = await self._featured()
        return await self._detailed([it.id for it in featured.top_sellers.items[:TOP_LIMIT]])

    async def logos(self, appid: int) -> List[Asset]:
        return await self._artwork("logos", appid)

    async def heroes(self, appid: int) -> List[Asset]:
        return await self._artwork("heroes", appid)

    async def _artwork(self, kind: AssetKind, appid: int) -> List[Asset]:
        """Lifetime depends on the outcome: found, confirmed missing, or unusable credential."""
        lookup = await self._cache.get_or_compute(
            f"{kind}_{appid}",
            lambda found: found.ttl,
            lambda: self._lookup_artwork(kind, appid),
        )
        return lookup.assets

    async def _lookup_artwork(self, kind: AssetKind, appid: int) -> ArtworkLookup:
        try:
            game_id = await self._assets.resolve_game_id(appid)
            assets = await self._assets.fetch_assets(kind, game_id)
        except NotFound:
            return ArtworkLookup([], self._ttl_assets_not_found)
        except Misconfiguration as exc:
            logger.error("Cannot fetch %s for app %s: %s", kind, appid, exc.message)
            return ArtworkLookup([], 0)
        return ArtworkLookup(assets, self._ttl_assets)
