from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Query, Response
from fastapi.middleware.cors import CORSMiddleware

from app import __version__
from app.clients.steam import SteamClient
from app.clients.steamgriddb import SteamGridDBClient
from app.core.config import Settings, settings as default_settings
from app.core.errors import InvalidInput, UpstreamUnavailable, install_error_handlers
from app.schemas import (
    CacheStatus,
    CatalogStatus,
    ErrorResponse,
    GameItem,
    GamesPageResponse,
    HeroesResponse,
    LogosResponse,
    SearchResponse,
    SearchResultItem,
    StatusResponse,
)
from app.services.cache import TieredCache
from app.services.catalog import CatalogStore
from app.services.games import GameService
from app.services.records import ItemRecord
from app.services.search import SearchService

logger = logging.getLogger(__name__)

# Simple in-memory metrics
_metrics = {
    "requests_total": 0,
    "search_total": 0,
    "list_total": 0,
    "details_total": 0,
    "featured_total": 0,
    "assets_total": 0,
}

_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _count(kind: str) -> None:
    _metrics["requests_total"] += 1
    _metrics[kind] += 1


def _to_int(raw: Optional[str], default: int) -> int:
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return default


def _page_params(page: Optional[str], per_page: Optional[str], cfg: Settings) -> tuple[int, int]:
    """Lenient paging: junk falls back to defaults, values are clamped."""
    p = max(1, _to_int(page, 1))
    pp = _to_int(per_page, cfg.per_page_default)
    if pp < 1:
        pp = cfg.per_page_default
    return p, min(cfg.per_page_max, pp)


def _parse_appid(raw: str) -> int:
    appid = _to_int(raw, -1)
    if appid <= 0:
        raise InvalidInput("Invalid game id")
    return appid


def _game_item(rec: ItemRecord) -> GameItem:
    return GameItem(id=rec.id, name=rec.name, normalized_name=rec.normalized_name)


def create_app(
    settings: Optional[Settings] = None,
    *,
    steam_client: Optional[SteamClient] = None,
    grid_client: Optional[SteamGridDBClient] = None,
    cache: Optional[TieredCache] = None,
) -> FastAPI:
    cfg = settings or default_settings
    logging.basicConfig(
        level=cfg.log_level.upper(), format="%(asctime)s - %(levelname)s - %(name)s - %(message)s"
    )

    steam = steam_client or SteamClient(
        app_list_url=cfg.steam_app_list_url,
        app_details_url=cfg.steam_app_details_url,
        featured_url=cfg.steam_featured_url,
        timeout=cfg.upstream_timeout_seconds,
        catalog_timeout=cfg.catalog_timeout_seconds,
    )
    grid = grid_client or SteamGridDBClient(
        cfg.steamgriddb_api_key,
        base_url=cfg.steamgriddb_base_url,
        timeout=cfg.upstream_timeout_seconds,
    )
    shared_cache = cache or TieredCache(max_entries=cfg.cache_max_entries)
    store = CatalogStore(
        steam,
        cfg.catalog_snapshot_path,
        refresh_interval=cfg.catalog_refresh_interval_seconds,
        threshold=cfg.fuzzy_threshold,
    )
    search_service = SearchService(
        store,
        shared_cache,
        search_ttl=cfg.ttl_search,
    )
    games = GameService(
        steam,
        grid,
        shared_cache,
        ttl_details=cfg.ttl_details,
        ttl_featured=cfg.ttl_featured,
        ttl_assets=cfg.ttl_assets,
        ttl_assets_not_found=cfg.ttl_assets_not_found,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store.start()
        try:
            yield
        finally:
            await store.stop()
            await steam.close()
            await grid.close()

    app = FastAPI(
        title=cfg.app_name,
        version=__version__,
        description="Game catalog search and browse API",
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.store = store
    app.state.cache = shared_cache
    app.state.search = search_service
    app.state.games = games

    # CORS
    if cfg.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cfg.allowed_origins,
            allow_credentials="*" not in cfg.allowed_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    install_error_handlers(app)

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok"}

    @app.get("/", response_model=StatusResponse)
    async def root():
        catalog = store.current()
        return StatusResponse(
            service=cfg.app_name,
            version=__version__,
            environment=cfg.environment,
            catalog=CatalogStatus(
                ready=catalog.ready,
                generation=catalog.generation,
                total=len(catalog),
                loaded_at=catalog.loaded_at,
            ),
            cache=CacheStatus(entries=len(shared_cache)),
        )

    @app.get("/games/search", response_model=SearchResponse, responses=_ERRORS)
    async def search_games(
        response: Response,
        q: Optional[str] = Query(default=None),
        page: Optional[str] = Query(default=None),
        per_page: Optional[str] = Query(default=None, alias="perPage"),
    ):
        _count("search_total")
        p, pp = _page_params(page, per_page, cfg)
        result = await search_service.search(q or "", page=p, per_page=pp)
        response.headers["X-Cache"] = "HIT" if result.cached else "MISS"
        return SearchResponse(
            total=result.total,
            page=result.page,
            per_page=result.per_page,
            total_pages=result.total_pages,
            games=[
                SearchResultItem(record=_game_item(r.record), relevance_score=r.relevance_score)
                for r in result.results
            ],
        )

    @app.get("/games", response_model=GamesPageResponse, responses=_ERRORS)
    async def list_games(
        page: Optional[str] = Query(default=None),
        per_page: Optional[str] = Query(default=None, alias="perPage"),
    ):
        _count("list_total")
        p, pp = _page_params(page, per_page, cfg)
        result = await search_service.list_games(page=p, per_page=pp)
        return GamesPageResponse(
            total=result.total,
            page=result.page,
            per_page=result.per_page,
            games=[_game_item(r) for r in result.games],
        )

    @app.get("/games/hot", responses=_ERRORS)
    async def hot_games() -> List[dict]:
        _count("featured_total")
        try:
            return await games.hot()
        except UpstreamUnavailable as exc:
            logger.warning("Hot games failed: %s", exc.message)
            raise UpstreamUnavailable("Failed to fetch hot games") from exc

    @app.get("/games/top", responses=_ERRORS)
    async def top_games() -> List[dict]:
        _count("featured_total")
        try:
            return await games.top()
        except UpstreamUnavailable as exc:
            logger.warning("Top games failed: %s", exc.message)
            raise UpstreamUnavailable("Failed to fetch top games") from exc

    @app.get("/games/{appid}", responses=_ERRORS)
    async def game_details(appid: str) -> dict:
        _count("details_total")
        parsed = _parse_appid(appid)
        try:
            return await games.details(parsed)
        except UpstreamUnavailable as exc:
            logger.warning("Details for %s failed: %s", parsed, exc.message)
            raise UpstreamUnavailable("Failed to fetch game details") from exc

    @app.get("/games/{appid}/logos", response_model=LogosResponse, responses=_ERRORS)
    async def game_logos(appid: str):
        _count("assets_total")
        parsed = _parse_appid(appid)
        try:
            return LogosResponse(logos=await games.logos(parsed))
        except UpstreamUnavailable as exc:
            logger.warning("Logos for %s failed: %s", parsed, exc.message)
            raise UpstreamUnavailable("Failed to fetch logos") from exc

    @app.get("/games/{appid}/heroes", response_model=HeroesResponse, responses=_ERRORS)
    async def game_heroes(appid: str):
        _count("assets_total")
        parsed = _parse_appid(appid)
        try:
            return HeroesResponse(heroes=await games.heroes(parsed))
        except UpstreamUnavailable as exc:
            logger.warning("Heroes for %s failed: %s", parsed, exc.message)
            raise UpstreamUnavailable("Failed to fetch heroes") from exc

    @app.get("/ready")
    async def ready() -> dict:
        return {"ready": store.ready}

    @app.get("/metrics")
    async def metrics() -> Response:
        lines = [
            "# HELP service_requests_total Total API requests.",
            "# TYPE service_requests_total counter",
            f"service_requests_total {_metrics['requests_total']}",
            "# HELP game_requests_total API requests by route kind.",
            "# TYPE game_requests_total counter",
            f"game_requests_total{{type=\"search\"}} {_metrics['search_total']}",
            f"game_requests_total{{type=\"list\"}} {_metrics['list_total']}",
            f"game_requests_total{{type=\"details\"}} {_metrics['details_total']}",
            f"game_requests_total{{type=\"featured\"}} {_metrics['featured_total']}",
            f"game_requests_total{{type=\"assets\"}} {_metrics['assets_total']}",
            "# HELP cache_lookups_total Cache lookups by outcome.",
            "# TYPE cache_lookups_total counter",
            f"cache_lookups_total{{result=\"hit\"}} {shared_cache.hits}",
            f"cache_lookups_total{{result=\"miss\"}} {shared_cache.misses}",
            "# HELP catalog_generation Active catalog generation.",
            "# TYPE catalog_generation gauge",
            f"catalog_generation {store.current().generation}",
        ]
        return Response("\n".join(lines) + "\n", media_type="text/plain; version=0.0.4")

    return app


app = create_app()
