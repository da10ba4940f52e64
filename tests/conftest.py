"""Test fixtures and fake upstreams."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

import pytest

from app.core.config import Settings
from app.core.errors import Misconfiguration, NotFound, UpstreamUnavailable
from app.schemas import AppDetails, Asset, CatalogEntry, FeaturedCategories
from app.services.cache import TieredCache


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSteam:
    """Stands in for SteamClient; records every call."""

    def __init__(self, apps: Optional[List[dict]] = None) -> None:
        self.apps: List[dict] = list(apps or [])
        self.details: Dict[int, dict] = {}
        self.featured: dict = {"specials": {"items": []}, "top_sellers": {"items": []}}
        self.fail_app_list = False
        self.fail_details: set[int] = set()
        self.fail_featured = False
        self.gate: Optional[asyncio.Event] = None
        self.app_list_calls = 0
        self.details_calls: List[int] = []
        self.featured_calls = 0
        self.closed = False

    async def fetch_app_list(self) -> List[CatalogEntry]:
        self.app_list_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_app_list:
            raise UpstreamUnavailable("app list down")
        return [CatalogEntry.model_validate(a) for a in self.apps]

    async def fetch_app_details(self, appid: int) -> AppDetails:
        self.details_calls.append(appid)
        if appid in self.fail_details:
            raise UpstreamUnavailable("details down")
        data = self.details.get(appid)
        if data is None:
            return AppDetails(success=False)
        return AppDetails(success=True, data=data)

    async def fetch_featured_categories(self) -> FeaturedCategories:
        self.featured_calls += 1
        if self.fail_featured:
            raise UpstreamUnavailable("featured down")
        return FeaturedCategories.model_validate(self.featured)

    async def close(self) -> None:
        self.closed = True


class FakeGrid:
    """Stands in for SteamGridDBClient. ``mode`` picks the outcome."""

    def __init__(self, mode: str = "ok") -> None:
        self.mode = mode
        self.calls: List[tuple] = []
        self.gate: Optional[asyncio.Event] = None
        self.closed = False

    async def resolve_game_id(self, appid: int) -> int:
        self.calls.append(("resolve", appid))
        if self.gate is not None:
            await self.gate.wait()
        if self.mode == "not_found":
            raise NotFound("no game")
        if self.mode == "unauthorized":
            raise Misconfiguration("bad key")
        if self.mode == "down":
            raise UpstreamUnavailable("grid down")
        return appid * 10

    async def fetch_assets(self, kind: str, game_id: int) -> List[Asset]:
        self.calls.append((kind, game_id))
        return [Asset(id=game_id + 1, url=f"https://cdn.example/{kind}/{game_id}.png", style="official")]

    async def close(self) -> None:
        self.closed = True


def app_entries(names: List[str], start_id: int = 1) -> List[dict]:
    return [{"appid": start_id + i, "name": n} for i, n in enumerate(names)]


def unrelated_names(n: int = 50) -> List[str]:
    return [f"Space Miner {i}" for i in range(n)]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> TieredCache:
    return TieredCache(max_entries=1000, clock=clock)


@pytest.fixture
def fake_steam() -> FakeSteam:
    return FakeSteam()


@pytest.fixture
def fake_grid() -> FakeGrid:
    return FakeGrid()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        catalog_snapshot_path=str(tmp_path / "app_list.json"),
        steamgriddb_api_key="test-key",
        log_level="WARNING",
    )
