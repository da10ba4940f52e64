"""Tests for CatalogStore: snapshot, refresh, atomic swap, coalescing."""

from __future__ import annotations

import asyncio
import json

import pytest

from app.schemas import CatalogEntry
from app.services.catalog import CatalogStore, build_catalog, read_snapshot, write_snapshot
from conftest import FakeSteam, app_entries


@pytest.fixture
def snapshot(tmp_path):
    return tmp_path / "app_list.json"


class TestSnapshotFile:
    def test_round_trip_keeps_raw_pairs(self, snapshot):
        entries = [CatalogEntry(id=570, name="Dota 2"), CatalogEntry(id=10, name="")]
        write_snapshot(snapshot, entries)
        assert json.loads(snapshot.read_text()) == [{"id": 570, "name": "Dota 2"}, {"id": 10, "name": ""}]
        assert read_snapshot(snapshot) == entries

    def test_missing_and_corrupt(self, snapshot):
        assert read_snapshot(snapshot) is None
        snapshot.write_text("not valid json{{{")
        assert read_snapshot(snapshot) is None
        snapshot.write_text(json.dumps([{"name": "no id"}]))
        assert read_snapshot(snapshot) is None
        snapshot.write_text("[]")
        assert read_snapshot(snapshot) is None


class TestBuildCatalog:
    def test_duplicate_ids_keep_first(self):
        catalog = build_catalog(
            [CatalogEntry(id=1, name="A"), CatalogEntry(id=1, name="B"), CatalogEntry(id=2, name="C")], 1
        )
        assert [(r.id, r.name) for r in catalog.records] == [(1, "A"), (2, "C")]

    def test_empty_names_listed_but_not_indexed(self):
        catalog = build_catalog([CatalogEntry(id=1, name=""), CatalogEntry(id=2, name="Dota 2")], 1)
        assert len(catalog) == 2
        assert len(catalog.index) == 1
        assert all(r.normalized_name is not None for r in catalog.records)


class TestLoad:
    @pytest.mark.asyncio
    async def test_snapshot_avoids_network(self, snapshot):
        write_snapshot(snapshot, [CatalogEntry(id=570, name="Dota 2")])
        steam = FakeSteam(app_entries(["Other"]))
        store = CatalogStore(steam, snapshot)
        assert await store.load() is True
        assert steam.app_list_calls == 0
        catalog = store.current()
        assert catalog.source == "snapshot"
        assert catalog.generation == 1
        assert [r.name for r in catalog.records] == ["Dota 2"]

    @pytest.mark.asyncio
    async def test_corrupt_snapshot_falls_back_to_fetch_and_rewrites(self, snapshot):
        snapshot.write_text("garbage")
        steam = FakeSteam(app_entries(["Dota 2", "Portal"]))
        store = CatalogStore(steam, snapshot)
        assert await store.load() is True
        assert steam.app_list_calls == 1
        assert store.ready
        assert [e.name for e in read_snapshot(snapshot)] == ["Dota 2", "Portal"]

    @pytest.mark.asyncio
    async def test_both_paths_fail_leaves_not_ready(self, snapshot):
        steam = FakeSteam()
        steam.fail_app_list = True
        store = CatalogStore(steam, snapshot)
        assert await store.load() is False
        assert not store.ready
        assert store.current().generation == 0
        assert len(store.current()) == 0


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_replaces_generation(self, snapshot):
        steam = FakeSteam(app_entries(["Dota 2"]))
        store = CatalogStore(steam, snapshot)
        await store.refresh()
        first = store.current()
        steam.apps = app_entries(["Dota 2", "Portal"])
        await store.refresh()
        second = store.current()
        assert second.generation == first.generation + 1
        assert len(second) == 2
        # the previous generation object is untouched
        assert len(first) == 1
        assert len(first.index) == 1

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous_generation(self, snapshot):
        steam = FakeSteam(app_entries(["Dota 2"]))
        store = CatalogStore(steam, snapshot)
        await store.refresh()
        before = store.current()
        steam.fail_app_list = True
        assert await store.refresh() is False
        assert store.current() is before

    @pytest.mark.asyncio
    async def test_empty_upstream_list_is_rejected(self, snapshot):
        steam = FakeSteam(app_entries(["Dota 2"]))
        store = CatalogStore(steam, snapshot)
        await store.refresh()
        before = store.current()
        steam.apps = []
        assert await store.refresh() is False
        assert store.current() is before

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_share_one_fetch(self, snapshot):
        steam = FakeSteam(app_entries(["Dota 2"]))
        steam.gate = asyncio.Event()
        store = CatalogStore(steam, snapshot)
        tasks = [asyncio.create_task(store.refresh()) for _ in range(3)]
        tasks.append(asyncio.create_task(store.ensure_ready()))
        await asyncio.sleep(0)
        steam.gate.set()
        await asyncio.gather(*tasks)
        assert steam.app_list_calls == 1
        assert store.current().generation == 1

    @pytest.mark.asyncio
    async def test_old_generation_served_while_refresh_in_flight(self, snapshot):
        steam = FakeSteam(app_entries(["Dota 2"]))
        store = CatalogStore(steam, snapshot)
        await store.refresh()
        old = store.current()

        steam.apps = app_entries(["Dota 2", "Portal"])
        steam.gate = asyncio.Event()
        pending = asyncio.create_task(store.refresh())
        await asyncio.sleep(0)
        assert store.current() is old
        steam.gate.set()
        await pending
        assert store.current() is not old
        assert store.current().generation == 2

    @pytest.mark.asyncio
    async def test_ensure_ready_triggers_lazy_load(self, snapshot):
        steam = FakeSteam(app_entries(["Dota 2"]))
        store = CatalogStore(steam, snapshot)
        catalog = await store.ensure_ready()
        assert catalog.ready
        await store.ensure_ready()
        assert steam.app_list_calls == 1


class TestSchedule:
    @pytest.mark.asyncio
    async def test_start_loads_then_refreshes_periodically(self, snapshot):
        steam = FakeSteam(app_entries(["Dota 2"]))
        store = CatalogStore(steam, snapshot, refresh_interval=0.01)
        store.start()
        try:
            await store.ensure_ready()
            for _ in range(100):
                if steam.app_list_calls >= 3:
                    break
                await asyncio.sleep(0.01)
        finally:
            await store.stop()
        assert steam.app_list_calls >= 3
        assert store.current().generation >= 3

    @pytest.mark.asyncio
    async def test_request_during_startup_joins_initial_load(self, snapshot):
        steam = FakeSteam(app_entries(["Dota 2"]))
        steam.gate = asyncio.Event()
        store = CatalogStore(steam, snapshot, refresh_interval=3600)
        store.start()
        try:
            waiter = asyncio.create_task(store.ensure_ready())
            await asyncio.sleep(0.01)
            steam.gate.set()
            catalog = await waiter
        finally:
            await store.stop()
        assert catalog.ready
        assert steam.app_list_calls == 1


class CrashingSteam(FakeSteam):
    """Raises something other than an upstream error until ``healed``."""

    def __init__(self, apps=None):
        super().__init__(apps)
        self.healed = False

    async def fetch_app_list(self):
        if not self.healed:
            self.app_list_calls += 1
            raise RuntimeError("unexpected")
        return await super().fetch_app_list()


class TestUnexpectedErrors:
    @pytest.mark.asyncio
    async def test_load_and_refresh_report_failure(self, snapshot):
        store = CatalogStore(CrashingSteam(app_entries(["Dota 2"])), snapshot)
        assert await store.load() is False
        assert await store.refresh() is False
        assert not store.ready
        assert not (await store.ensure_ready()).ready

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous_generation(self, snapshot):
        steam = CrashingSteam(app_entries(["Dota 2"]))
        steam.healed = True
        store = CatalogStore(steam, snapshot)
        await store.refresh()
        before = store.current()
        steam.healed = False
        assert await store.refresh() is False
        assert store.current() is before

    @pytest.mark.asyncio
    async def test_schedule_survives_and_stops_cleanly(self, snapshot):
        steam = CrashingSteam(app_entries(["Dota 2"]))
        store = CatalogStore(steam, snapshot, refresh_interval=0.01)
        store.start()
        try:
            for _ in range(100):
                if steam.app_list_calls >= 3:
                    break
                await asyncio.sleep(0.01)
            assert steam.app_list_calls >= 3
            steam.healed = True
            for _ in range(100):
                if store.ready:
                    break
                await asyncio.sleep(0.01)
            assert store.ready
        finally:
            await store.stop()
