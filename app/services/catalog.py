from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence

from pydantic import TypeAdapter, ValidationError

from app.core.errors import UpstreamUnavailable
from app.schemas import CatalogEntry
from app.services.fuzzy_index import DEFAULT_THRESHOLD, FuzzyIndex
from app.services.records import ItemRecord, make_record

logger = logging.getLogger(__name__)

_entries_adapter = TypeAdapter(List[CatalogEntry])


class CatalogSource(Protocol):
    async def fetch_app_list(self) -> List[CatalogEntry]: ...


@dataclass(frozen=True)
class Catalog:
    """One immutable catalog generation together with its search index."""

    generation: int
    records: tuple[ItemRecord, ...]
    index: FuzzyIndex
    loaded_at: Optional[float] = None
    source: str = "none"

    def __len__(self) -> int:
        return len(self.records)

    @property
    def ready(self) -> bool:
        return len(self.records) > 0

    def page(self, page: int, per_page: int) -> tuple[ItemRecord, ...]:
        start = (page - 1) * per_page
        return self.records[start : start + per_page]


def empty_catalog() -> Catalog:
    return Catalog(generation=0, records=(), index=FuzzyIndex.build(()))


def build_catalog(
    entries: Sequence[CatalogEntry],
    generation: int,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    source: str = "upstream",
) -> Catalog:
    """Normalize entries and index them; duplicate ids keep their first occurrence."""
    records: List[ItemRecord] = []
    seen: set[int] = set()
    for entry in entries:
        if entry.id in seen:
            continue
        seen.add(entry.id)
        records.append(make_record(entry.id, entry.name))
    return Catalog(
        generation=generation,
        records=tuple(records),
        index=FuzzyIndex.build(records, threshold=threshold),
        loaded_at=time.time(),
        source=source,
    )


def read_snapshot(path: Path) -> Optional[List[CatalogEntry]]:
    """Parse a snapshot file; None when it is missing, corrupt or empty."""
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        logger.info("No catalog snapshot at %s", path)
        return None
    except OSError as exc:
        logger.warning("Cannot read catalog snapshot %s: %s", path, exc)
        return None
    try:
        entries = _entries_adapter.validate_json(raw)
    except ValidationError as exc:
        logger.warning("Catalog snapshot %s is corrupt (%d errors), ignoring", path, exc.error_count())
        return None
    return entries or None


def write_snapshot(path: Path, entries: Sequence[CatalogEntry]) -> None:
    """Write the raw ``{id, name}`` list atomically (temp file + rename)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    payload = [{"id": e.id, "name": e.name} for e in entries]
    tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
    os.replace(tmp, path)


class CatalogStore:
    """Owns the single active catalog generation and its refresh lifecycle.

    Readers call :meth:`current` and keep the returned object for the whole
    request; a refresh builds the next generation off to the side and swaps
    one reference, so no reader ever sees a half-built index. Concurrent
    load/refresh triggers share one in-flight operation.
    """

    def __init__(
        self,
        source: CatalogSource,
        snapshot_path: str | Path,
        *,
        refresh_interval: float = 86400.0,
        threshold: float = DEFAULT_THRESHOLD,
    ) -> None:
        self._source = source
        self._snapshot_path = Path(snapshot_path)
        self._refresh_interval = float(refresh_interval)
        self._threshold = float(threshold)
        self._current: Catalog = empty_catalog()
        self._generation = 0
        self._inflight: Optional[asyncio.Future] = None
        self._loop_task: Optional[asyncio.Task] = None

    # --- read side ---
    def current(self) -> Catalog:
        return self._current

    @property
    def ready(self) -> bool:
        return self._current.ready

    async def ensure_ready(self) -> Catalog:
        """Return the active catalog, triggering a (shared) refresh if it is empty.

        The result may still be empty if the refresh failed; callers decide
        how to surface that.
        """
        if not self._current.ready:
            logger.info("App list not in memory, loading...")
            await self.refresh()
        return self._current

    # --- write side ---
    async def load(self) -> bool:
        """Activate the local snapshot, falling back to a full upstream fetch."""
        return await self._coalesce(self._load_once)

    async def refresh(self) -> bool:
        """Fetch the full list upstream and swap it in; False leaves the old generation."""
        return await self._coalesce(self._refresh_once)

    async def activate(self, entries: Sequence[CatalogEntry], *, source: str = "upstream") -> Catalog:
        """Build the next generation from ``entries`` and make it the active one."""
        generation = self._generation + 1
        catalog = await asyncio.to_thread(
            build_catalog, entries, generation, threshold=self._threshold, source=source
        )
        self._generation = generation
        self._current = catalog
        return catalog

    async def _coalesce(self, op: Callable[[], Awaitable[bool]]) -> bool:
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(op())
        return await asyncio.shield(self._inflight)

    async def _load_once(self) -> bool:
        try:
            entries = await asyncio.to_thread(read_snapshot, self._snapshot_path)
            if entries:
                catalog = await self.activate(entries, source="snapshot")
                logger.info(
                    "App list loaded from file: %d games (generation %d)", len(catalog), catalog.generation
                )
                return True
        except Exception:
            logger.exception("Failed to activate catalog snapshot %s", self._snapshot_path)
        return await self._refresh_once()

    async def _refresh_once(self) -> bool:
        try:
            return await self._fetch_and_activate()
        except Exception:
            logger.exception("App list refresh failed; keeping generation %d", self._current.generation)
            return False

    async def _fetch_and_activate(self) -> bool:
        logger.info("Fetching app list from upstream...")
        try:
            entries = await self._source.fetch_app_list()
        except UpstreamUnavailable as exc:
            logger.warning("Failed to fetch app list: %s", exc.message)
            return False
        if not entries:
            logger.warning("Upstream returned an empty app list; keeping generation %d", self._current.generation)
            return False

        catalog = await self.activate(entries)
        logger.info("App list fetched: %d games (generation %d)", len(catalog), catalog.generation)
        try:
            await asyncio.to_thread(write_snapshot, self._snapshot_path, entries)
        except OSError as exc:
            logger.warning("Failed to write catalog snapshot %s: %s", self._snapshot_path, exc)
        return True

    # --- background schedule ---
    def start(self) -> None:
        """Schedule the initial load and the periodic refresh on the running loop."""
        if self._loop_task is not None:
            return
        # registered synchronously so early requests join this load instead of racing it
        self._inflight = asyncio.ensure_future(self._load_once())
        self._loop_task = asyncio.create_task(self._run_schedule())

    async def _run_schedule(self) -> None:
        await asyncio.shield(self._inflight)
        while True:
            await asyncio.sleep(self._refresh_interval)
            try:
                await self.refresh()
            except Exception:
                logger.exception("Scheduled app list refresh failed")

    async def stop(self) -> None:
        task, self._loop_task = self._loop_task, None
        if task is not None:
            await _settle(task)
        if self._inflight is not None and not self._inflight.done():
            await _settle(self._inflight)


async def _settle(fut: asyncio.Future) -> None:
    """Cancel ``fut`` and wait for it; an error it already ended with is logged, not raised."""
    fut.cancel()
    try:
        await fut
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.exception("Catalog background task ended with an error")
