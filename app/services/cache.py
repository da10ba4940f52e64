"""In-process cache whose entries each carry their own lifetime.

Every upstream lookup goes through one shared :class:`TieredCache`; the caller
picks the TTL at write time, so a detail payload, a search page and a negative
asset lookup can live side by side with different expiry windows. Resets when
the process restarts.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Union

TTL = Union[float, Callable[[Any], float]]

_MISSING = object()


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    expires_at: float


class TieredCache:
    def __init__(
        self,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_entries = int(max_entries)
        self._clock = clock
        self._data: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, asyncio.Future] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._data)

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._data.get(key)
        if entry is None:
            self.misses += 1
            return default
        if entry.expires_at <= self._clock():
            self._data.pop(key, None)
            self.misses += 1
            return default
        self.hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` for ``ttl`` seconds; a non-positive ttl means do not cache."""
        if ttl <= 0:
            return
        now = self._clock()
        expired = [k for k, e in self._data.items() if e.expires_at <= now]
        for k in expired:
            self._data.pop(k, None)
        # overwrite replaces the entry wholesale, so drop it first to refresh insertion order
        self._data.pop(key, None)
        while len(self._data) >= self._max_entries:
            self._data.pop(next(iter(self._data)))
        self._data[key] = CacheEntry(key=key, value=value, expires_at=now + float(ttl))

    async def get_or_compute(
        self,
        key: str,
        ttl: TTL,
        compute: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Return the live entry for ``key`` or run ``compute`` once and store it.

        ``ttl`` may be a callable that picks the lifetime from the computed value.

        Concurrent callers missing on the same key share a single in-flight
        ``compute``. Failures propagate to every waiter and are not stored.
        """
        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        fut = self._inflight.get(key)
        if fut is None:
            fut = asyncio.ensure_future(self._compute_and_store(key, ttl, compute))
            self._inflight[key] = fut
        return await asyncio.shield(fut)

    async def _compute_and_store(
        self,
        key: str,
        ttl: TTL,
        compute: Callable[[], Awaitable[Any]],
    ) -> Any:
        try:
            value = await compute()
            self.set(key, value, ttl(value) if callable(ttl) else ttl)
            return value
        finally:
            self._inflight.pop(key, None)

    def clear(self) -> None:
        self._data.clear()
