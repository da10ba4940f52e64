from __future__ import annotations

from typing import Any, List, Literal

import httpx
from pydantic import TypeAdapter, ValidationError

from app.core.config import settings
from app.core.errors import Misconfiguration, NotFound, UpstreamUnavailable
from app.schemas import Asset

AssetKind = Literal["logos", "heroes"]

_assets_adapter = TypeAdapter(List[Asset])


class SteamGridDBClient:
    """Two-step asset lookup: Steam app id -> SteamGridDB game id -> images.

    404 means "no such game / no assets" (:class:`NotFound`), 401/403 or a
    missing key means the credential is wrong (:class:`Misconfiguration`),
    anything else is :class:`UpstreamUnavailable`.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.steamgriddb_api_key
        self.base_url = (base_url or settings.steamgriddb_base_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.upstream_timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self._timeout,
                headers={"Authorization": f"Bearer {self._api_key}"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get_data(self, path: str) -> Any:
        if not self._api_key:
            raise Misconfiguration("SteamGridDB API key is not configured")
        try:
            resp = await self._http().get(path)
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(f"SteamGridDB request {path} failed: {exc}") from exc
        if resp.status_code == 404:
            raise NotFound(f"SteamGridDB has nothing at {path}")
        if resp.status_code in (401, 403):
            raise Misconfiguration(f"SteamGridDB rejected the API key ({resp.status_code})")
        if resp.status_code >= 400:
            raise UpstreamUnavailable(f"SteamGridDB returned {resp.status_code} for {path}")
        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamUnavailable(f"Invalid JSON from SteamGridDB {path}") from exc
        if not isinstance(body, dict) or not body.get("success", False):
            raise UpstreamUnavailable(f"SteamGridDB reported failure for {path}")
        return body.get("data")

    async def resolve_game_id(self, appid: int) -> int:
        data = await self._get_data(f"/games/steam/{int(appid)}")
        game_id = data.get("id") if isinstance(data, dict) else None
        if not isinstance(game_id, int):
            raise UpstreamUnavailable(f"SteamGridDB game payload for app {appid} has no id")
        return game_id

    async def fetch_assets(self, kind: AssetKind, game_id: int) -> List[Asset]:
        data = await self._get_data(f"/{kind}/game/{int(game_id)}")
        try:
            return _assets_adapter.validate_python(data or [])
        except ValidationError as exc:
            raise UpstreamUnavailable(f"Malformed SteamGridDB {kind} payload") from exc
