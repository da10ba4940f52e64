from __future__ import annotations

from typing import Any, List

import httpx
from pydantic import TypeAdapter, ValidationError

from app.core.config import settings
from app.core.errors import UpstreamUnavailable
from app.schemas import AppDetails, CatalogEntry, FeaturedCategories

_entries_adapter = TypeAdapter(List[CatalogEntry])


class SteamClient:
    """Steam Web API + store API (catalog, details, featured lists).

    Every failure (transport, timeout, non-2xx, undecodable or malformed body)
    surfaces as :class:`UpstreamUnavailable`.
    """

    def __init__(
        self,
        *,
        app_list_url: str | None = None,
        app_details_url: str | None = None,
        featured_url: str | None = None,
        timeout: float | None = None,
        catalog_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._app_list_url = app_list_url or settings.steam_app_list_url
        self._app_details_url = app_details_url or settings.steam_app_details_url
        self._featured_url = featured_url or settings.steam_featured_url
        self._timeout = timeout if timeout is not None else settings.upstream_timeout_seconds
        self._catalog_timeout = catalog_timeout if catalog_timeout is not None else settings.catalog_timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, url: str, *, params: dict | None = None, timeout: float | None = None) -> Any:
        kwargs: dict[str, Any] = {"params": params}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            resp = await self._http().get(url, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.TimeoutException as exc:
            raise UpstreamUnavailable(f"Timed out calling {url}") from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(f"Request to {url} failed: {exc}") from exc
        except ValueError as exc:
            raise UpstreamUnavailable(f"Invalid JSON from {url}") from exc

    async def fetch_app_list(self) -> List[CatalogEntry]:
        data = await self._get_json(self._app_list_url, timeout=self._catalog_timeout)
        apps = ((data or {}).get("applist") or {}).get("apps") if isinstance(data, dict) else None
        if not isinstance(apps, list):
            raise UpstreamUnavailable("App list payload has no applist.apps array")
        try:
            return _entries_adapter.validate_python(apps)
        except ValidationError as exc:
            raise UpstreamUnavailable(f"Malformed app list ({exc.error_count()} errors)") from exc

    async def fetch_app_details(self, appid: int) -> AppDetails:
        data = await self._get_json(self._app_details_url, params={"appids": appid})
        if not isinstance(data, dict):
            raise UpstreamUnavailable("App details payload is not an object")
        wrapper = data.get(str(appid))
        if wrapper is None:
            # the store omits ids it has never heard of
            return AppDetails(success=False)
        try:
            return AppDetails.model_validate(wrapper)
        except ValidationError as exc:
            raise UpstreamUnavailable(f"Malformed details for app {appid}") from exc

    async def fetch_featured_categories(self) -> FeaturedCategories:
        data = await self._get_json(self._featured_url)
        try:
            return FeaturedCategories.model_validate(data)
        except ValidationError as exc:
            raise UpstreamUnavailable("Malformed featured categories payload") from exc
