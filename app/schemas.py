from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Upstream payloads ---
class CatalogEntry(BaseModel):
    """One raw ``{id, name}`` pair from the app list or the local snapshot."""

    id: int = Field(..., validation_alias=AliasChoices("id", "appid"))
    name: str = ""

    @field_validator("name", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class AppDetails(BaseModel):
    success: bool = False
    data: Optional[Dict[str, Any]] = None


class FeaturedItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = Field(default=None, validation_alias=AliasChoices("id", "appid"))
    name: Optional[str] = None


class FeaturedSection(BaseModel):
    items: List[FeaturedItem] = Field(default_factory=list)


class FeaturedCategories(BaseModel):
    model_config = ConfigDict(extra="ignore")

    specials: FeaturedSection = Field(default_factory=FeaturedSection)
    top_sellers: FeaturedSection = Field(default_factory=FeaturedSection)


class Asset(BaseModel):
    """SteamGridDB image entry; unknown fields are passed through untouched."""

    model_config = ConfigDict(extra="allow")

    id: int
    url: str
    thumb: Optional[str] = None
    style: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    mime: Optional[str] = None
    score: Optional[int] = None


# --- HTTP responses ---
class GameItem(_CamelModel):
    id: int
    name: str
    normalized_name: str


class SearchResultItem(_CamelModel):
    record: GameItem
    relevance_score: float


class SearchResponse(_CamelModel):
    total: int
    page: int
    per_page: int
    total_pages: int
    games: List[SearchResultItem]


class GamesPageResponse(_CamelModel):
    total: int
    page: int
    per_page: int
    games: List[GameItem]


class LogosResponse(BaseModel):
    logos: List[Asset]


class HeroesResponse(BaseModel):
    heroes: List[Asset]


class CatalogStatus(_CamelModel):
    ready: bool
    generation: int
    total: int
    loaded_at: Optional[float] = None


class CacheStatus(BaseModel):
    entries: int


class StatusResponse(BaseModel):
    service: str
    version: str
    environment: str
    catalog: CatalogStatus
    cache: CacheStatus


class ErrorResponse(BaseModel):
    error: str
