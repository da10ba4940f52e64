from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    app_name: str = Field(default="Vault API")
    environment: str = Field(default="dev")
    log_level: str = Field(default="INFO")
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"], description="CORS allowed origins")

    # Catalog lifecycle
    catalog_snapshot_path: str = Field(default="app_list.json")
    catalog_refresh_interval_seconds: float = Field(default=86400.0)
    # The bulk app list is tens of megabytes; give it more room than per-item lookups
    catalog_timeout_seconds: float = Field(default=60.0)

    # Search
    fuzzy_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    per_page_default: int = Field(default=16, ge=1)
    per_page_max: int = Field(default=100, ge=1)

    # Upstreams
    steam_app_list_url: str = Field(default="https://api.steampowered.com/ISteamApps/GetAppList/v2/")
    steam_app_details_url: str = Field(default="https://store.steampowered.com/api/appdetails")
    steam_featured_url: str = Field(default="https://store.steampowered.com/api/featuredcategories/")
    steamgriddb_base_url: str = Field(default="https://www.steamgriddb.com/api/v2")
    steamgriddb_api_key: str | None = None
    upstream_timeout_seconds: float = Field(default=5.0)

    # Cache lifetimes (seconds), chosen per lookup kind
    ttl_details: float = Field(default=5 * 3600)
    ttl_search: float = Field(default=5 * 60)
    ttl_featured: float = Field(default=5 * 3600)
    ttl_assets: float = Field(default=24 * 3600)
    ttl_assets_not_found: float = Field(default=3600)
    cache_max_entries: int = Field(default=10000, ge=1)

    model_config = SettingsConfigDict(env_file=".env")


settings = Settings()
