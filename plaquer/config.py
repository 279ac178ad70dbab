from __future__ import annotations

from functools import lru_cache
from typing import Optional, Tuple

from pydantic import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine configuration (env-friendly, prefix PLAQUER_).

    Tip: create a .env file and override settings there.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", env_prefix="PLAQUER_")

    app_name: str = "Plaquer Discovery API"
    version: str = "0.1.0"

    nominatim_base_url: AnyHttpUrl = "https://nominatim.openstreetmap.org/search"
    ors_base_url: AnyHttpUrl = "https://api.openrouteservice.org/v2/directions/foot-walking"

    # Nominatim's usage policy expects a proper User-Agent and (optionally) contact info.
    user_agent: str = "plaquer/0.1.0"
    nominatim_email: Optional[str] = None
    # Walking directions are disabled (straight-line estimates only) without a key.
    ors_api_key: Optional[str] = None

    # Operating region: place search is bounded to this box (west, south, east, north).
    region_name: str = "London"
    region_country_codes: str = "gb"
    region_viewbox: Tuple[float, float, float, float] = (-0.489, 51.28, 0.236, 51.686)

    default_center_lat: float = 51.505
    default_center_lon: float = -0.09
    default_zoom: int = 13

    http_timeout_s: float = 20.0

    cache_ttl_s: float = 120.0
    cache_max_size: int = 512

    search_debounce_s: float = 0.3
    persist_debounce_s: float = 0.5
    geolocation_timeout_s: float = 10.0

    storage_path: str = ".plaquer-state.json"
    markers_path: Optional[str] = None


@lru_cache
def get_settings() -> Settings:
    return Settings()
