"""Centralized settings for the access-nav orchestrator."""
from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_prefix": "ACCESS_NAV_"}

    # Redis: empty string means disabled (graceful fallback)
    redis_url: str = ""

    # Outbound HTTP
    user_agent: str = "AccessNav/0.1.0 (contact: you@example.com)"
    http_timeout_s: int = 20
    http_tries: int = 3
    http_backoff_s: float = 0.8

    # Data sources: empty API keys mean the source reports itself unavailable
    nominatim_url: str = "https://nominatim.openstreetmap.org"
    ors_url: str = "https://api.openrouteservice.org"
    ors_api_key: str = ""
    overpass_url: str = "https://overpass-api.de/api/interpreter"
    overpass_buffer_m: float = 50.0
    overpass_max_features: int = 200
    owm_url: str = "https://api.openweathermap.org/data/2.5"
    owm_api_key: str = ""

    # TTL values in seconds for each cached data type
    ttl_geocode: int = 86400          # 24 h, place names rarely move
    ttl_weather: int = 600            # 10 min, current conditions

    # Progress simulation
    progress_tick_s: float = 1.0
    progress_step: float = 0.005

    # Presentation
    error_display_s: float = 6.0
    default_lon: float = -73.985      # NYC
    default_lat: float = 40.748

    # "live", "mock", or "+"-joined tokens (see providers.combined)
    provider: str = "live"


settings = Settings()
