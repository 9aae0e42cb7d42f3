from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from access_nav.cache.store import ModelCache, weather_cache
from access_nav.config import settings
from access_nav.core.models import Coordinate, WeatherCondition, WeatherSnapshot
from access_nav.errors import EnrichmentFailure
from access_nav.providers.base import WeatherProvider
from access_nav.providers.http import HTTPClient

log = logging.getLogger(__name__)

# mm of rain+snow in the last hour treated as "fully wet"
_PRECIP_FULL_MM = 10.0


def condition_from_code(code: int) -> WeatherCondition:
    """
    OpenWeatherMap condition ids:
      2xx thunderstorm, 3xx drizzle, 5xx rain, 6xx snow, 7xx atmosphere,
      800 clear, 80x clouds; 781 is a tornado.
    """
    if 200 <= code < 300 or code == 781 or code >= 900:
        return WeatherCondition.EXTREME
    if 300 <= code < 400 or 500 <= code < 600:
        return WeatherCondition.RAIN
    if 600 <= code < 700:
        return WeatherCondition.SNOW
    if code == 800:
        return WeatherCondition.CLEAR
    return WeatherCondition.OTHER


def parse_current(data: Dict[str, Any], coordinate: Coordinate) -> WeatherSnapshot:
    try:
        temp = float(data["main"]["temp"])
        w = (data.get("weather") or [{}])[0]
        code = int(w.get("id", 0))
    except (KeyError, TypeError, ValueError) as e:
        raise EnrichmentFailure(f"unexpected OpenWeatherMap payload: {e}") from e

    mm = float((data.get("rain") or {}).get("1h", 0.0)) + float((data.get("snow") or {}).get("1h", 0.0))
    precip = max(0.0, min(1.0, mm / _PRECIP_FULL_MM))

    return WeatherSnapshot(
        temperature_c=temp,
        precipitation=precip,
        condition=condition_from_code(code),
        icon=str(w.get("icon") or ""),
        description=str(w.get("description") or ""),
        location=coordinate,
    )


class OpenWeatherMapProvider(WeatherProvider):
    """Current weather from OpenWeatherMap (``/weather``, metric units)."""

    def __init__(
        self,
        http: Optional[HTTPClient] = None,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        cache: Optional[ModelCache[Coordinate, WeatherSnapshot]] = None,
    ):
        self.http = http or HTTPClient(
            user_agent=settings.user_agent,
            timeout_s=settings.http_timeout_s,
            tries=settings.http_tries,
            backoff_s=settings.http_backoff_s,
        )
        self.base_url = (base_url or settings.owm_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.owm_api_key
        self.cache = cache if cache is not None else weather_cache()

    async def fetch(self, coordinate: Coordinate) -> WeatherSnapshot:
        return await asyncio.to_thread(self._fetch, coordinate)

    def _fetch(self, coordinate: Coordinate) -> WeatherSnapshot:
        if not self.api_key:
            raise EnrichmentFailure("OpenWeatherMap API key not configured (ACCESS_NAV_OWM_API_KEY)")

        cached = self.cache.get(coordinate)
        if cached is not None:
            # Bucketed key; tag the hit with the coordinate actually asked for
            return cached.model_copy(update={"location": coordinate})

        data = self.http.get_json(
            f"{self.base_url}/weather",
            params={"lat": coordinate.lat, "lon": coordinate.lon, "units": "metric", "appid": self.api_key},
        )
        snap = parse_current(data, coordinate)
        self.cache.put(coordinate, snap)
        return snap
