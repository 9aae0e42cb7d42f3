from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

import requests

from access_nav.cache.store import ModelCache, geocode_cache
from access_nav.config import settings
from access_nav.core.models import Coordinate
from access_nav.errors import ProviderUnavailable
from access_nav.providers.base import Geocoder
from access_nav.providers.http import HTTPClient

log = logging.getLogger(__name__)


class NominatimGeocoder(Geocoder):
    """
    OpenStreetMap Nominatim search:
      GET /search?q=<text>&format=jsonv2&limit=1 -> [{"lat": "...", "lon": "..."}]

    An empty result list is "not found". Any HTTP failure, including a 429
    from Nominatim's rate limit, is ``ProviderUnavailable``. Positive hits are
    cached in-process and in Redis; misses are not cached so a later retry
    can succeed.
    """

    def __init__(
        self,
        http: Optional[HTTPClient] = None,
        base_url: Optional[str] = None,
        cache: Optional[ModelCache[str, Coordinate]] = None,
    ):
        self.http = http or HTTPClient(
            user_agent=settings.user_agent,
            timeout_s=settings.http_timeout_s,
            tries=settings.http_tries,
            backoff_s=settings.http_backoff_s,
        )
        self.base_url = (base_url or settings.nominatim_url).rstrip("/")
        self.cache = cache if cache is not None else geocode_cache()
        self._seen: Dict[str, Coordinate] = {}

    async def resolve(self, place_name: str) -> Optional[Coordinate]:
        return await asyncio.to_thread(self._resolve, place_name)

    def _resolve(self, place_name: str) -> Optional[Coordinate]:
        name = place_name.strip().lower()
        if name in self._seen:
            return self._seen[name]

        coord = self.cache.get(place_name)
        if coord is not None:
            self._seen[name] = coord
            return coord

        try:
            data = self.http.get_json(
                f"{self.base_url}/search",
                params={"q": place_name.strip(), "format": "jsonv2", "limit": 1},
            )
        except requests.RequestException as e:
            status = getattr(e.response, "status_code", None)
            raise ProviderUnavailable(f"Nominatim search for {place_name!r} failed (HTTP {status}): {e}") from e

        coord = parse_search(data)
        if coord is None:
            log.info("Nominatim: no match for %r", place_name)
            return None

        self._seen[name] = coord
        self.cache.put(place_name, coord)
        return coord


def parse_search(data) -> Optional[Coordinate]:
    if not isinstance(data, list) or not data:
        return None
    hit = data[0]
    try:
        return Coordinate(lon=float(hit["lon"]), lat=float(hit["lat"]))
    except (KeyError, TypeError, ValueError):
        log.warning("Nominatim: unusable hit %r", hit)
        return None
