from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from access_nav.config import settings
from access_nav.core.models import Coordinate, Route, RoutePreferences
from access_nav.errors import ProviderUnavailable
from access_nav.providers.base import RouteCalculator
from access_nav.providers.http import HTTPClient

log = logging.getLogger(__name__)

_M_PER_INCH = 0.0254

# ORS accepts only these incline limits (percent)
_ORS_INCLINES = (3, 6, 10, 15)


def _ors_incline(max_slope_pct: float) -> int:
    """Largest ORS incline bucket that does not exceed the preference."""
    allowed = [v for v in _ORS_INCLINES if v <= max_slope_pct]
    return allowed[-1] if allowed else _ORS_INCLINES[0]


def build_request(start: Coordinate, end: Coordinate, prefs: RoutePreferences) -> Dict[str, Any]:
    """
    Map preferences onto the ORS wheelchair profile. No feasibility checks;
    an impossible combination is the source's problem.
    """
    restrictions: Dict[str, Any] = {
        "maximum_incline": _ors_incline(prefs.max_slope_pct),
        "minimum_width": round(prefs.min_path_width_in * _M_PER_INCH, 2),
    }
    surfaces = set(prefs.preferred_surfaces)
    if "paved" in surfaces:
        restrictions["surface_type"] = "paved"
    elif surfaces:
        restrictions["surface_type"] = sorted(surfaces)[0]
    if "smooth" in surfaces:
        restrictions["smoothness_type"] = "good"

    options: Dict[str, Any] = {"profile_params": {"restrictions": restrictions}}
    if prefs.avoid_stairs:
        options["avoid_features"] = ["steps"]

    return {
        "coordinates": [list(start.as_lonlat()), list(end.as_lonlat())],
        "options": options,
        "units": "m",
        # ORS has no elevator option; echoed back so the choice is visible in responses
        "id": f"require_elevators={str(prefs.require_elevators).lower()}",
    }


def parse_route(data: Dict[str, Any], start: Coordinate, end: Coordinate) -> Optional[Route]:
    features = (data or {}).get("features") or []
    if not features:
        return None

    feat = features[0]
    coords = ((feat.get("geometry") or {}).get("coordinates")) or []
    summary = (feat.get("properties") or {}).get("summary") or {}

    path = []
    for c in coords:
        try:
            path.append(Coordinate(lon=float(c[0]), lat=float(c[1])))
        except (IndexError, TypeError, ValueError):
            continue
    if not path:
        return None

    duration = float(summary.get("duration") or 0.0)
    distance = float(summary.get("distance") or 0.0)
    if duration <= 0:
        # Degenerate (start == end or empty summary)
        return None

    return Route(path=tuple(path), duration_s=duration, distance_m=distance, start=start, end=end)


class ORSRouteCalculator(RouteCalculator):
    """OpenRouteService directions, wheelchair profile, GeoJSON response."""

    def __init__(
        self,
        http: Optional[HTTPClient] = None,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
    ):
        self.http = http or HTTPClient(
            user_agent=settings.user_agent,
            timeout_s=settings.http_timeout_s,
            tries=settings.http_tries,
            backoff_s=settings.http_backoff_s,
        )
        self.base_url = (base_url or settings.ors_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.ors_api_key

    async def compute(self, start: Coordinate, end: Coordinate, prefs: RoutePreferences) -> Optional[Route]:
        return await asyncio.to_thread(self._compute, start, end, prefs)

    def _compute(self, start: Coordinate, end: Coordinate, prefs: RoutePreferences) -> Optional[Route]:
        if not self.api_key:
            raise ProviderUnavailable("OpenRouteService API key not configured (ACCESS_NAV_ORS_API_KEY)")

        url = f"{self.base_url}/v2/directions/wheelchair/geojson"
        try:
            data = self.http.post_json(
                url,
                json=build_request(start, end, prefs),
                headers={"Authorization": self.api_key},
            )
        except requests.HTTPError as e:
            status = getattr(e.response, "status_code", None)
            # ORS answers 400/404 when no route satisfies the constraints
            if status in (400, 404):
                log.info("ORS: no route (%s)", status)
                return None
            raise

        route = parse_route(data, start, end)
        if route is None:
            log.info("ORS: response had no usable path")
        return route
