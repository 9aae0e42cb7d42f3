from __future__ import annotations

import math
from typing import Dict, List, Optional, Sequence

from access_nav.core.models import (
    AccessibilityFeature,
    Coordinate,
    FeatureStatus,
    FeatureType,
    Route,
    RoutePreferences,
    WeatherCondition,
    WeatherSnapshot,
)
from access_nav.core.route import path_length_m, point_along, straight_path
from access_nav.providers.base import AccessibilityEnricher, Geocoder, RouteCalculator, WeatherProvider

# A handful of Manhattan landmarks so the pipeline runs end-to-end without APIs
KNOWN_PLACES: Dict[str, Coordinate] = {
    "empire state building": Coordinate(lon=-73.9857, lat=40.7484),
    "times square": Coordinate(lon=-73.9855, lat=40.7580),
    "grand central terminal": Coordinate(lon=-73.9772, lat=40.7527),
    "bryant park": Coordinate(lon=-73.9832, lat=40.7536),
    "central park": Coordinate(lon=-73.9654, lat=40.7829),
    "union square": Coordinate(lon=-73.9903, lat=40.7359),
    "brooklyn bridge": Coordinate(lon=-73.9969, lat=40.7061),
}


class MockGeocoder(Geocoder):
    def __init__(self, places: Optional[Dict[str, Coordinate]] = None):
        self.places = {k.lower(): v for k, v in (places or KNOWN_PLACES).items()}

    async def resolve(self, place_name: str) -> Optional[Coordinate]:
        return self.places.get(place_name.strip().lower())


class MockRouteCalculator(RouteCalculator):
    """
    Straight-line path at wheelchair pace. Steeper tolerance and no stairs
    constraint make the synthetic route a little shorter; enough to see the
    preferences flow through.
    """

    speed_mps: float = 0.9
    detour: float = 1.3

    async def compute(self, start: Coordinate, end: Coordinate, prefs: RoutePreferences) -> Optional[Route]:
        path = straight_path(start, end, n_points=12)
        distance = path_length_m(path)
        if distance <= 0:
            return None

        detour = self.detour
        if not prefs.avoid_stairs:
            detour -= 0.1
        if prefs.max_slope_pct >= 10:
            detour -= 0.05
        distance *= detour
        return Route(
            path=tuple(path),
            duration_s=max(1.0, round(distance / self.speed_mps)),
            distance_m=round(distance, 1),
            start=start,
            end=end,
        )


class MockAccessibilityEnricher(AccessibilityEnricher):
    """Deterministic features spaced along the path."""

    _CYCLE = (
        (FeatureType.CURB_CUT, FeatureStatus.ACTIVE, "Curb cut at crossing", 4.0),
        (FeatureType.RAMP, FeatureStatus.ACTIVE, "Wheelchair ramp to sidewalk", 4.5),
        (FeatureType.ELEVATOR, FeatureStatus.INACTIVE, "Subway elevator (out of service)", 2.0),
        (FeatureType.ACCESSIBLE_ENTRANCE, FeatureStatus.UNKNOWN, "Step-free entrance", None),
    )

    def __init__(self, count: int = 6):
        self.count = count

    async def enrich(self, path: Sequence[Coordinate]) -> List[AccessibilityFeature]:
        if not path:
            return []
        out: List[AccessibilityFeature] = []
        for i in range(self.count):
            ftype, status, desc, rating = self._CYCLE[i % len(self._CYCLE)]
            loc = point_along(path, (i + 1) / (self.count + 1))
            out.append(
                AccessibilityFeature(
                    id=f"mock:{i}",
                    type=ftype,
                    location=loc,
                    description=desc,
                    status=status,
                    rating=rating,
                )
            )
        return out


class MockWeatherProvider(WeatherProvider):
    """Conditions that vary smoothly with position."""

    async def fetch(self, coordinate: Coordinate) -> WeatherSnapshot:
        wiggle = math.sin((coordinate.lat + coordinate.lon) * 10)
        wet = wiggle > 0.5
        return WeatherSnapshot(
            temperature_c=round(14.0 + 6.0 * wiggle, 1),
            precipitation=round(max(0.0, wiggle) * 0.6, 2) if wet else 0.0,
            condition=WeatherCondition.RAIN if wet else WeatherCondition.CLEAR,
            icon="10d" if wet else "01d",
            description="light rain" if wet else "clear sky",
            location=coordinate,
        )
