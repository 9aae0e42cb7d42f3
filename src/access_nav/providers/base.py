from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from access_nav.core.models import AccessibilityFeature, Coordinate, Route, RoutePreferences, WeatherSnapshot


class Geocoder(ABC):
    """Resolve free text to a coordinate. ``None`` means no match."""

    @abstractmethod
    async def resolve(self, place_name: str) -> Optional[Coordinate]:
        raise NotImplementedError


class RouteCalculator(ABC):
    """Compute a path between two coordinates. ``None`` means no usable route."""

    @abstractmethod
    async def compute(self, start: Coordinate, end: Coordinate, prefs: RoutePreferences) -> Optional[Route]:
        raise NotImplementedError


class AccessibilityEnricher(ABC):
    """Accessibility features near a path. May raise; callers treat that as empty."""

    @abstractmethod
    async def enrich(self, path: Sequence[Coordinate]) -> List[AccessibilityFeature]:
        raise NotImplementedError


class WeatherProvider(ABC):
    """Current conditions at a coordinate. Raises when unavailable."""

    @abstractmethod
    async def fetch(self, coordinate: Coordinate) -> WeatherSnapshot:
        raise NotImplementedError
