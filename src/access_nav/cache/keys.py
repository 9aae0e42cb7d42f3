"""Redis key naming conventions for the access-nav cache layer."""
from __future__ import annotations

import hashlib

_PREFIX = "an"


def geocode(place_name: str) -> str:
    """Key for a geocoded place name (case and surrounding space insensitive)."""
    h = hashlib.sha256(place_name.strip().lower().encode()).hexdigest()[:16]
    return f"{_PREFIX}:geocode:{h}"


def weather(lat: float, lon: float) -> str:
    """Key for current conditions, bucketed to ~1 km."""
    return f"{_PREFIX}:weather:{lat:.2f},{lon:.2f}"
