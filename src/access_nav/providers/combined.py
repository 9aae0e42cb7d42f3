from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from access_nav.providers.base import AccessibilityEnricher, Geocoder, RouteCalculator, WeatherProvider


@dataclass
class Services:
    """The four external collaborators the orchestrator is built from."""

    geocoder: Geocoder
    router: RouteCalculator
    enricher: AccessibilityEnricher
    weather: WeatherProvider


_ALIASES: Dict[str, str] = {
    "live": "nominatim+ors+overpass+owm",
    "mock": "mock-geocode+mock-route+mock-access+mock-weather",
}


def build_services(provider_str: str) -> Services:
    """
    Build the service bundle from a string like:
      "live"                       -> all real sources
      "mock"                       -> all deterministic doubles
      "mock-geocode+ors+overpass+mock-weather"

    Each of the four slots must be filled exactly once.
    """
    spec = _ALIASES.get(provider_str.strip().lower(), provider_str)
    tokens = [t.strip().lower() for t in spec.split("+") if t.strip()]

    # Local imports so mock-only setups never touch the HTTP providers
    from access_nav.providers import mock

    slots: Dict[str, object] = {}

    def put(slot: str, token: str, obj: object) -> None:
        if slot in slots:
            raise ValueError(f"Provider slot '{slot}' given twice (token '{token}')")
        slots[slot] = obj

    for t in tokens:
        if t == "nominatim":
            from access_nav.providers.nominatim import NominatimGeocoder

            put("geocoder", t, NominatimGeocoder())
        elif t == "ors":
            from access_nav.providers.ors import ORSRouteCalculator

            put("router", t, ORSRouteCalculator())
        elif t == "overpass":
            from access_nav.providers.overpass import OverpassAccessibilityEnricher

            put("enricher", t, OverpassAccessibilityEnricher())
        elif t in ("owm", "openweather"):
            from access_nav.providers.openweather import OpenWeatherMapProvider

            put("weather", t, OpenWeatherMapProvider())
        elif t == "mock-geocode":
            put("geocoder", t, mock.MockGeocoder())
        elif t == "mock-route":
            put("router", t, mock.MockRouteCalculator())
        elif t == "mock-access":
            put("enricher", t, mock.MockAccessibilityEnricher())
        elif t == "mock-weather":
            put("weather", t, mock.MockWeatherProvider())
        else:
            raise ValueError(
                f"Unknown provider token: '{t}' (supported: live, mock, nominatim, ors, overpass, owm, "
                "mock-geocode, mock-route, mock-access, mock-weather)"
            )

    missing = [s for s in ("geocoder", "router", "enricher", "weather") if s not in slots]
    if missing:
        raise ValueError(f"Provider string '{provider_str}' leaves slots unfilled: {', '.join(missing)}")

    return Services(**slots)  # type: ignore[arg-type]
