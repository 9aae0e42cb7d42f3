import asyncio
from collections import defaultdict
from typing import Dict, List, Optional

import pytest
import redis
import requests
import requests.adapters

from access_nav.core.models import (
    AccessibilityFeature,
    Coordinate,
    FeatureType,
    Route,
    WeatherCondition,
    WeatherSnapshot,
)
from access_nav.core.orchestrator import Orchestrator
from access_nav.errors import ProviderUnavailable
from access_nav.providers.base import AccessibilityEnricher, Geocoder, RouteCalculator, WeatherProvider

PLACES = {
    "Times Square": Coordinate(lon=-73.9855, lat=40.7580),
    "Central Park": Coordinate(lon=-73.9654, lat=40.7829),
    "Union Square": Coordinate(lon=-73.9903, lat=40.7359),
    "Bryant Park": Coordinate(lon=-73.9832, lat=40.7536),
}


class FakeGeocoder(Geocoder):
    def __init__(self, places=None, unavailable=()):
        self.places = dict(PLACES if places is None else places)
        self.unavailable = set(unavailable)
        self.calls: List[str] = []

    async def resolve(self, place_name):
        self.calls.append(place_name)
        if place_name in self.unavailable:
            raise ProviderUnavailable(f"geocoder down for {place_name}")
        return self.places.get(place_name)


class FakeRouter(RouteCalculator):
    def __init__(self, duration_s=7200.0, distance_m=2500.0, no_route=False, error=None):
        self.duration_s = duration_s
        self.distance_m = distance_m
        self.no_route = no_route
        self.error = error
        self.calls = []

    async def compute(self, start, end, prefs):
        self.calls.append((start, end, prefs))
        if self.error is not None:
            raise self.error
        if self.no_route:
            return None
        return Route(
            path=(start, end),
            duration_s=self.duration_s,
            distance_m=self.distance_m,
            start=start,
            end=end,
        )


def make_feature(fid: str, lon=-73.98, lat=40.75) -> AccessibilityFeature:
    return AccessibilityFeature(
        id=fid,
        type=FeatureType.RAMP,
        location=Coordinate(lon=lon, lat=lat),
        description=f"ramp {fid}",
    )


class GatedEnricher(AccessibilityEnricher):
    """Call N blocks until ``release(N)``; returns ``results[N]`` or raises it."""

    def __init__(self, results: Optional[Dict[int, object]] = None):
        self.results = results or {}
        self.gates = defaultdict(asyncio.Event)
        self.calls = 0

    def release(self, i: int) -> None:
        self.gates[i].set()

    async def enrich(self, path):
        i = self.calls
        self.calls += 1
        await self.gates[i].wait()
        res = self.results.get(i, [])
        if isinstance(res, Exception):
            raise res
        return res


class InstantEnricher(AccessibilityEnricher):
    def __init__(self, features=None, error=None):
        self.features = features or []
        self.error = error

    async def enrich(self, path):
        if self.error is not None:
            raise self.error
        return list(self.features)


def make_weather(coordinate: Coordinate, temp=20.0, condition=WeatherCondition.CLEAR) -> WeatherSnapshot:
    return WeatherSnapshot(temperature_c=temp, condition=condition, icon="01d", location=coordinate)


class FakeWeather(WeatherProvider):
    def __init__(self, error=None):
        self.error = error
        self.calls: List[Coordinate] = []

    async def fetch(self, coordinate):
        self.calls.append(coordinate)
        if self.error is not None:
            raise self.error
        return make_weather(coordinate)


class GatedWeather(WeatherProvider):
    def __init__(self):
        self.gates = defaultdict(asyncio.Event)
        self.calls: List[Coordinate] = []

    def release(self, i: int) -> None:
        self.gates[i].set()

    async def fetch(self, coordinate):
        i = len(self.calls)
        self.calls.append(coordinate)
        await self.gates[i].wait()
        return make_weather(coordinate, temp=float(i))


class FakeClock:
    def __init__(self, t: float = 1000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def router():
    return FakeRouter()


@pytest.fixture
def weather():
    return FakeWeather()


@pytest.fixture
def build_orchestrator(geocoder, router, weather):
    def _build(enricher=None, **kwargs):
        kwargs.setdefault("tick_s", 3600.0)  # tests drive ticks by hand
        return Orchestrator(
            geocoder,
            router,
            enricher or InstantEnricher([make_feature("f1")]),
            kwargs.pop("weather", weather),
            **kwargs,
        )

    return _build


async def settle(n: int = 5) -> None:
    """Let scheduled tasks run a few loop iterations."""
    for _ in range(n):
        await asyncio.sleep(0)


class FakeHTTP:
    """Stands in for HTTPClient; records calls and replays canned payloads."""

    def __init__(self, payload=None, error=None):
        self.payload = payload
        self.error = error
        self.calls = []

    def get_json(self, url, params=None, headers=None, timeout_s=None):
        self.calls.append(("GET", url, params))
        if self.error is not None:
            raise self.error
        return self.payload

    def post_json(self, url, json=None, data=None, headers=None, timeout_s=None):
        self.calls.append(("POST", url, json if json is not None else data))
        if self.error is not None:
            raise self.error
        return self.payload


class StatusAdapter(requests.adapters.BaseAdapter):
    """Transport adapter that answers every request with a fixed status."""

    def __init__(self, status: int, body: bytes = b"{}"):
        super().__init__()
        self.status = status
        self.body = body
        self.sent = 0

    def send(self, request, **kwargs):
        self.sent += 1
        resp = requests.Response()
        resp.status_code = self.status
        resp.url = request.url
        resp.request = request
        resp._content = self.body
        return resp

    def close(self):
        pass


class FakeRedis:
    """In-memory subset of ``redis.Redis`` with ``decode_responses=True``."""

    def __init__(self, fail=False):
        self.store: Dict[str, str] = {}
        self.ttls: Dict[str, Optional[int]] = {}
        self.fail = fail

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("redis is down")

    def get(self, key):
        self._check()
        return self.store.get(key)

    def set(self, key, value, ex=None):
        self._check()
        self.store[key] = value
        self.ttls[key] = ex
        return True

    def delete(self, key):
        self._check()
        self.ttls.pop(key, None)
        return 1 if self.store.pop(key, None) is not None else 0
