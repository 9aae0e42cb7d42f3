import asyncio

import pytest
import requests

from access_nav.core.models import Coordinate, FeatureStatus, FeatureType, RoutePreferences, WeatherCondition
from access_nav.errors import EnrichmentFailure, ProviderUnavailable
from access_nav.providers import mock
from access_nav.providers.combined import build_services
from access_nav.providers.http import HTTPClient
from access_nav.providers.nominatim import NominatimGeocoder
from access_nav.providers.openweather import OpenWeatherMapProvider, condition_from_code, parse_current
from access_nav.providers.ors import ORSRouteCalculator, build_request, parse_route
from access_nav.providers.overpass import OverpassAccessibilityEnricher, build_query, parse_elements
from conftest import FakeHTTP, StatusAdapter

TS = Coordinate(lon=-73.9855, lat=40.7580)
CP = Coordinate(lon=-73.9654, lat=40.7829)


def _http_error(status):
    resp = requests.Response()
    resp.status_code = status
    return requests.HTTPError(f"{status}", response=resp)


# ---------- Nominatim ----------

def test_nominatim_hit_and_cache():
    http = FakeHTTP(payload=[{"lat": "40.7580", "lon": "-73.9855", "display_name": "Times Square"}])
    geo = NominatimGeocoder(http=http, base_url="https://nominatim.test")

    first = asyncio.run(geo.resolve("Times Square"))
    second = asyncio.run(geo.resolve("  times square "))

    assert first == TS
    assert second == TS
    assert len(http.calls) == 1
    method, url, params = http.calls[0]
    assert url == "https://nominatim.test/search"
    assert params["q"] == "Times Square"
    assert params["limit"] == 1


def test_nominatim_no_match_is_none():
    geo = NominatimGeocoder(http=FakeHTTP(payload=[]), base_url="https://nominatim.test")
    assert asyncio.run(geo.resolve("Atlantis")) is None


def test_nominatim_transport_failure_propagates():
    geo = NominatimGeocoder(http=FakeHTTP(error=ProviderUnavailable("down")), base_url="https://nominatim.test")
    with pytest.raises(ProviderUnavailable):
        asyncio.run(geo.resolve("Somewhere"))


@pytest.mark.parametrize("status", [429, 500, 503])
def test_nominatim_http_status_is_unavailable(status):
    adapter = StatusAdapter(status)
    http = HTTPClient(user_agent="access-nav-tests", tries=1)
    http.s.mount("https://", adapter)
    geo = NominatimGeocoder(http=http, base_url="https://nominatim.test")

    with pytest.raises(ProviderUnavailable):
        asyncio.run(geo.resolve("Times Square"))
    assert adapter.sent == 1


# ---------- OpenRouteService ----------

def test_ors_request_maps_preferences():
    prefs = RoutePreferences(
        max_slope_pct=8,
        preferred_surfaces=frozenset({"paved", "smooth"}),
        avoid_stairs=True,
        require_elevators=True,
        min_path_width_in=32,
    )
    body = build_request(TS, CP, prefs)

    assert body["coordinates"] == [[TS.lon, TS.lat], [CP.lon, CP.lat]]
    restrictions = body["options"]["profile_params"]["restrictions"]
    assert restrictions["maximum_incline"] == 6
    assert restrictions["minimum_width"] == pytest.approx(0.81)
    assert restrictions["surface_type"] == "paved"
    assert restrictions["smoothness_type"] == "good"
    assert body["options"]["avoid_features"] == ["steps"]


def test_ors_request_allows_stairs():
    body = build_request(TS, CP, RoutePreferences(avoid_stairs=False, preferred_surfaces=frozenset()))
    assert "avoid_features" not in body["options"]
    assert "surface_type" not in body["options"]["profile_params"]["restrictions"]


ORS_OK = {
    "features": [
        {
            "geometry": {"coordinates": [[-73.9855, 40.7580], [-73.9750, 40.7700], [-73.9654, 40.7829]]},
            "properties": {"summary": {"distance": 3550.2, "duration": 2840.0}},
        }
    ]
}


def test_ors_parse_route():
    route = parse_route(ORS_OK, TS, CP)
    assert len(route.path) == 3
    assert route.duration_s == 2840.0
    assert route.distance_m == 3550.2
    assert route.start == TS and route.end == CP


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"features": []},
        {"features": [{"geometry": {"coordinates": []}, "properties": {"summary": {"duration": 10}}}]},
        {"features": [{"geometry": {"coordinates": [[-73.9, 40.7]]}, "properties": {"summary": {}}}]},
    ],
)
def test_ors_degenerate_payloads_are_no_route(payload):
    assert parse_route(payload, TS, CP) is None


def test_ors_no_route_status_is_none():
    calc = ORSRouteCalculator(http=FakeHTTP(error=_http_error(404)), api_key="k")
    assert asyncio.run(calc.compute(TS, CP, RoutePreferences())) is None


def test_ors_server_error_propagates():
    calc = ORSRouteCalculator(http=FakeHTTP(error=_http_error(502)), api_key="k")
    with pytest.raises(requests.HTTPError):
        asyncio.run(calc.compute(TS, CP, RoutePreferences()))


def test_ors_requires_api_key():
    calc = ORSRouteCalculator(http=FakeHTTP(payload=ORS_OK), api_key="")
    with pytest.raises(ProviderUnavailable):
        asyncio.run(calc.compute(TS, CP, RoutePreferences()))


# ---------- Overpass ----------

OVERPASS = {
    "elements": [
        {"type": "node", "id": 1, "lat": 40.7700, "lon": -73.9750, "timestamp": "2024-03-01T12:00:00Z",
         "tags": {"highway": "elevator", "name": "59 St"}},
        {"type": "node", "id": 2, "lat": 40.7640, "lon": -73.9800, "tags": {"kerb": "lowered"}},
        {"type": "node", "id": 3, "lat": 40.7650, "lon": -73.9790, "tags": {"ramp:wheelchair": "no"}},
        {"type": "node", "id": 4, "lat": 40.7000, "lon": -73.9000, "tags": {"wheelchair": "yes"}},
        {"type": "way", "id": 5, "tags": {"wheelchair": "yes"}},
    ]
}


def test_overpass_query_has_bbox():
    q = build_query((40.0, -74.0, 41.0, -73.0))
    assert q.startswith("[out:json]")
    assert '"highway"="elevator"' in q
    assert "(40.000000,-74.000000,41.000000,-73.000000)" in q


def test_overpass_parse_elements_maps_tags():
    feats = {f.id: f for f in parse_elements(OVERPASS)}

    assert set(feats) == {"osm:node:1", "osm:node:2", "osm:node:3", "osm:node:4"}
    assert feats["osm:node:1"].type == FeatureType.ELEVATOR
    assert feats["osm:node:1"].status == FeatureStatus.ACTIVE
    assert feats["osm:node:1"].description == "Elevator: 59 St"
    assert feats["osm:node:1"].last_updated.year == 2024
    assert feats["osm:node:2"].type == FeatureType.CURB_CUT
    assert feats["osm:node:3"].type == FeatureType.RAMP
    assert feats["osm:node:3"].status == FeatureStatus.INACTIVE
    assert feats["osm:node:4"].type == FeatureType.OTHER


def test_overpass_malformed_payload_raises():
    with pytest.raises(EnrichmentFailure):
        parse_elements({"remark": "runtime error"})


def test_overpass_enricher_keeps_only_corridor():
    http = FakeHTTP(payload=OVERPASS)
    enricher = OverpassAccessibilityEnricher(http=http, url="https://overpass.test", buffer_m=200, max_features=10)

    feats = asyncio.run(enricher.enrich([TS, CP]))

    ids = {f.id for f in feats}
    assert "osm:node:4" not in ids
    assert "osm:node:1" in ids
    assert http.calls[0][0] == "POST"
    assert "data" in http.calls[0][2]


def test_overpass_enricher_empty_path():
    enricher = OverpassAccessibilityEnricher(http=FakeHTTP(payload=OVERPASS), url="https://overpass.test")
    assert asyncio.run(enricher.enrich([])) == []


# ---------- OpenWeatherMap ----------

@pytest.mark.parametrize(
    "code, condition",
    [
        (211, WeatherCondition.EXTREME),
        (781, WeatherCondition.EXTREME),
        (301, WeatherCondition.RAIN),
        (502, WeatherCondition.RAIN),
        (601, WeatherCondition.SNOW),
        (800, WeatherCondition.CLEAR),
        (803, WeatherCondition.OTHER),
        (741, WeatherCondition.OTHER),
    ],
)
def test_owm_condition_codes(code, condition):
    assert condition_from_code(code) == condition


def test_owm_parse_current():
    data = {
        "main": {"temp": 12.5},
        "weather": [{"id": 500, "description": "light rain", "icon": "10d"}],
        "rain": {"1h": 2.5},
    }
    snap = parse_current(data, TS)
    assert snap.temperature_c == 12.5
    assert snap.condition == WeatherCondition.RAIN
    assert snap.precipitation == pytest.approx(0.25)
    assert snap.icon == "10d"
    assert snap.location == TS


def test_owm_parse_garbage_raises():
    with pytest.raises(EnrichmentFailure):
        parse_current({"cod": 401}, TS)


def test_owm_requires_api_key():
    provider = OpenWeatherMapProvider(http=FakeHTTP(payload={}), api_key="")
    with pytest.raises(EnrichmentFailure):
        asyncio.run(provider.fetch(TS))


def test_owm_fetch():
    http = FakeHTTP(payload={"main": {"temp": -3}, "weather": [{"id": 602, "icon": "13n"}]})
    provider = OpenWeatherMapProvider(http=http, base_url="https://owm.test", api_key="k")

    snap = asyncio.run(provider.fetch(CP))

    assert snap.condition == WeatherCondition.SNOW
    _, url, params = http.calls[0]
    assert url == "https://owm.test/weather"
    assert params["units"] == "metric"
    assert params["lat"] == CP.lat


# ---------- Registry and mocks ----------

def test_build_services_aliases():
    svc = build_services("mock")
    assert isinstance(svc.geocoder, mock.MockGeocoder)
    assert isinstance(svc.weather, mock.MockWeatherProvider)

    svc = build_services("live")
    assert isinstance(svc.geocoder, NominatimGeocoder)
    assert isinstance(svc.router, ORSRouteCalculator)


def test_build_services_rejects_bad_strings():
    with pytest.raises(ValueError):
        build_services("mock-geocode+mock-route")
    with pytest.raises(ValueError):
        build_services("mock+nominatim")
    with pytest.raises(ValueError):
        build_services("teleport")


def test_mock_pipeline_end_to_end():
    svc = build_services("mock")

    async def scenario():
        start = await svc.geocoder.resolve("Times Square")
        end = await svc.geocoder.resolve("central park")
        route = await svc.router.compute(start, end, RoutePreferences())
        feats = await svc.enricher.enrich(route.path)
        return route, feats

    route, feats = asyncio.run(scenario())
    assert route.duration_s > 0
    assert route.path[0] == TS
    assert len(feats) == 6
    assert asyncio.run(svc.geocoder.resolve("Atlantis")) is None
