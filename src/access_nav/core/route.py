"""Route geometry: distances along a path and the search corridor around it."""
from __future__ import annotations

from math import atan2, cos, radians, sin, sqrt
from typing import List, Sequence, Tuple

from shapely import prepare
from shapely.geometry import LineString, Point
from shapely.geometry.base import BaseGeometry

from access_nav.core.models import Coordinate

_M_PER_DEG_LAT = 111_320.0


# ---------------------------------------------------------------------------
# Geo helpers
# ---------------------------------------------------------------------------

def haversine_m(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in metres between two WGS-84 points."""
    R = 6_371_000.0  # Earth radius in metres
    lat1r, lon1r, lat2r, lon2r = map(radians, [a.lat, a.lon, b.lat, b.lon])
    dlat = lat2r - lat1r
    dlon = lon2r - lon1r
    h = sin(dlat / 2) ** 2 + cos(lat1r) * cos(lat2r) * sin(dlon / 2) ** 2
    return R * 2 * atan2(sqrt(h), sqrt(1 - h))


def path_length_m(path: Sequence[Coordinate]) -> float:
    return sum(haversine_m(path[i - 1], path[i]) for i in range(1, len(path)))


def interpolate(a: Coordinate, b: Coordinate, frac: float) -> Coordinate:
    """Linear interpolation between two geographic points (frac in [0,1])."""
    frac = max(0.0, min(1.0, frac))
    return Coordinate(lon=a.lon + frac * (b.lon - a.lon), lat=a.lat + frac * (b.lat - a.lat))


def point_along(path: Sequence[Coordinate], fraction: float) -> Coordinate:
    """Point at ``fraction`` of the way along ``path`` by distance."""
    if not path:
        raise ValueError("empty path")
    if len(path) == 1:
        return path[0]

    cum: List[float] = [0.0]
    for i in range(1, len(path)):
        cum.append(cum[-1] + haversine_m(path[i - 1], path[i]))

    total = cum[-1]
    if total == 0:
        return path[0]

    target = max(0.0, min(1.0, fraction)) * total
    seg = 0
    while seg < len(path) - 2 and cum[seg + 1] < target:
        seg += 1

    seg_len = cum[seg + 1] - cum[seg]
    u = (target - cum[seg]) / seg_len if seg_len > 0 else 0.0
    return interpolate(path[seg], path[seg + 1], u)


def straight_path(a: Coordinate, b: Coordinate, n_points: int = 12) -> List[Coordinate]:
    n_points = max(2, n_points)
    return [interpolate(a, b, i / (n_points - 1)) for i in range(n_points)]


# ---------------------------------------------------------------------------
# Corridor
# ---------------------------------------------------------------------------

def _buffer_deg(buffer_m: float, lat: float) -> float:
    # Buffer in degrees, widened by longitude shrink so east/west reach is not short
    shrink = max(0.2, cos(radians(lat)))
    return buffer_m / (_M_PER_DEG_LAT * shrink)


def corridor(path: Sequence[Coordinate], buffer_m: float) -> BaseGeometry:
    """Polygon (lon/lat space) covering everything within ``buffer_m`` of the path."""
    if not path:
        raise ValueError("empty path")

    mean_lat = sum(p.lat for p in path) / len(path)
    pad = _buffer_deg(buffer_m, mean_lat)

    if len(path) == 1:
        geom = Point(path[0].lon, path[0].lat).buffer(pad)
    else:
        geom = LineString([p.as_lonlat() for p in path]).buffer(pad)
    prepare(geom)
    return geom


def corridor_bbox(geom: BaseGeometry) -> Tuple[float, float, float, float]:
    """(south, west, north, east) as Overpass expects."""
    min_lon, min_lat, max_lon, max_lat = geom.bounds
    return (min_lat, min_lon, max_lat, max_lon)


def within(geom: BaseGeometry, c: Coordinate) -> bool:
    return geom.covers(Point(c.lon, c.lat))
