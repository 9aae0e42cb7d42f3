from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from access_nav.config import settings
from access_nav.core.models import AccessibilityFeature, Coordinate, FeatureStatus, FeatureType
from access_nav.core.route import corridor, corridor_bbox, within
from access_nav.errors import EnrichmentFailure
from access_nav.providers.base import AccessibilityEnricher
from access_nav.providers.http import HTTPClient

log = logging.getLogger(__name__)


def build_query(bbox: tuple, timeout_s: int = 25) -> str:
    s, w, n, e = bbox
    b = f"({s:.6f},{w:.6f},{n:.6f},{e:.6f})"
    return (
        f"[out:json][timeout:{timeout_s}];\n"
        "(\n"
        f'  node["wheelchair"]{b};\n'
        f'  node["highway"="elevator"]{b};\n'
        f'  node["kerb"~"^(lowered|flush)$"]{b};\n'
        f'  node["ramp:wheelchair"]{b};\n'
        f'  node["toilets:wheelchair"="yes"]{b};\n'
        f'  node["capacity:disabled"]{b};\n'
        ");\n"
        "out meta;"
    )


def _feature_type(tags: Dict[str, str]) -> FeatureType:
    if tags.get("highway") == "elevator":
        return FeatureType.ELEVATOR
    if tags.get("kerb") in ("lowered", "flush"):
        return FeatureType.CURB_CUT
    if "ramp:wheelchair" in tags or tags.get("ramp") == "yes":
        return FeatureType.RAMP
    if tags.get("toilets:wheelchair") == "yes" or tags.get("amenity") == "toilets":
        return FeatureType.ACCESSIBLE_TOILET
    if "capacity:disabled" in tags or tags.get("amenity") == "parking":
        return FeatureType.ACCESSIBLE_PARKING
    if "entrance" in tags or tags.get("door"):
        return FeatureType.ACCESSIBLE_ENTRANCE
    return FeatureType.OTHER


def _feature_status(tags: Dict[str, str]) -> FeatureStatus:
    if tags.get("disused") == "yes" or tags.get("operational_status") in ("broken", "closed", "out_of_order"):
        return FeatureStatus.INACTIVE
    flag = tags.get("wheelchair") or tags.get("ramp:wheelchair") or tags.get("toilets:wheelchair")
    if flag == "no":
        return FeatureStatus.INACTIVE
    if flag in ("yes", "designated", "limited"):
        return FeatureStatus.ACTIVE
    if tags.get("highway") == "elevator" or tags.get("kerb") in ("lowered", "flush"):
        return FeatureStatus.ACTIVE
    return FeatureStatus.UNKNOWN


_LABELS = {
    FeatureType.RAMP: "Wheelchair ramp",
    FeatureType.ELEVATOR: "Elevator",
    FeatureType.CURB_CUT: "Curb cut",
    FeatureType.ACCESSIBLE_ENTRANCE: "Accessible entrance",
    FeatureType.ACCESSIBLE_TOILET: "Accessible toilet",
    FeatureType.ACCESSIBLE_PARKING: "Accessible parking",
    FeatureType.OTHER: "Wheelchair-accessible place",
}


def _describe(ftype: FeatureType, tags: Dict[str, str]) -> str:
    label = _LABELS[ftype]
    name = tags.get("name")
    desc = f"{label}: {name}" if name else label
    note = tags.get("wheelchair:description") or tags.get("description")
    return f"{desc} ({note})" if note else desc


def _parse_timestamp(raw: Optional[str]) -> datetime:
    if raw:
        try:
            return datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now(timezone.utc)


def parse_elements(data: Dict[str, Any]) -> List[AccessibilityFeature]:
    if not isinstance(data, dict) or "elements" not in data:
        raise EnrichmentFailure("Overpass response has no 'elements'")

    out: List[AccessibilityFeature] = []
    for el in data["elements"]:
        if el.get("type") != "node" or "lat" not in el or "lon" not in el:
            continue
        tags = el.get("tags") or {}
        ftype = _feature_type(tags)
        try:
            out.append(
                AccessibilityFeature(
                    id=f"osm:node:{el['id']}",
                    type=ftype,
                    location=Coordinate(lon=float(el["lon"]), lat=float(el["lat"])),
                    description=_describe(ftype, tags),
                    status=_feature_status(tags),
                    last_updated=_parse_timestamp(el.get("timestamp")),
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            log.debug("Overpass: skipping element %s: %s", el.get("id"), e)
    return out


class OverpassAccessibilityEnricher(AccessibilityEnricher):
    """
    Accessibility features from OpenStreetMap via the Overpass API.

    Queries the bounding box of a corridor around the route, then keeps only
    nodes actually inside the corridor.
    """

    def __init__(
        self,
        http: Optional[HTTPClient] = None,
        url: Optional[str] = None,
        buffer_m: Optional[float] = None,
        max_features: Optional[int] = None,
    ):
        self.http = http or HTTPClient(
            user_agent=settings.user_agent,
            timeout_s=max(settings.http_timeout_s, 30),
            tries=settings.http_tries,
            backoff_s=settings.http_backoff_s,
        )
        self.url = url or settings.overpass_url
        self.buffer_m = buffer_m if buffer_m is not None else settings.overpass_buffer_m
        self.max_features = max_features if max_features is not None else settings.overpass_max_features

    async def enrich(self, path: Sequence[Coordinate]) -> List[AccessibilityFeature]:
        return await asyncio.to_thread(self._enrich, list(path))

    def _enrich(self, path: List[Coordinate]) -> List[AccessibilityFeature]:
        if not path:
            return []

        geom = corridor(path, self.buffer_m)
        data = self.http.post_json(self.url, data={"data": build_query(corridor_bbox(geom))})

        seen = set()
        out: List[AccessibilityFeature] = []
        for f in parse_elements(data):
            if f.id in seen or not within(geom, f.location):
                continue
            seen.add(f.id)
            out.append(f)
            if len(out) >= self.max_features:
                break
        return out
