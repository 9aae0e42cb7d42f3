from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import FrozenSet, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


def round_half_up(x: float) -> int:
    """Round .5 away from zero for positive values (matches what the UI shows)."""
    return int(math.floor(x + 0.5))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Coordinate(BaseModel):
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    lon: float = Field(ge=-180.0, le=180.0)
    lat: float = Field(ge=-90.0, le=90.0)

    def as_lonlat(self) -> Tuple[float, float]:
        return (self.lon, self.lat)

    def as_latlon(self) -> Tuple[float, float]:
        return (self.lat, self.lon)


class RoutePreferences(BaseModel):
    """Accessibility constraints handed to the route source as one snapshot."""

    model_config = ConfigDict(frozen=True)

    max_slope_pct: float = Field(default=8.0, ge=0)
    preferred_surfaces: FrozenSet[str] = frozenset({"paved", "smooth"})
    avoid_stairs: bool = True
    require_elevators: bool = True
    # Inches; 32 in is the usual clear-width minimum for a wheelchair
    min_path_width_in: float = Field(default=32.0, ge=0)


class Route(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: Tuple[Coordinate, ...] = Field(min_length=1)
    duration_s: float = Field(gt=0)
    distance_m: float = Field(ge=0)
    start: Coordinate
    end: Coordinate


class FeatureType(str, Enum):
    RAMP = "ramp"
    ELEVATOR = "elevator"
    CURB_CUT = "curb_cut"
    ACCESSIBLE_ENTRANCE = "accessible_entrance"
    ACCESSIBLE_TOILET = "accessible_toilet"
    ACCESSIBLE_PARKING = "accessible_parking"
    OTHER = "other"


class FeatureStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNKNOWN = "unknown"


class AccessibilityFeature(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: FeatureType
    location: Coordinate
    description: str = ""
    status: FeatureStatus = FeatureStatus.UNKNOWN
    last_updated: datetime = Field(default_factory=_utcnow)
    rating: Optional[float] = Field(default=None, ge=0, le=5)


class WeatherCondition(str, Enum):
    CLEAR = "clear"
    RAIN = "rain"
    SNOW = "snow"
    EXTREME = "extreme"
    OTHER = "other"

    @property
    def is_elevated_risk(self) -> bool:
        return self in _ELEVATED_RISK


_ELEVATED_RISK = frozenset({WeatherCondition.RAIN, WeatherCondition.SNOW, WeatherCondition.EXTREME})


class WeatherSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    temperature_c: float
    precipitation: float = Field(default=0.0, ge=0, le=1)  # 0..1
    condition: WeatherCondition = WeatherCondition.OTHER
    icon: str = ""
    description: str = ""
    location: Coordinate
    fetched_at: datetime = Field(default_factory=_utcnow)

    @property
    def temperature_f(self) -> float:
        return self.temperature_c * 9.0 / 5.0 + 32.0

    @property
    def icon_url(self) -> Optional[str]:
        if not self.icon:
            return None
        return f"https://openweathermap.org/img/wn/{self.icon}@2x.png"

    @property
    def is_elevated_risk(self) -> bool:
        return self.condition.is_elevated_risk


class ProgressStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"


class ProgressState(BaseModel):
    """
    One immutable reading of the simulated progress.

    Remaining values are always derived from the *initial* duration/distance
    captured when the run started, never from a previous reading.
    """

    model_config = ConfigDict(frozen=True)

    status: ProgressStatus = ProgressStatus.IDLE
    fraction: float = Field(default=0.0, ge=0, le=1)
    initial_duration_s: Optional[float] = None
    initial_distance_m: Optional[float] = None
    remaining_duration_s: Optional[int] = None
    remaining_distance_m: Optional[float] = None

    @classmethod
    def begin(cls, duration_s: float, distance_m: float) -> "ProgressState":
        return cls(
            status=ProgressStatus.RUNNING,
            fraction=0.0,
            initial_duration_s=duration_s,
            initial_distance_m=distance_m,
            remaining_duration_s=round_half_up(duration_s),
            remaining_distance_m=distance_m,
        )

    def at(self, fraction: float) -> "ProgressState":
        fraction = min(1.0, max(0.0, fraction))
        left = 1.0 - fraction
        duration = self.initial_duration_s or 0.0
        distance = self.initial_distance_m or 0.0
        return ProgressState(
            status=ProgressStatus.COMPLETED if fraction >= 1.0 else ProgressStatus.RUNNING,
            fraction=fraction,
            initial_duration_s=self.initial_duration_s,
            initial_distance_m=self.initial_distance_m,
            remaining_duration_s=round_half_up(duration * left),
            remaining_distance_m=distance * left,
        )


class NavigationSnapshot(BaseModel):
    """Everything the presentation layer may read, captured at one instant."""

    model_config = ConfigDict(frozen=True)

    route: Optional[Route] = None
    progress: ProgressState = ProgressState()
    features: Tuple[AccessibilityFeature, ...] = ()
    weather: Optional[WeatherSnapshot] = None
    preferences: RoutePreferences = RoutePreferences()
    is_calculating: bool = False
    is_loading_features: bool = False
    last_error: Optional[str] = None
