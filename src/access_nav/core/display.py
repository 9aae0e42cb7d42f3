"""Text for the presentation layer: remaining time, distance, weather badges."""
from __future__ import annotations

import math
from typing import Optional

from access_nav.core.models import ProgressState, WeatherSnapshot, round_half_up

_MI_PER_KM = 0.621371

WEATHER_WARNING = "Weather conditions may affect travel time"


def format_duration(seconds: float) -> str:
    """
    "45 min" under an hour; "2 hr" or "1 hr 14 min" otherwise.

    >>> format_duration(6840)
    '1 hr 54 min'
    """
    minutes = seconds / 60.0
    if minutes < 60:
        return f"{round_half_up(minutes)} min"
    hours = math.floor(seconds / 3600.0)
    rem = round_half_up(minutes % 60)
    if rem == 0:
        return f"{hours} hr"
    if rem == 60:
        return f"{hours + 1} hr"
    return f"{hours} hr {rem} min"


def format_distance_mi(meters: float) -> str:
    return f"{meters / 1000.0 * _MI_PER_KM:.1f} mi"


def progress_heading(fraction: float) -> str:
    return "Estimated Time" if fraction < 0.05 else "Time Remaining"


def percent_complete(fraction: float) -> Optional[int]:
    if fraction <= 0:
        return None
    return round_half_up(fraction * 100)


def format_temperature_f(weather: WeatherSnapshot) -> str:
    return f"{round_half_up(weather.temperature_f)}°F"


def format_precipitation(weather: WeatherSnapshot) -> str:
    return f"{round_half_up(weather.precipitation * 100)}%"


def weather_warning(weather: Optional[WeatherSnapshot]) -> Optional[str]:
    if weather is not None and weather.is_elevated_risk:
        return WEATHER_WARNING
    return None


def progress_summary(progress: ProgressState) -> dict:
    """Display strings for the time/distance badge; empty when nothing is running."""
    if progress.remaining_duration_s is None:
        return {}
    out = {
        "heading": progress_heading(progress.fraction),
        "remaining": format_duration(progress.remaining_duration_s),
    }
    if progress.remaining_distance_m is not None:
        out["distance"] = format_distance_mi(progress.remaining_distance_m)
    pct = percent_complete(progress.fraction)
    if pct is not None:
        out["complete"] = f"{pct}% complete"
    return out
