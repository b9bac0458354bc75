#!/usr/bin/env python3
"""
Pace helpers - pace formatting and sport/moving classification
"""
from typing import Optional

from ..const import (
    PACE_SPORTS,
    SPORT_CYCLING,
    SPORT_RUNNING,
    TOLERANCE_MOVING_SPEED_CYCLING_LIKE_SPORT,
    TOLERANCE_MOVING_SPEED_RUNNING_LIKE_SPORT,
    TOLERANCE_MOVING_SPEED_SLOW_MOVING_SPORT,
)


def format_pace(seconds_per_unit: Optional[float]) -> str:
    """
    Render a pace in seconds per unit as "M:SS".

    ``None`` renders as "-". Rounding that reaches 60 seconds carries into
    the minute segment ("4:59.7" becomes "5:00").
    """
    if seconds_per_unit is None:
        return "-"

    total = int(round(max(seconds_per_unit, 0)))
    minutes, seconds = divmod(total, 60)
    return f"{minutes}:{seconds:02d}"


def speed_to_pace(speed: Optional[float]) -> Optional[float]:
    """Convert m/s into seconds per kilometer; stationary speeds have no pace."""
    if speed is None or speed <= 0:
        return None
    return 1000.0 / speed


def sport_has_pace(sport: Optional[str]) -> bool:
    """Whether pace analytics apply to the sport."""
    return sport in PACE_SPORTS


def session_has_pace(session) -> bool:
    """
    True when the session's sport supports pace and at least one record
    carries a pace value.
    """
    if not sport_has_pace(session.sport):
        return False
    return any(record.pace is not None for record in session.records)


def tolerance_moving_speed(sport: Optional[str]) -> float:
    """Minimum speed (m/s) for a sample of the given sport to count as moving."""
    if sport == SPORT_RUNNING:
        return TOLERANCE_MOVING_SPEED_RUNNING_LIKE_SPORT
    if sport == SPORT_CYCLING:
        return TOLERANCE_MOVING_SPEED_CYCLING_LIKE_SPORT
    return TOLERANCE_MOVING_SPEED_SLOW_MOVING_SPORT


def is_considered_moving(sport: Optional[str], speed: Optional[float]) -> bool:
    if speed is None:
        return False
    return speed > tolerance_moving_speed(sport)
