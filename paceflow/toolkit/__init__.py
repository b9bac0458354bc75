"""
Numeric toolkit - null-aware aggregation, formatting, regression and geodesy
"""

from .number import avg, sum_of, max_of, min_of, count_of, first_present, last_present, Accumulator
from .distance import distance_to_human
from .duration import (
    seconds_to_clock,
    millis_to_clock,
    format_millis,
    format_seconds,
    format_millis_to_hours,
)
from .pace import (
    format_pace,
    speed_to_pace,
    sport_has_pace,
    session_has_pace,
    tolerance_moving_speed,
    is_considered_moving,
)
from .regression import Point, LinearRegression
from .geo import haversine_distance, semicircles_to_degrees, degrees_to_semicircles

__all__ = [
    'avg',
    'sum_of',
    'max_of',
    'min_of',
    'count_of',
    'first_present',
    'last_present',
    'Accumulator',
    'distance_to_human',
    'seconds_to_clock',
    'millis_to_clock',
    'format_millis',
    'format_seconds',
    'format_millis_to_hours',
    'format_pace',
    'speed_to_pace',
    'sport_has_pace',
    'session_has_pace',
    'tolerance_moving_speed',
    'is_considered_moving',
    'Point',
    'LinearRegression',
    'haversine_distance',
    'semicircles_to_degrees',
    'degrees_to_semicircles',
]
