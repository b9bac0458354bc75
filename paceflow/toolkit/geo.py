#!/usr/bin/env python3
"""
Geodesic helpers
"""
import math
from typing import Optional

EARTH_RADIUS_METERS = 6371008.8

# FIT stores positions as 32-bit semicircles
SEMICIRCLES_PER_DEGREE = (2 ** 31) / 180.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two points given in degrees."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(a)))


def semicircles_to_degrees(value: Optional[int]) -> Optional[float]:
    if value is None:
        return None
    return value / SEMICIRCLES_PER_DEGREE


def degrees_to_semicircles(value: Optional[float]) -> Optional[int]:
    if value is None:
        return None
    return int(round(value * SEMICIRCLES_PER_DEGREE))
