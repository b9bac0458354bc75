#!/usr/bin/env python3
"""
Distance formatting.
"""
from typing import Optional


def _group(value: float, fraction_digits: int) -> str:
    text = f"{value:,.{fraction_digits}f}"
    if fraction_digits > 0:
        text = text.rstrip("0").rstrip(".")
    return text


def distance_to_human(meters: Optional[float], fraction_digits: int = 0) -> str:
    """
    Render a distance in meters as "999 m" or "1.5 km".

    Values below 1000 are shown in meters, the rest in kilometers, rounded to
    ``fraction_digits`` decimals with thousands grouping. Absent or zero
    input renders as "0 m".
    """
    if not meters:
        return "0 m"

    fraction_digits = max(fraction_digits or 0, 0)

    if meters < 1000:
        return f"{_group(round(meters, fraction_digits), fraction_digits)} m"
    return f"{_group(round(meters / 1000, fraction_digits), fraction_digits)} km"
