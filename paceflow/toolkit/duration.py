#!/usr/bin/env python3
"""
Duration formatting helpers.

Clock strings are zero padded ("01:01:01", "01:01:00:00" when a day segment
is needed); compact strings read like "1d 2h 51m 22s".
"""
from typing import Optional, Tuple

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 60 * SECONDS_PER_MINUTE
SECONDS_PER_DAY = 24 * SECONDS_PER_HOUR


def split_seconds(seconds: Optional[float]) -> Tuple[int, int, int, int]:
    """Split a duration into (days, hours, minutes, seconds), rounding to the nearest second."""
    total = int(round(seconds or 0))
    if total < 0:
        total = 0
    days, rest = divmod(total, SECONDS_PER_DAY)
    hours, rest = divmod(rest, SECONDS_PER_HOUR)
    minutes, secs = divmod(rest, SECONDS_PER_MINUTE)
    return days, hours, minutes, secs


def seconds_to_clock(seconds: Optional[float]) -> str:
    """Format seconds as HH:MM:SS, or DD:HH:MM:SS when the duration spans a day."""
    days, hours, minutes, secs = split_seconds(seconds)
    if days > 0:
        return f"{days:02d}:{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def millis_to_clock(millis: Optional[float]) -> str:
    """Same as :func:`seconds_to_clock` for milliseconds."""
    return seconds_to_clock((millis or 0) / 1000)


def format_millis(millis: Optional[float]) -> str:
    """
    Compact representation such as "1d 2h 51m 22s".

    Zero-valued units are omitted; "0s" is returned when every unit is zero.
    """
    if not millis or millis <= 0:
        return "0s"

    # Truncate sub-second remainders, a running clock never rounds up
    days, hours, minutes, secs = split_seconds(int(millis // 1000))

    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0:
        parts.append(f"{secs}s")

    return " ".join(parts) if parts else "0s"


def format_seconds(seconds: Optional[float]) -> str:
    """Same as :func:`format_millis` for seconds."""
    return format_millis((seconds or 0) * 1000)


def format_millis_to_hours(millis: Optional[float]) -> str:
    """Format as "1:00:22" with the hour segment only when non-zero ("21:55", "0:00")."""
    if not millis or millis <= 0:
        return "0:00"

    total = int(millis // 1000)
    hours, rest = divmod(total, SECONDS_PER_HOUR)
    minutes, secs = divmod(rest, SECONDS_PER_MINUTE)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
