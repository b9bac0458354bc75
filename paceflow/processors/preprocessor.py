#!/usr/bin/env python3
"""
Record preprocessing applied to every decoded session.

Steps, in order: merge samples sharing a timestamp, fill distance/speed from
positions, smooth altitude, compute grade and compute pace.
"""
import logging
from typing import List, Optional

from ..models.activity import Record
from ..toolkit.geo import haversine_distance
from ..toolkit.number import avg, max_of
from ..toolkit.pace import is_considered_moving, speed_to_pace

logger = logging.getLogger(__name__)

_AVERAGED_FIELDS = ('altitude', 'cadence', 'speed', 'distance', 'heart_rate', 'power', 'temperature')


class Preprocessor:
    """Derive missing record metrics in place"""

    def __init__(self, smoothing_distance: float = 30.0, grade_distance: float = 100.0):
        self.smoothing_distance = smoothing_distance if smoothing_distance > 0 else 30.0
        self.grade_distance = grade_distance if grade_distance > 0 else 100.0

    def run(self, sport: str, records: List[Record]) -> List[Record]:
        """Apply every step and return the (possibly shorter) record list."""
        records = self.aggregate_by_timestamp(records)
        self.calculate_distance_and_speed(records)
        self.smooth_altitude(records)
        self.calculate_grade(records)
        self.calculate_pace(sport, records)
        return records

    def aggregate_by_timestamp(self, records: List[Record]) -> List[Record]:
        """
        Merge consecutive records sharing a timestamp.

        Some platforms split one sample over several records with the same
        timestamp. Positions take the first present value, measurements are
        averaged.
        """
        merged: List[Record] = []
        for record in records:
            if merged and merged[-1].timestamp == record.timestamp:
                current = merged[-1]
                if current.position_lat is None:
                    current.position_lat = record.position_lat
                if current.position_long is None:
                    current.position_long = record.position_long
                for name in _AVERAGED_FIELDS:
                    setattr(current, name, avg([getattr(current, name), getattr(record, name)]))
                # A running total: keep the latest
                current.accumulated_power = max_of([current.accumulated_power, record.accumulated_power])
                continue
            merged.append(record)

        if len(merged) != len(records):
            logger.debug(f"Merged {len(records) - len(merged)} records sharing a timestamp")
        return merged

    def calculate_distance_and_speed(self, records: List[Record]) -> None:
        """Fill missing cumulative distance from positions and missing speed from distance."""
        for i in range(1, len(records)):
            rec = records[i]
            prev = records[i - 1]

            point_distance = 0.0
            if rec.distance is None:
                if rec.has_position and prev.has_position:
                    point_distance = haversine_distance(
                        prev.position_lat, prev.position_long,
                        rec.position_lat, rec.position_long,
                    )
                    rec.distance = (prev.distance or 0.0) + point_distance
            elif prev.distance is not None:
                point_distance = rec.distance - prev.distance

            if rec.speed is None and point_distance > 0:
                elapsed = (rec.timestamp - prev.timestamp).total_seconds()
                if elapsed > 0:
                    rec.speed = point_distance / elapsed

    def smooth_altitude(self, records: List[Record]) -> None:
        """Moving average of altitude over the trailing ``smoothing_distance`` meters."""
        for rec in records:
            rec.smoothed_altitude = rec.altitude

        smoothed: List[Optional[float]] = []
        for i, rec in enumerate(records):
            if rec.distance is None or rec.altitude is None:
                smoothed.append(rec.smoothed_altitude)
                continue

            total = 0.0
            count = 0
            for j in range(i, -1, -1):
                prev = records[j]
                if prev.distance is None or prev.altitude is None:
                    continue
                if rec.distance - prev.distance > self.smoothing_distance:
                    break
                total += prev.altitude
                count += 1
            smoothed.append(total / count)

        for rec, value in zip(records, smoothed):
            rec.smoothed_altitude = value

    def calculate_grade(self, records: List[Record]) -> None:
        """Grade in percent over the next ``grade_distance`` meters."""
        for i, rec in enumerate(records):
            altitude = rec.smoothed_altitude if rec.smoothed_altitude is not None else rec.altitude
            if rec.distance is None or altitude is None:
                continue

            rise = run = 0.0
            for nxt in records[i + 1:]:
                next_altitude = nxt.smoothed_altitude if nxt.smoothed_altitude is not None else nxt.altitude
                if nxt.distance is None or next_altitude is None:
                    continue
                d = nxt.distance - rec.distance
                if d > self.grade_distance:
                    break
                rise = next_altitude - altitude
                run = d

            if rise == 0 or run == 0:
                continue
            rec.grade = rise / run * 100

    def calculate_pace(self, sport: str, records: List[Record]) -> None:
        """Pace in seconds per kilometer for samples considered moving."""
        for i in range(1, len(records)):
            rec = records[i]
            prev = records[i - 1]
            if rec.distance is None or prev.distance is None:
                continue

            speed = rec.speed
            if speed is None:
                elapsed = (rec.timestamp - prev.timestamp).total_seconds()
                if elapsed <= 0:
                    continue
                speed = (rec.distance - prev.distance) / elapsed

            if not is_considered_moving(sport, speed):
                continue
            rec.pace = speed_to_pace(speed)
