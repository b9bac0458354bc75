#!/usr/bin/env python3
"""
Session and lap summaries derived from records.

Laps are built from the records they own, sessions from their laps. Decoded
files keep whatever the device recorded and only get the gaps filled; edited
sessions (trimmed records) are recomputed from scratch.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..exceptions import RegressionError
from ..models.activity import Aggregates, Lap, Record, Session, Summary
from ..processors.interface import records_by_lap
from ..toolkit.number import Accumulator, avg, first_present, last_present, max_of, min_of, sum_of
from ..toolkit.pace import is_considered_moving, sport_has_pace
from ..toolkit.regression import LinearRegression, Point

logger = logging.getLogger(__name__)

# Record field -> aggregate stem (avg_<stem>, max_<stem>, min_<stem>)
METRIC_FIELDS = {
    'speed': 'speed',
    'heart_rate': 'heart_rate',
    'cadence': 'cadence',
    'power': 'power',
    'temperature': 'temperature',
    'altitude': 'altitude',
}

SUMMED_FIELDS = (
    'total_elapsed_time',
    'total_timer_time',
    'total_moving_time',
    'total_distance',
    'total_ascent',
    'total_descent',
    'total_calories',
)

AGGREGATE_FIELDS = tuple(name for name in Aggregates.model_fields if name not in ('timestamp', 'start_time'))


def elapsed_seconds(records: Sequence[Record]) -> Optional[float]:
    """Seconds between the first and the last record."""
    if not records:
        return None
    return (records[-1].timestamp - records[0].timestamp).total_seconds()


def total_moving_time(records: Sequence[Record], sport: Optional[str]) -> Optional[float]:
    """
    Sum of the intervals that start on a moving sample.

    None when no record carries a speed: moving time cannot be told apart
    from stopped time without it.
    """
    if not any(record.speed is not None for record in records):
        return None

    moving = 0.0
    for current, following in zip(records, records[1:]):
        if is_considered_moving(sport, current.speed):
            moving += (following.timestamp - current.timestamp).total_seconds()
    return moving


def total_ascent_descent(records: Sequence[Record]) -> Tuple[Optional[float], Optional[float]]:
    """Ascent and descent in meters from smoothed altitude, raw altitude as fallback."""
    altitudes = [
        record.smoothed_altitude if record.smoothed_altitude is not None else record.altitude
        for record in records
    ]
    altitudes = [value for value in altitudes if value is not None]
    if not altitudes:
        return None, None

    ascent = descent = 0.0
    for current, following in zip(altitudes, altitudes[1:]):
        delta = following - current
        if delta > 0:
            ascent += delta
        else:
            descent -= delta
    return ascent, descent


def distance_covered(records: Sequence[Record]) -> Optional[float]:
    """Difference between the last and the first cumulative distance."""
    start = first_present(record.distance for record in records)
    end = last_present(record.distance for record in records)
    if start is None or end is None:
        return None
    return max(end - start, 0.0)


def average_paces(
    sport: Optional[str],
    moving_time: Optional[float],
    elapsed_time: Optional[float],
    distance: Optional[float],
) -> Tuple[Optional[float], Optional[float]]:
    """(avg_pace, avg_elapsed_pace) in seconds per kilometer, for pace sports only."""
    if not sport_has_pace(sport) or not distance:
        return None, None
    kilometers = distance / 1000
    avg_pace = moving_time / kilometers if moving_time is not None else None
    avg_elapsed_pace = elapsed_time / kilometers if elapsed_time is not None else None
    return avg_pace, avg_elapsed_pace


def record_statistics(records: Sequence[Record], with_min: bool = False) -> Dict[str, Any]:
    """avg/max (and optionally min) of every record metric."""
    stats: Dict[str, Any] = {}
    for field, stem in METRIC_FIELDS.items():
        values = [getattr(record, field) for record in records]
        stats[f'avg_{stem}'] = avg(values)
        stats[f'max_{stem}'] = max_of(values)
        if with_min:
            stats[f'min_{stem}'] = min_of(values)
    return stats


def lap_from_records(records: Sequence[Record], sport: Optional[str]) -> Lap:
    """Build a lap summary from its records. ``records`` must not be empty."""
    elapsed = elapsed_seconds(records)
    moving = total_moving_time(records, sport)
    distance = distance_covered(records)
    ascent, descent = total_ascent_descent(records)
    avg_pace, avg_elapsed_pace = average_paces(sport, moving, elapsed, distance)

    return Lap(
        sport=sport,
        timestamp=records[-1].timestamp,
        start_time=records[0].timestamp,
        total_elapsed_time=elapsed,
        total_timer_time=elapsed,
        total_moving_time=moving,
        total_distance=distance,
        total_ascent=ascent,
        total_descent=descent,
        avg_pace=avg_pace,
        avg_elapsed_pace=avg_elapsed_pace,
        **record_statistics(records),
    )


def session_from_laps(laps: Sequence[Lap], sport: str) -> Session:
    """
    Roll laps up into a session: totals are summed, averages averaged and
    maxima kept. The session carries no records.
    """
    if not laps:
        return Session(sport=sport)

    totals = {name: Accumulator() for name in SUMMED_FIELDS}
    averages = {stem: Accumulator() for stem in METRIC_FIELDS.values()}
    maxima = {stem: Accumulator() for stem in METRIC_FIELDS.values()}

    for lap in laps:
        for name, accumulator in totals.items():
            accumulator.collect(getattr(lap, name))
        for stem in METRIC_FIELDS.values():
            averages[stem].collect(getattr(lap, f'avg_{stem}'))
            maxima[stem].collect(getattr(lap, f'max_{stem}'))

    data: Dict[str, Any] = {name: accumulator.sum() for name, accumulator in totals.items()}
    for stem in METRIC_FIELDS.values():
        data[f'avg_{stem}'] = averages[stem].avg()
        data[f'max_{stem}'] = maxima[stem].max
    data['avg_pace'], data['avg_elapsed_pace'] = average_paces(
        sport, data['total_moving_time'], data['total_elapsed_time'], data['total_distance'],
    )

    return Session(
        sport=sport,
        timestamp=laps[-1].timestamp,
        start_time=laps[0].start_time,
        end_time=laps[-1].end_time,
        **data,
    )


def _lap_groups(session: Session) -> List[Tuple[Optional[Lap], List[Record]]]:
    if not session.laps:
        return [(None, list(session.records))] if session.records else []
    return list(zip(session.laps, records_by_lap(session)))


def recompute_session(session: Session) -> Session:
    """
    Rebuild laps and session aggregates from the session records.

    Laps keep their boundaries; laps left without records are dropped. A
    session without records is returned unchanged.
    """
    if not session.records:
        return session

    laps = [
        lap_from_records(records, (lap.sport if lap is not None and lap.sport else session.sport))
        for lap, records in _lap_groups(session)
        if records
    ]
    rebuilt = session_from_laps(laps, session.sport)

    records = session.records
    updates = {name: getattr(rebuilt, name) for name in AGGREGATE_FIELDS}
    # Whole-session totals come straight from the records so lap boundaries lose nothing
    elapsed = elapsed_seconds(records)
    ascent, descent = total_ascent_descent(records)
    updates.update(
        total_elapsed_time=elapsed,
        total_timer_time=elapsed,
        total_moving_time=total_moving_time(records, session.sport),
        total_distance=distance_covered(records),
        total_ascent=ascent,
        total_descent=descent,
    )
    updates['avg_pace'], updates['avg_elapsed_pace'] = average_paces(
        session.sport, updates['total_moving_time'], elapsed, updates['total_distance'],
    )
    updates.update({f'min_{stem}': value for stem, value in _minima(records).items()})
    updates.update(
        timestamp=session.records[-1].timestamp,
        start_time=session.records[0].timestamp,
        end_time=session.records[-1].timestamp,
        total_cycles=None,
        laps=laps,
    )
    return session.model_copy(update=updates)


def complete_session(session: Session) -> Session:
    """
    Fill aggregates the device did not record.

    Values already present are kept. A session with records but no laps gets
    a single lap spanning its records.
    """
    if not session.records:
        return session

    if not session.laps:
        session.laps = [lap_from_records(session.records, session.sport)]
    else:
        for lap, records in _lap_groups(session):
            if records:
                _fill_missing(lap, lap_from_records(records, lap.sport or session.sport))

    derived = recompute_session(session)
    _fill_missing(session, derived, AGGREGATE_FIELDS + tuple(f'min_{stem}' for stem in METRIC_FIELDS.values()))
    if session.start_time is None:
        session.start_time = derived.start_time
    if session.end_time is None:
        session.end_time = derived.end_time
    if session.timestamp is None:
        session.timestamp = derived.timestamp
    return session


def _fill_missing(target, source, names: Sequence[str] = AGGREGATE_FIELDS) -> None:
    for name in names:
        if getattr(target, name) is None and getattr(source, name) is not None:
            setattr(target, name, getattr(source, name))


def _minima(records: Sequence[Record]) -> Dict[str, Optional[float]]:
    return {
        stem: min_of(getattr(record, field) for record in records)
        for field, stem in METRIC_FIELDS.items()
    }


def accumulate_session(target: Session, other: Session) -> Session:
    """
    Append a later session of the same sport to ``target``.

    The idle gap between them counts as elapsed and timer time. Totals are
    summed, averages averaged, extremes kept.
    """
    start, end = target.time_range()
    other_start, other_end = other.time_range()
    gap = 0.0
    if end is not None and other_start is not None:
        gap = max((other_start - end).total_seconds(), 0.0)

    updates: Dict[str, Any] = {
        name: sum_of([getattr(target, name), getattr(other, name)])
        for name in SUMMED_FIELDS + ('total_cycles',)
    }
    for name in ('total_elapsed_time', 'total_timer_time'):
        if updates[name] is not None:
            updates[name] += gap
    for stem in METRIC_FIELDS.values():
        updates[f'avg_{stem}'] = avg([getattr(target, f'avg_{stem}'), getattr(other, f'avg_{stem}')])
        updates[f'max_{stem}'] = max_of([getattr(target, f'max_{stem}'), getattr(other, f'max_{stem}')])
        updates[f'min_{stem}'] = min_of([getattr(target, f'min_{stem}'), getattr(other, f'min_{stem}')])
    updates['avg_pace'], updates['avg_elapsed_pace'] = average_paces(
        target.sport, updates['total_moving_time'], updates['total_elapsed_time'], updates['total_distance'],
    )
    updates.update(
        start_time=start,
        end_time=other_end,
        timestamp=other.timestamp or other_end,
        laps=list(target.laps) + list(other.laps),
        records=list(target.records) + list(other.records),
    )
    return target.model_copy(update=updates)


def summarize_sessions(sessions: Sequence[Session]) -> Summary:
    """
    Combined summary over several sessions.

    Totals are summed, averages averaged and maxima kept; paces are derived
    again from the combined totals. The sport is the first session's.
    """
    if not sessions:
        return Summary()

    sport = sessions[0].sport
    data: Dict[str, Any] = {
        name: sum_of(getattr(session, name) for session in sessions)
        for name in SUMMED_FIELDS
    }
    for stem in METRIC_FIELDS.values():
        data[f'avg_{stem}'] = avg(getattr(session, f'avg_{stem}') for session in sessions)
        data[f'max_{stem}'] = max_of(getattr(session, f'max_{stem}') for session in sessions)

    if all(session.sport == sport for session in sessions):
        data['avg_pace'], data['avg_elapsed_pace'] = average_paces(
            sport, data['total_moving_time'], data['total_elapsed_time'], data['total_distance'],
        )

    ranges = [session.time_range() for session in sessions]
    starts: List[datetime] = [start for start, _ in ranges if start is not None]
    ends: List[datetime] = [end for _, end in ranges if end is not None]

    return Summary(
        sport=sport,
        start_time=min(starts) if starts else None,
        end_time=max(ends) if ends else None,
        **data,
    )


def pace_by_grade(records: Sequence[Record]) -> LinearRegression:
    """
    Fit pace (s/km) against grade (%) over the records carrying both.

    Raises:
        RegressionError: fewer than 2 usable records or a constant grade
    """
    points = [
        Point(record.grade, record.pace)
        for record in records
        if record.grade is not None and record.pace is not None
    ]
    return LinearRegression().train(points)


def estimate_pace(records: Sequence[Record], grade: float) -> Optional[float]:
    """Expected pace at a grade, None when the records cannot support a fit."""
    try:
        model = pace_by_grade(records)
    except RegressionError as e:
        logger.debug(f"Pace estimate unavailable: {e.message}")
        return None
    return model.predict(grade)
