#!/usr/bin/env python3
"""
Activity Editor - applies EncodeSpecifications to decoded activities

Steps, in order: conceal positions, trim records, drop sessions and files
left empty, change sports, remove fields, then shape the output files per
tool mode (edit, combine, split per session).

Markers, sport labels and their validation are indexed by session across
all input activities, in input order.
"""

from typing import Dict, List, Optional, Sequence, Set, Tuple

from pydantic.alias_generators import to_snake

from ..analytics.summarizer import accumulate_session, average_paces, recompute_session
from ..const import REMOVABLE_FIELDS
from ..exceptions import UnsupportedFileTypeError, encode_spec_error
from ..models import catalog
from ..models.activity import ActivityFile, Creator, Session
from ..models.spec import EncodeSpecifications, FileType, Marker, ToolMode
from ..toolkit.number import last_present
from ..utils import get_logger

logger = get_logger(__name__)

# Aggregates that become unknown when a record field is removed
REMOVED_AGGREGATES: Dict[str, Tuple[str, ...]] = {
    'distance': ('total_distance', 'avg_pace', 'avg_elapsed_pace'),
    'altitude': ('total_ascent', 'total_descent', 'avg_altitude', 'max_altitude', 'min_altitude'),
    'heart_rate': ('avg_heart_rate', 'max_heart_rate', 'min_heart_rate'),
    'cadence': ('avg_cadence', 'max_cadence', 'min_cadence'),
    'speed': ('avg_speed', 'max_speed', 'min_speed'),
    'power': ('avg_power', 'max_power', 'min_power'),
    'temperature': ('avg_temperature', 'max_temperature', 'min_temperature'),
}

# Record running totals that continue across combined files
CONTINUED_FIELDS = ('distance', 'accumulated_power')

# Derived record values that go with a removed source field
REMOVED_DERIVED: Dict[str, Tuple[str, ...]] = {
    'altitude': ('smoothed_altitude', 'grade'),
    'distance': ('grade',),
    'power': ('accumulated_power',),
}


def session_count(activities: Sequence[ActivityFile]) -> int:
    return sum(len(activity.sessions) for activity in activities)


def normalize_field(name: str) -> str:
    """Accept camelCase or snake_case field names."""
    return to_snake(name.strip())


class ActivityEditor:
    """Turns decoded activities plus an EncodeSpecifications into output activities"""

    def __init__(self, file_prefix: str = "paceflow"):
        self.file_prefix = file_prefix

    def validate(self, activities: Sequence[ActivityFile], spec: EncodeSpecifications) -> Set[str]:
        """
        Check the spec against the activities.

        Returns:
            The normalized set of record fields to remove

        Raises:
            EncodeSpecificationError: inconsistent spec
            UnsupportedFileTypeError: unknown target file type
        """
        if spec.tool_mode == ToolMode.UNKNOWN:
            raise encode_spec_error(f"encode mode '{spec.tool_mode.label}' not recognized")
        if spec.target_file_type == FileType.UNSUPPORTED:
            raise UnsupportedFileTypeError("encode: invalid file type")
        if not activities:
            raise encode_spec_error("no activity is retrieved")

        if spec.target_file_type == FileType.FIT and catalog.get_manufacturer(spec.manufacturer_id) is None:
            raise encode_spec_error(
                f"manufacturer {spec.manufacturer_id} does not exist",
                manufacturer_id=spec.manufacturer_id,
            )

        total = session_count(activities)
        if spec.sports:
            single = len(spec.sports) == 1 and spec.tool_mode in (ToolMode.EDIT, ToolMode.COMBINE)
            if len(spec.sports) != total and not single:
                raise encode_spec_error(
                    f"sports has {len(spec.sports)} entries but activities have {total} sessions",
                    sports=len(spec.sports), sessions=total,
                )

        sessions = [session for activity in activities for session in activity.sessions]
        for kind, markers in (('trim', spec.trim_markers), ('conceal', spec.conceal_markers)):
            if not markers:
                continue
            if len(markers) != total:
                raise encode_spec_error(
                    f"{kind}: {len(markers)} markers given for {total} sessions",
                    markers=len(markers), sessions=total,
                )
            for i, (marker, session) in enumerate(zip(markers, sessions)):
                if marker.end_n > len(session.records):
                    raise encode_spec_error(
                        f"{kind}: marker {i} [{marker.start_n}, {marker.end_n}) is out of range "
                        f"of {len(session.records)} records",
                        marker=i, records=len(session.records),
                    )

        fields = {normalize_field(name) for name in spec.remove_fields if name and name.strip()}
        unknown = sorted(fields.difference(REMOVABLE_FIELDS))
        if unknown:
            raise encode_spec_error(f"unknown fields to remove: {', '.join(unknown)}", fields=unknown)
        return fields

    def apply(self, activities: Sequence[ActivityFile], spec: EncodeSpecifications) -> List[ActivityFile]:
        """
        Produce the activities to encode. Inputs are deep-copied and never
        mutated.

        Raises:
            EncodeSpecificationError: inconsistent spec or nothing left to encode
        """
        remove_fields = self.validate(activities, spec)
        sports = self._sports_per_session(spec, session_count(activities))

        edited: List[ActivityFile] = []
        index = 0
        for source in activities:
            activity = source.model_copy(deep=True)
            kept: List[Tuple[Session, Optional[str]]] = []
            for session in activity.sessions:
                if spec.conceal_markers:
                    conceal_positions(session, spec.conceal_markers[index])
                if spec.trim_markers:
                    session = trim_records(session, spec.trim_markers[index])
                if session.records or not spec.trim_markers:
                    kept.append((session, sports[index]))
                index += 1

            if not kept:
                logger.debug("activity dropped, no records left", time_created=str(source.creator.time_created))
                continue

            sessions = []
            for session, sport in kept:
                if sport is not None:
                    change_sport(session, sport)
                remove_record_fields(session, remove_fields)
                sessions.append(session)
            activity.sessions = sessions
            edited.append(activity)

        if not edited:
            raise encode_spec_error("no activity data after processed")

        creator = self._creator(spec)
        if spec.tool_mode == ToolMode.COMBINE:
            return [combine_activities(edited, creator)]
        if spec.tool_mode == ToolMode.SPLIT_PER_SESSION:
            return split_per_session(edited, creator)

        return [
            activity.model_copy(update={'creator': creator.model_copy(update={
                'time_created': activity.creator.time_created,
            })})
            for activity in edited
        ]

    def file_names(self, spec: EncodeSpecifications, count: int, timestamp: int) -> List[str]:
        """``<prefix>-<unix>-<mode>[-<n>].<ext>``, numbered from 1 when several files result."""
        base = f"{self.file_prefix}-{timestamp}-{spec.tool_mode.label}"
        extension = spec.target_file_type.extension
        if count == 1:
            return [f"{base}.{extension}"]
        return [f"{base}-{n}.{extension}" for n in range(1, count + 1)]

    def _sports_per_session(self, spec: EncodeSpecifications, total: int) -> List[Optional[str]]:
        if not spec.sports:
            return [None] * total
        if len(spec.sports) == 1 and total != 1:
            return [spec.sports[0]] * total
        return list(spec.sports)

    def _creator(self, spec: EncodeSpecifications) -> Creator:
        return Creator(
            name=spec.device_name,
            manufacturer=spec.manufacturer_id,
            product=spec.product_id,
        )


def conceal_positions(session: Session, marker: Marker) -> None:
    """Redact positions of the records outside [start_n, end_n)."""
    if marker.covers(len(session.records)):
        return
    for i, record in enumerate(session.records):
        if not marker.contains(i):
            record.position_lat = None
            record.position_long = None


def trim_records(session: Session, marker: Marker) -> Session:
    """
    Keep records[start_n:end_n], rebase their distance to start from zero
    and recompute laps and session aggregates.
    """
    records = session.records
    if marker.covers(len(records)):
        return session
    if marker.start_n == marker.end_n:
        return session.model_copy(update={'records': [], 'laps': []})

    # Nearest distance at or before the first kept record
    offset = last_present(record.distance for record in records[:marker.start_n + 1]) or 0.0

    kept = records[marker.start_n:marker.end_n]
    for record in kept:
        if record.distance is not None:
            record.distance = max(record.distance - offset, 0.0)

    trimmed = recompute_session(session.model_copy(update={'records': kept}))
    logger.debug("session trimmed", kept=len(kept), dropped=len(records) - len(kept))
    return trimmed


def change_sport(session: Session, sport: str) -> None:
    """Relabel a session and its laps, refreshing the pace aggregates."""
    sport = catalog.sport_name(sport)
    if sport == session.sport:
        return
    session.sport = sport
    for lap in session.laps:
        lap.sport = sport
    for item in [session, *session.laps]:
        item.avg_pace, item.avg_elapsed_pace = average_paces(
            sport, item.total_moving_time, item.total_elapsed_time, item.total_distance,
        )


def remove_record_fields(session: Session, fields: Set[str]) -> None:
    """Drop fields from every record together with the aggregates built on them."""
    if not fields:
        return
    for field in fields:
        clear = REMOVED_DERIVED.get(field, ())
        for record in session.records:
            setattr(record, field, None)
            for name in clear:
                setattr(record, name, None)

        aggregates = REMOVED_AGGREGATES.get(field, ())
        for name in aggregates:
            setattr(session, name, None)
        for lap in session.laps:
            for name in aggregates:
                if name in type(lap).model_fields:
                    setattr(lap, name, None)


def combine_activities(activities: Sequence[ActivityFile], creator: Creator) -> ActivityFile:
    """
    Merge activities into one, in time order.

    Distances and accumulated power of later files continue from the
    previous session's last values; a session that follows one of the same
    sport is merged into it. Carried FIT messages are concatenated, later
    files' file_creator aside.
    """
    ordered = sorted(activities, key=lambda activity: activity.sort_key())
    first = ordered[0]

    sessions: List[Session] = list(first.sessions)
    fit_messages = list(first.fit_messages)
    last = {name: _last_value(sessions[-1], name) for name in CONTINUED_FIELDS}
    for activity in ordered[1:]:
        incoming = list(activity.sessions)
        for session in incoming:
            for name in CONTINUED_FIELDS:
                for record in session.records:
                    value = getattr(record, name)
                    if value is not None:
                        setattr(record, name, value + last[name])
                last[name] = _last_value(session, name) or last[name]

        if sessions[-1].sport == incoming[0].sport:
            sessions[-1] = accumulate_session(sessions[-1], incoming[0])
            incoming = incoming[1:]
        sessions.extend(incoming)
        fit_messages.extend(m for m in activity.fit_messages if m.name != 'file_creator')

    logger.debug("activities combined", files=len(ordered), sessions=len(sessions))
    return ActivityFile(
        creator=creator.model_copy(update={'time_created': first.creator.time_created}),
        timezone=first.timezone,
        sessions=sessions,
        fit_messages=fit_messages,
    )


def split_per_session(activities: Sequence[ActivityFile], creator: Creator) -> List[ActivityFile]:
    """
    One activity per session; later sessions have the previous session's
    distance and accumulated power removed. Carried FIT messages are dropped.
    """
    result = []
    for activity in activities:
        previous: Dict[str, float] = {}
        for session in activity.sessions:
            current = {name: _last_value(session, name) for name in CONTINUED_FIELDS}
            for name, offset in previous.items():
                for record in session.records:
                    value = getattr(record, name)
                    if value is not None and value >= offset:
                        setattr(record, name, value - offset)
            previous = current

            result.append(ActivityFile(
                creator=creator.model_copy(update={'time_created': activity.creator.time_created}),
                timezone=activity.timezone,
                sessions=[session],
            ))
    return result


def _last_value(session: Session, name: str) -> float:
    return last_present(getattr(record, name) for record in session.records) or 0.0
