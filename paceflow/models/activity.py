#!/usr/bin/env python3
"""
Pydantic Data Models for Decoded Activities

Canonical entity graph: ActivityFile -> Session -> (Lap, Record), plus the
file creator identity and a read-only Summary projection. Attributes are
snake_case; camelCase aliases keep the wire shape of the worker protocol
(``totalMovingTime``, ``avgHeartRate``...).

Numeric aggregates are Optional and default to None: a value the device did
not record is unknown, never zero.
"""

from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from ..const import SPORT_GENERIC, UNKNOWN
from ..exceptions import ValidationError
from . import catalog

# Laps may start or end up to this far outside their session
LAP_RANGE_TOLERANCE = timedelta(seconds=1)


def _ensure_utc(value: datetime) -> datetime:
    # Naive datetimes are taken as UTC, FIT/GPX/TCX timestamps all are
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_ensure_utc)]


class WorkoutType(IntEnum):
    MOVING = 0
    STATIONARY = 1


class ActivityModel(BaseModel):
    """Base for all activity models"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> Dict[str, Any]:
        """Dump with camelCase keys, keeping bytes and datetimes as Python objects."""
        return self.model_dump(by_alias=True)


class Creator(ActivityModel):
    """File identity: which device created the file and when"""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default=UNKNOWN, description="Device display name")
    manufacturer: Optional[Union[int, str]] = Field(
        default=None, description="Catalog manufacturer id (or name when unresolvable)"
    )
    product: Optional[int] = Field(default=None, description="Manufacturer product id")
    time_created: Optional[UtcDatetime] = None

    @field_validator("name", mode="before")
    @classmethod
    def _default_name(cls, v):
        if v is None or not str(v).strip():
            return UNKNOWN
        return str(v)

    @field_validator("manufacturer", mode="before")
    @classmethod
    def _resolve_manufacturer(cls, v):
        if v is None or isinstance(v, int):
            return v
        resolved = catalog.find_manufacturer_id(v)
        return resolved if resolved is not None else str(v)

    @property
    def manufacturer_id(self) -> Optional[int]:
        return self.manufacturer if isinstance(self.manufacturer, int) else None


# FIT names this message file_id
FileId = Creator


class ActivityInfo(ActivityModel):
    """Top-level activity message: event metadata and session count"""

    timestamp: Optional[UtcDatetime] = None
    local_timestamp: Optional[datetime] = None
    num_sessions: Optional[int] = Field(default=None, ge=0)
    type: Optional[str] = Field(default=None, description="Activity type, e.g. 'manual'")
    event: Optional[str] = None
    event_type: Optional[str] = None


class Record(ActivityModel):
    """A single timestamped sample; every measurement may be absent"""

    timestamp: UtcDatetime
    position_lat: Optional[float] = Field(default=None, ge=-90, le=90, description="Latitude in degrees")
    position_long: Optional[float] = Field(default=None, ge=-180, le=180, description="Longitude in degrees")
    distance: Optional[float] = Field(default=None, description="Distance so far in meters")
    speed: Optional[float] = Field(default=None, description="Speed in m/s")
    altitude: Optional[float] = Field(default=None, description="Altitude in meters")
    smoothed_altitude: Optional[float] = None
    cadence: Optional[float] = None
    heart_rate: Optional[float] = None
    power: Optional[float] = None
    accumulated_power: Optional[float] = Field(default=None, description="Power summed so far in watts")
    temperature: Optional[float] = None
    grade: Optional[float] = Field(default=None, description="Grade in percent")
    pace: Optional[float] = Field(default=None, description="Pace in seconds per kilometer")

    @property
    def has_position(self) -> bool:
        return self.position_lat is not None and self.position_long is not None


class Aggregates(ActivityModel):
    """Aggregate fields shared by laps and sessions"""

    timestamp: Optional[UtcDatetime] = None
    start_time: Optional[UtcDatetime] = None
    total_elapsed_time: Optional[float] = Field(default=None, ge=0, description="Seconds")
    total_timer_time: Optional[float] = Field(default=None, ge=0, description="Seconds")
    total_moving_time: Optional[float] = Field(default=None, ge=0, description="Seconds")
    total_distance: Optional[float] = Field(default=None, ge=0, description="Meters")
    total_ascent: Optional[float] = Field(default=None, ge=0)
    total_descent: Optional[float] = Field(default=None, ge=0)
    total_calories: Optional[float] = Field(default=None, ge=0)
    avg_speed: Optional[float] = None
    max_speed: Optional[float] = None
    avg_heart_rate: Optional[float] = None
    max_heart_rate: Optional[float] = None
    avg_cadence: Optional[float] = None
    max_cadence: Optional[float] = None
    avg_power: Optional[float] = None
    max_power: Optional[float] = None
    avg_temperature: Optional[float] = None
    max_temperature: Optional[float] = None
    avg_altitude: Optional[float] = None
    max_altitude: Optional[float] = None
    avg_pace: Optional[float] = Field(default=None, description="Seconds per km of moving time")
    avg_elapsed_pace: Optional[float] = Field(default=None, description="Seconds per km of elapsed time")


class Lap(Aggregates):
    """A sub-segment of a session"""

    sport: Optional[str] = None

    @property
    def end_time(self) -> Optional[datetime]:
        if self.start_time is None or self.total_elapsed_time is None:
            return self.timestamp
        return self.start_time + timedelta(seconds=self.total_elapsed_time)

    def contains(self, timestamp: datetime) -> bool:
        """Whether a sample timestamp falls inside [start_time, end_time]."""
        timestamp = _ensure_utc(timestamp)
        if self.start_time is None:
            return False
        end = self.end_time or self.start_time
        return self.start_time <= timestamp <= end


class Session(Aggregates):
    """A contiguous workout segment owning its laps and records"""

    sport: str = Field(default=SPORT_GENERIC)
    sub_sport: Optional[str] = None
    end_time: Optional[UtcDatetime] = None
    total_cycles: Optional[float] = Field(default=None, ge=0)
    min_speed: Optional[float] = None
    min_heart_rate: Optional[float] = None
    min_cadence: Optional[float] = None
    min_power: Optional[float] = None
    min_temperature: Optional[float] = None
    min_altitude: Optional[float] = None
    workout_type: WorkoutType = WorkoutType.MOVING

    laps: List[Lap] = Field(default_factory=list)
    records: List[Record] = Field(default_factory=list)

    # Filled in from the owning file for display
    time_created: Optional[UtcDatetime] = None
    creator_name: str = UNKNOWN

    @field_validator("sport", mode="before")
    @classmethod
    def _default_sport(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return SPORT_GENERIC
        if isinstance(v, int):
            return catalog.sport_name(v)
        return v

    @field_validator("creator_name", mode="before")
    @classmethod
    def _default_creator_name(cls, v):
        if v is None or not str(v).strip():
            return UNKNOWN
        return v

    @field_validator("records")
    @classmethod
    def _check_record_order(cls, records: List[Record]) -> List[Record]:
        for i in range(1, len(records)):
            if records[i].timestamp < records[i - 1].timestamp:
                raise ValueError(
                    f"records must be time-ordered: record {i} "
                    f"({records[i].timestamp.isoformat()}) precedes record {i - 1}"
                )
        return records

    @model_validator(mode="after")
    def _check_lap_ranges(self) -> "Session":
        start, end = self.time_range()
        if start is None or end is None:
            return self
        for i, lap in enumerate(self.laps):
            if lap.start_time is None:
                continue
            if lap.start_time < start - LAP_RANGE_TOLERANCE or lap.start_time > end + LAP_RANGE_TOLERANCE:
                raise ValueError(f"lap {i} starts outside of its session")
            lap_end = lap.end_time
            if lap_end is not None and lap_end > end + LAP_RANGE_TOLERANCE:
                raise ValueError(f"lap {i} ends after its session")
        return self

    def time_range(self):
        """(start, end) of the session from its own fields, falling back to records."""
        start = self.start_time
        end = self.end_time
        if start is None and self.records:
            start = self.records[0].timestamp
        if end is None:
            if self.records:
                end = self.records[-1].timestamp
            elif start is not None and self.total_elapsed_time is not None:
                end = start + timedelta(seconds=self.total_elapsed_time)
        return start, end

    @property
    def first_timestamp(self) -> Optional[datetime]:
        if self.records:
            return self.records[0].timestamp
        return self.start_time or self.timestamp


class FitField(ActivityModel):
    """
    One field of a carried FIT message, kept in its stored form.

    ``value`` is the unscaled value (a list for array fields, a str for
    strings); None means the field holds the invalid value of its type.
    """

    number: int = Field(..., ge=0, le=255)
    base_type: int = Field(..., ge=0, le=255)
    size: int = Field(..., ge=1, le=255)
    value: Optional[Union[int, float, str, List[Optional[Union[int, float]]]]] = None


class FitMessage(ActivityModel):
    """
    A FIT message the canonical model does not cover (device_info, event,
    split_summary...), carried from decode to a FIT re-encode unchanged.
    """

    global_number: int = Field(..., ge=0, le=0xFFFF)
    name: Optional[str] = None
    timestamp: Optional[UtcDatetime] = None
    fields: List[FitField] = Field(default_factory=list)


class ActivityFile(ActivityModel):
    """One decoded input file"""

    creator: Creator
    timezone: int = Field(default=0, description="Offset from UTC in hours")
    activity: Optional[ActivityInfo] = None
    sessions: List[Session] = Field(..., min_length=1)
    fit_messages: List[FitMessage] = Field(default_factory=list)

    @property
    def first_timestamp(self) -> Optional[datetime]:
        for session in self.sessions:
            if session.first_timestamp is not None:
                return session.first_timestamp
        return None

    def sort_key(self):
        """Order files by creation time, then by their first sample."""
        floor = datetime.min.replace(tzinfo=timezone.utc)
        return (self.creator.time_created or floor, self.first_timestamp or floor)


class Summary(BaseModel):
    """Read-only projection of session aggregates"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    sport: str = SPORT_GENERIC
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    total_elapsed_time: Optional[float] = None
    total_timer_time: Optional[float] = None
    total_moving_time: Optional[float] = None
    total_distance: Optional[float] = None
    total_ascent: Optional[float] = None
    total_descent: Optional[float] = None
    total_calories: Optional[float] = None
    avg_speed: Optional[float] = None
    max_speed: Optional[float] = None
    avg_heart_rate: Optional[float] = None
    max_heart_rate: Optional[float] = None
    avg_cadence: Optional[float] = None
    max_cadence: Optional[float] = None
    avg_power: Optional[float] = None
    max_power: Optional[float] = None
    avg_temperature: Optional[float] = None
    max_temperature: Optional[float] = None
    avg_altitude: Optional[float] = None
    max_altitude: Optional[float] = None
    avg_pace: Optional[float] = None
    avg_elapsed_pace: Optional[float] = None

    @classmethod
    def from_session(cls, session: Session) -> "Summary":
        data = {name: getattr(session, name) for name in cls.model_fields if hasattr(session, name)}
        data["start_time"], data["end_time"] = session.time_range()
        return cls(**data)


def _wrap(error: PydanticValidationError, what: str) -> ValidationError:
    return ValidationError(
        f"invalid {what}: {error.error_count()} validation error(s)",
        {"errors": error.errors(include_url=False, include_context=False)},
    )


def parse_activity(raw: Any) -> ActivityFile:
    """
    Validate a raw decoded structure into an ActivityFile.

    Raises:
        ValidationError: carrying pydantic's error list in ``details['errors']``
    """
    if isinstance(raw, ActivityFile):
        return raw
    try:
        return ActivityFile.model_validate(raw)
    except PydanticValidationError as e:
        raise _wrap(e, "activity file") from e


def parse_activities(raw_list: List[Any]) -> List[ActivityFile]:
    """Validate a list of raw activity files; the first failure aborts."""
    activities = []
    for i, raw in enumerate(raw_list or []):
        try:
            activities.append(parse_activity(raw))
        except ValidationError as e:
            raise ValidationError(f"[{i}]: {e.message}", e.details) from e
    return activities
