#!/usr/bin/env python3
"""
FIT codec - decodes with fitparse and the Global FIT Profile, encodes with a
minimal writer (file_id, record, lap, session and activity messages).

Messages outside the canonical model are carried on the activity in their
stored form and written back right after file_id.
"""
import io
import logging
import struct
from bisect import bisect_right
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from fitparse import FitFile
from fitparse.utils import FitParseError
from fitparse.profile import FIELD_TYPES

from ..exceptions import DecodeError, EncodeError
from ..models import catalog
from ..models.activity import ActivityFile, FitField, FitMessage, Lap, Record, Session
from ..models.spec import FileType
from ..toolkit.geo import degrees_to_semicircles, semicircles_to_degrees
from .interface import FormatCodec, widen_session_window

logger = logging.getLogger(__name__)

FIT_EPOCH = datetime(1989, 12, 31, tzinfo=timezone.utc)
PROTOCOL_VERSION = 0x20
PROFILE_VERSION = 2132

CRC_TABLE = (
    0x0000, 0xCC01, 0xD801, 0x1400, 0xF001, 0x3C00, 0x2800, 0xE401,
    0xA001, 0x6C00, 0x7800, 0xB401, 0x5000, 0x9C01, 0x8801, 0x4400,
)


def crc16_fit(data: bytes, crc: int = 0) -> int:
    for byte in data:
        tmp = CRC_TABLE[crc & 0xF]
        crc = ((crc >> 4) & 0x0FFF) ^ tmp ^ CRC_TABLE[byte & 0xF]
        tmp = CRC_TABLE[crc & 0xF]
        crc = ((crc >> 4) & 0x0FFF) ^ tmp ^ CRC_TABLE[(byte >> 4) & 0xF]
    return crc & 0xFFFF


# Base types: identifier -> (struct format, invalid value); None marks an all-0xFF float
BASE_ENUM = 0x00
BASE_SINT8 = 0x01
BASE_UINT8 = 0x02
BASE_UINT16 = 0x84
BASE_SINT32 = 0x85
BASE_UINT32 = 0x86

BASE_TYPES = {
    BASE_ENUM: ('B', 0xFF),
    BASE_SINT8: ('b', 0x7F),
    BASE_UINT8: ('B', 0xFF),
    0x83: ('h', 0x7FFF),
    BASE_UINT16: ('H', 0xFFFF),
    BASE_SINT32: ('i', 0x7FFFFFFF),
    BASE_UINT32: ('I', 0xFFFFFFFF),
    0x07: ('s', 0x00),
    0x88: ('f', None),
    0x89: ('d', None),
    0x0A: ('B', 0x00),
    0x8B: ('H', 0x0000),
    0x8C: ('I', 0x00000000),
    0x0D: ('B', 0xFF),
    0x8E: ('q', 0x7FFFFFFFFFFFFFFF),
    0x8F: ('Q', 0xFFFFFFFFFFFFFFFF),
    0x90: ('Q', 0x0000000000000000),
}

_RANGES = {
    'B': (0, 0xFE),
    'b': (-0x7F, 0x7E),
    'H': (0, 0xFFFE),
    'i': (-0x7FFFFFFF, 0x7FFFFFFE),
    'I': (0, 0xFFFFFFFE),
}


@dataclass(frozen=True)
class FieldSpec:
    """One field of a message definition"""
    number: int
    name: str
    base_type: int
    scale: float = 1
    offset: float = 0

    @property
    def fmt(self) -> str:
        return BASE_TYPES[self.base_type][0]

    @property
    def size(self) -> int:
        return struct.calcsize('<' + self.fmt)

    def raw(self, value: Any) -> int:
        """Scale a physical value into its stored integer, invalid when absent or out of range."""
        invalid = BASE_TYPES[self.base_type][1]
        if value is None:
            return invalid
        raw = int(round((value + self.offset) * self.scale))
        low, high = _RANGES[self.fmt]
        if raw < low or raw > high:
            return invalid
        return raw


@dataclass(frozen=True)
class MessageSpec:
    global_number: int
    local_number: int
    fields: Tuple[FieldSpec, ...]


FILE_ID = MessageSpec(0, 0, (
    FieldSpec(0, 'type', BASE_ENUM),
    FieldSpec(1, 'manufacturer', BASE_UINT16),
    FieldSpec(2, 'product', BASE_UINT16),
    FieldSpec(4, 'time_created', BASE_UINT32),
))

RECORD = MessageSpec(20, 1, (
    FieldSpec(253, 'timestamp', BASE_UINT32),
    FieldSpec(0, 'position_lat', BASE_SINT32),
    FieldSpec(1, 'position_long', BASE_SINT32),
    FieldSpec(2, 'altitude', BASE_UINT16, 5, 500),
    FieldSpec(3, 'heart_rate', BASE_UINT8),
    FieldSpec(4, 'cadence', BASE_UINT8),
    FieldSpec(5, 'distance', BASE_UINT32, 100),
    FieldSpec(6, 'speed', BASE_UINT16, 1000),
    FieldSpec(7, 'power', BASE_UINT16),
    FieldSpec(29, 'accumulated_power', BASE_UINT32),
    FieldSpec(13, 'temperature', BASE_SINT8),
))

LAP = MessageSpec(19, 2, (
    FieldSpec(253, 'timestamp', BASE_UINT32),
    FieldSpec(2, 'start_time', BASE_UINT32),
    FieldSpec(7, 'total_elapsed_time', BASE_UINT32, 1000),
    FieldSpec(8, 'total_timer_time', BASE_UINT32, 1000),
    FieldSpec(9, 'total_distance', BASE_UINT32, 100),
    FieldSpec(11, 'total_calories', BASE_UINT16),
    FieldSpec(13, 'avg_speed', BASE_UINT16, 1000),
    FieldSpec(14, 'max_speed', BASE_UINT16, 1000),
    FieldSpec(15, 'avg_heart_rate', BASE_UINT8),
    FieldSpec(16, 'max_heart_rate', BASE_UINT8),
    FieldSpec(17, 'avg_cadence', BASE_UINT8),
    FieldSpec(18, 'max_cadence', BASE_UINT8),
    FieldSpec(19, 'avg_power', BASE_UINT16),
    FieldSpec(20, 'max_power', BASE_UINT16),
    FieldSpec(21, 'total_ascent', BASE_UINT16),
    FieldSpec(22, 'total_descent', BASE_UINT16),
    FieldSpec(25, 'sport', BASE_ENUM),
    FieldSpec(42, 'avg_altitude', BASE_UINT16, 5, 500),
    FieldSpec(43, 'max_altitude', BASE_UINT16, 5, 500),
    FieldSpec(50, 'avg_temperature', BASE_SINT8),
    FieldSpec(51, 'max_temperature', BASE_SINT8),
    FieldSpec(52, 'total_moving_time', BASE_UINT32, 1000),
))

SESSION = MessageSpec(18, 3, (
    FieldSpec(253, 'timestamp', BASE_UINT32),
    FieldSpec(2, 'start_time', BASE_UINT32),
    FieldSpec(5, 'sport', BASE_ENUM),
    FieldSpec(6, 'sub_sport', BASE_ENUM),
    FieldSpec(7, 'total_elapsed_time', BASE_UINT32, 1000),
    FieldSpec(8, 'total_timer_time', BASE_UINT32, 1000),
    FieldSpec(9, 'total_distance', BASE_UINT32, 100),
    FieldSpec(10, 'total_cycles', BASE_UINT32),
    FieldSpec(11, 'total_calories', BASE_UINT16),
    FieldSpec(14, 'avg_speed', BASE_UINT16, 1000),
    FieldSpec(15, 'max_speed', BASE_UINT16, 1000),
    FieldSpec(16, 'avg_heart_rate', BASE_UINT8),
    FieldSpec(17, 'max_heart_rate', BASE_UINT8),
    FieldSpec(18, 'avg_cadence', BASE_UINT8),
    FieldSpec(19, 'max_cadence', BASE_UINT8),
    FieldSpec(20, 'avg_power', BASE_UINT16),
    FieldSpec(21, 'max_power', BASE_UINT16),
    FieldSpec(22, 'total_ascent', BASE_UINT16),
    FieldSpec(23, 'total_descent', BASE_UINT16),
    FieldSpec(26, 'num_laps', BASE_UINT16),
    FieldSpec(49, 'avg_altitude', BASE_UINT16, 5, 500),
    FieldSpec(50, 'max_altitude', BASE_UINT16, 5, 500),
    FieldSpec(57, 'avg_temperature', BASE_SINT8),
    FieldSpec(58, 'max_temperature', BASE_SINT8),
    FieldSpec(59, 'total_moving_time', BASE_UINT32, 1000),
))

ACTIVITY = MessageSpec(34, 4, (
    FieldSpec(253, 'timestamp', BASE_UINT32),
    FieldSpec(0, 'total_timer_time', BASE_UINT32, 1000),
    FieldSpec(1, 'num_sessions', BASE_UINT16),
    FieldSpec(2, 'type', BASE_ENUM),
    FieldSpec(3, 'event', BASE_ENUM),
    FieldSpec(4, 'event_type', BASE_ENUM),
    FieldSpec(5, 'local_timestamp', BASE_UINT32),
))

FILE_TYPE_ACTIVITY = 4
EVENT_ACTIVITY = 26
EVENT_TYPE_STOP = 1
ACTIVITY_TYPE_MANUAL = 0

# Local message number used for carried messages
CARRIED_LOCAL = 5

# Messages decoded into the canonical model, or tied to developer fields
# (which are not carried), are not kept as carried messages
UNCARRIED_MESSAGES = frozenset({
    'file_id', 'activity', 'session', 'lap', 'record', 'developer_data_id', 'field_description',
})


def pack_field(field: FitField) -> bytes:
    """Serialize a carried field back into its stored bytes."""
    if field.base_type not in BASE_TYPES:
        raise EncodeError(f"fit: unknown base type 0x{field.base_type:02x}", {'field': field.number})
    fmt, invalid = BASE_TYPES[field.base_type]

    if fmt == 's':
        text = field.value.encode('utf-8') if isinstance(field.value, str) else b''
        return text[:field.size].ljust(field.size, b'\x00')

    width = struct.calcsize('<' + fmt)
    count = field.size // width
    values = list(field.value) if isinstance(field.value, list) else [field.value]
    values = (values + [None] * count)[:count]

    data = bytearray()
    for value in values:
        if value is None:
            data += b'\xff' * width if invalid is None else struct.pack('<' + fmt, invalid)
        else:
            data += struct.pack('<' + fmt, value if fmt in 'fd' else int(value))
    return bytes(data).ljust(field.size, b'\xff')


def carried_message(message) -> Dict[str, Any]:
    """Keep a fitparse data message in its stored form, developer fields aside."""
    by_definition = {id(data.field_def): data for data in message.fields if data.field_def is not None}
    fields = []
    for field_def in message.def_mesg.field_defs:
        data = by_definition.get(id(field_def))
        value = data.raw_value if data is not None else None
        if isinstance(value, (tuple, bytes)):
            value = list(value)
        fields.append({
            'number': field_def.def_num,
            'base_type': field_def.base_type.identifier,
            'size': field_def.size,
            'value': value,
        })
    return {
        'global_number': message.def_mesg.mesg_num,
        'name': message.name,
        'timestamp': _utc(message.get_value('timestamp')),
        'fields': fields,
    }


def _enum_id(type_name: str, value: Optional[str], default: Optional[int] = None) -> Optional[int]:
    """Reverse lookup of a profile enum name ('running' -> 1)."""
    if value is None:
        return default
    field_type = FIELD_TYPES.get(type_name)
    if field_type is None:
        return default
    wanted = catalog.snake_case(str(value))
    for number, name in field_type.values.items():
        if name == wanted:
            return number
    return default


def to_fit_time(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int((value - FIT_EPOCH).total_seconds())


def _utc(value: Any) -> Optional[datetime]:
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _pick(values: Dict[str, Any], *names: str) -> Any:
    """First present value among alternative field names (enhanced_* first)."""
    for name in names:
        value = values.get(name)
        if value is not None:
            return value
    return None


def _raw_value(message, name: str) -> Optional[int]:
    field = message.get(name)
    if field is None:
        return None
    raw = field.raw_value
    return raw if isinstance(raw, int) else None


class FitWriter:
    """Writes definition and data messages and frames them into a FIT file"""

    def __init__(self):
        self._data = bytearray()
        self._defined = set()
        self._carried_layout = None

    def write(self, spec: MessageSpec, values: Dict[str, Any]) -> None:
        if spec.global_number not in self._defined:
            self._write_definition(spec)
            self._defined.add(spec.global_number)

        self._data.append(spec.local_number & 0x0F)
        for field in spec.fields:
            self._data += struct.pack('<' + field.fmt, field.raw(values.get(field.name)))

    def write_carried(self, message: FitMessage) -> None:
        """Write a carried message, redefining the carried local slot when its layout changes."""
        layout = (message.global_number, tuple((f.number, f.size, f.base_type) for f in message.fields))
        try:
            payload = b''.join(pack_field(field) for field in message.fields)
        except struct.error as e:
            raise EncodeError(f"fit: cannot write {message.name or message.global_number} message: {e}") from e

        if layout != self._carried_layout:
            self._data.append(0x40 | CARRIED_LOCAL)
            self._data += struct.pack('<BBHB', 0, 0, message.global_number, len(message.fields))
            for number, size, base_type in layout[1]:
                self._data += struct.pack('<BBB', number, size, base_type)
            self._carried_layout = layout

        self._data.append(CARRIED_LOCAL)
        self._data += payload

    def _write_definition(self, spec: MessageSpec) -> None:
        self._data.append(0x40 | (spec.local_number & 0x0F))
        # reserved, little endian architecture
        self._data += struct.pack('<BBHB', 0, 0, spec.global_number, len(spec.fields))
        for field in spec.fields:
            self._data += struct.pack('<BBB', field.number, field.size, field.base_type)

    def to_bytes(self) -> bytes:
        header = struct.pack('<BBHI4s', 14, PROTOCOL_VERSION, PROFILE_VERSION, len(self._data), b'.FIT')
        header += struct.pack('<H', crc16_fit(header))
        body = header + bytes(self._data)
        return body + struct.pack('<H', crc16_fit(body))


class FitCodec(FormatCodec):
    """FIT files via fitparse"""

    file_type = FileType.FIT

    def decode(self, data: bytes) -> List[ActivityFile]:
        try:
            fitfile = FitFile(io.BytesIO(data), check_crc=True)
            messages = list(fitfile.get_messages())
        except (FitParseError, struct.error, EOFError) as e:
            raise DecodeError(f"fit: {e}") from e

        creator: Dict[str, Any] = {}
        activity: Optional[Dict[str, Any]] = None
        sessions: List[Dict[str, Any]] = []
        laps: List[Dict[str, Any]] = []
        records: List[Dict[str, Any]] = []
        carried: List[Dict[str, Any]] = []

        for message in messages:
            if message.name not in UNCARRIED_MESSAGES:
                carried.append(carried_message(message))
                continue

            values = message.get_values()
            if message.name == 'file_id' and not creator:
                creator = {
                    'name': values.get('product_name'),
                    'manufacturer': _raw_value(message, 'manufacturer'),
                    'product': _raw_value(message, 'product'),
                    'time_created': _utc(values.get('time_created')),
                }
            elif message.name == 'activity' and activity is None:
                activity = self._activity_values(values)
            elif message.name == 'session':
                sessions.append(self._session_values(values))
            elif message.name == 'lap':
                laps.append(self._lap_values(values))
            elif message.name == 'record':
                record = self._record_values(values)
                if record is not None:
                    records.append(record)

        if not records and not sessions:
            raise DecodeError("fit: file has no sessions or records")
        if not creator:
            raise DecodeError("fit: file has no file_id message")

        records.sort(key=lambda r: r['timestamp'])
        self._assign(sessions, laps, records)

        timezone_offset = 0
        if activity and activity.get('timestamp') and isinstance(activity.get('local_timestamp'), datetime):
            delta = activity['local_timestamp'] - activity['timestamp'].replace(tzinfo=None)
            timezone_offset = int(round(delta.total_seconds() / 3600))

        logger.debug(
            f"Decoded FIT file: {len(sessions)} sessions, {len(laps)} laps, {len(records)} records, "
            f"{len(carried)} carried messages"
        )

        return [self.build_activity({
            'creator': creator,
            'timezone': timezone_offset,
            'activity': activity,
            'sessions': sessions,
            'fit_messages': carried,
        })]

    def _activity_values(self, values: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'timestamp': _utc(values.get('timestamp')),
            'local_timestamp': values.get('local_timestamp') if isinstance(values.get('local_timestamp'), datetime) else None,
            'num_sessions': values.get('num_sessions'),
            'type': _str_or_none(values.get('type')),
            'event': _str_or_none(values.get('event')),
            'event_type': _str_or_none(values.get('event_type')),
        }

    def _aggregate_values(self, values: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'timestamp': _utc(values.get('timestamp')),
            'start_time': _utc(values.get('start_time')),
            'total_elapsed_time': values.get('total_elapsed_time'),
            'total_timer_time': values.get('total_timer_time'),
            'total_moving_time': values.get('total_moving_time'),
            'total_distance': values.get('total_distance'),
            'total_ascent': values.get('total_ascent'),
            'total_descent': values.get('total_descent'),
            'total_calories': values.get('total_calories'),
            'avg_speed': _pick(values, 'enhanced_avg_speed', 'avg_speed'),
            'max_speed': _pick(values, 'enhanced_max_speed', 'max_speed'),
            'avg_heart_rate': values.get('avg_heart_rate'),
            'max_heart_rate': values.get('max_heart_rate'),
            'avg_cadence': values.get('avg_cadence'),
            'max_cadence': values.get('max_cadence'),
            'avg_power': values.get('avg_power'),
            'max_power': values.get('max_power'),
            'avg_temperature': values.get('avg_temperature'),
            'max_temperature': values.get('max_temperature'),
            'avg_altitude': _pick(values, 'enhanced_avg_altitude', 'avg_altitude'),
            'max_altitude': _pick(values, 'enhanced_max_altitude', 'max_altitude'),
        }

    def _lap_values(self, values: Dict[str, Any]) -> Dict[str, Any]:
        lap = self._aggregate_values(values)
        sport = values.get('sport')
        lap['sport'] = catalog.sport_name(sport) if sport is not None else None
        return lap

    def _session_values(self, values: Dict[str, Any]) -> Dict[str, Any]:
        session = self._aggregate_values(values)
        session.update({
            'sport': catalog.sport_name(values.get('sport')),
            'sub_sport': _str_or_none(values.get('sub_sport')),
            'total_cycles': values.get('total_cycles'),
            'min_heart_rate': values.get('min_heart_rate'),
            'min_altitude': _pick(values, 'enhanced_min_altitude', 'min_altitude'),
            'laps': [],
            'records': [],
        })
        return session

    def _record_values(self, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        timestamp = _utc(values.get('timestamp'))
        if timestamp is None:
            return None
        return {
            'timestamp': timestamp,
            'position_lat': semicircles_to_degrees(values.get('position_lat')),
            'position_long': semicircles_to_degrees(values.get('position_long')),
            'distance': values.get('distance'),
            'speed': _pick(values, 'enhanced_speed', 'speed'),
            'altitude': _pick(values, 'enhanced_altitude', 'altitude'),
            'cadence': values.get('cadence'),
            'heart_rate': values.get('heart_rate'),
            'power': values.get('power'),
            'accumulated_power': values.get('accumulated_power'),
            'temperature': values.get('temperature'),
        }

    def _assign(self, sessions: List[Dict[str, Any]], laps: List[Dict[str, Any]],
                records: List[Dict[str, Any]]) -> None:
        """
        Hand laps and records to the session whose time window they start in.

        Items before the first session start go to the first session. A file
        with records but no session message gets a single session.
        """
        if not sessions:
            sessions.append({'laps': [], 'records': []})

        for session in sessions:
            if session.get('start_time') is None:
                session['start_time'] = session.get('timestamp') or (records[0]['timestamp'] if records else None)

        sessions.sort(key=lambda s: s['start_time'] or datetime.min.replace(tzinfo=timezone.utc))
        starts = [s['start_time'] for s in sessions]

        def owner(timestamp: Optional[datetime]) -> Dict[str, Any]:
            if timestamp is None or starts[0] is None:
                return sessions[0]
            return sessions[max(bisect_right(starts, timestamp) - 1, 0)]

        for lap in laps:
            owner(lap.get('start_time') or lap.get('timestamp'))['laps'].append(lap)
        for record in records:
            owner(record['timestamp'])['records'].append(record)

        for session in sessions:
            widen_session_window(session)

    def encode_activity(self, activity: ActivityFile) -> bytes:
        creator = activity.creator
        manufacturer_id = creator.manufacturer_id
        if manufacturer_id is None:
            raise EncodeError("fit: creator manufacturer is required", {'manufacturer': creator.manufacturer})

        writer = FitWriter()
        first = activity.sessions[0].first_timestamp if activity.sessions else None
        time_created = creator.time_created or first or datetime.now(timezone.utc)
        writer.write(FILE_ID, {
            'type': FILE_TYPE_ACTIVITY,
            'manufacturer': manufacturer_id,
            'product': creator.product,
            'time_created': to_fit_time(time_created),
        })
        for message in activity.fit_messages:
            writer.write_carried(message)

        last_timestamp = time_created
        total_timer = 0.0
        for session in activity.sessions:
            for record in session.records:
                writer.write(RECORD, self._record_fields(record))
                last_timestamp = record.timestamp
            for lap in session.laps:
                writer.write(LAP, self._lap_fields(lap, session))
            writer.write(SESSION, self._session_fields(session))
            total_timer += session.total_timer_time or session.total_elapsed_time or 0.0
            _, session_end = session.time_range()
            if session_end is not None and session_end > last_timestamp:
                last_timestamp = session_end

        writer.write(ACTIVITY, {
            'timestamp': to_fit_time(last_timestamp),
            'total_timer_time': total_timer,
            'num_sessions': len(activity.sessions),
            'type': ACTIVITY_TYPE_MANUAL,
            'event': EVENT_ACTIVITY,
            'event_type': EVENT_TYPE_STOP,
            'local_timestamp': to_fit_time(last_timestamp) + activity.timezone * 3600,
        })
        return writer.to_bytes()

    def _record_fields(self, record: Record) -> Dict[str, Any]:
        return {
            'timestamp': to_fit_time(record.timestamp),
            'position_lat': degrees_to_semicircles(record.position_lat),
            'position_long': degrees_to_semicircles(record.position_long),
            'altitude': record.altitude,
            'heart_rate': record.heart_rate,
            'cadence': record.cadence,
            'distance': record.distance,
            'speed': record.speed,
            'power': record.power,
            'accumulated_power': record.accumulated_power,
            'temperature': record.temperature,
        }

    def _aggregate_fields(self, item) -> Dict[str, Any]:
        fields = {spec.name: getattr(item, spec.name, None) for spec in LAP.fields + SESSION.fields}
        fields['start_time'] = to_fit_time(item.start_time)
        return fields

    def _lap_fields(self, lap: Lap, session: Session) -> Dict[str, Any]:
        fields = self._aggregate_fields(lap)
        fields['timestamp'] = to_fit_time(lap.end_time or lap.timestamp)
        fields['sport'] = catalog.sport_id(lap.sport or session.sport)
        return fields

    def _session_fields(self, session: Session) -> Dict[str, Any]:
        fields = self._aggregate_fields(session)
        start, end = session.time_range()
        fields['start_time'] = to_fit_time(start)
        fields['timestamp'] = to_fit_time(end or session.timestamp)
        fields['sport'] = catalog.sport_id(session.sport)
        fields['sub_sport'] = _enum_id('sub_sport', session.sub_sport, default=0)
        fields['num_laps'] = len(session.laps)
        return fields


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)

