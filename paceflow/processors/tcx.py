#!/usr/bin/env python3
"""
TCX codec built on xml.etree.ElementTree.

Each <Activity> maps to a session and each <Lap> to a lap. TCX only knows the
sports Running, Biking and Other.
"""
import logging
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..const import SPORT_CYCLING, SPORT_GENERIC, SPORT_RUNNING, TCX_AX_NAMESPACE, TCX_NAMESPACE
from ..exceptions import DecodeError
from ..models.activity import ActivityFile, Lap, Record, Session
from ..models.spec import FileType
from ..toolkit.number import first_present, last_present
from .interface import FormatCodec, records_by_lap, widen_session_window

logger = logging.getLogger(__name__)

XSI_NAMESPACE = 'http://www.w3.org/2001/XMLSchema-instance'

NS = {'tcx': TCX_NAMESPACE, 'ax': TCX_AX_NAMESPACE}

TCX_SPORTS = {
    'Running': SPORT_RUNNING,
    'Biking': SPORT_CYCLING,
    'Other': SPORT_GENERIC,
}

ET.register_namespace('', TCX_NAMESPACE)
ET.register_namespace('ax', TCX_AX_NAMESPACE)
ET.register_namespace('xsi', XSI_NAMESPACE)


def _t(name: str) -> str:
    return f"{{{TCX_NAMESPACE}}}{name}"


def _ax(name: str) -> str:
    return f"{{{TCX_AX_NAMESPACE}}}{name}"


def parse_time(text: Optional[str]) -> Optional[datetime]:
    """Parse an xsd:dateTime, accepting a trailing Z."""
    if not text:
        return None
    text = text.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        value = datetime.fromisoformat(text)
    except ValueError:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def format_time(value: datetime) -> str:
    value = value.astimezone(timezone.utc)
    if value.microsecond:
        return value.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'
    return value.strftime('%Y-%m-%dT%H:%M:%SZ')


def _float(element: ET.Element, path: str) -> Optional[float]:
    text = element.findtext(path, None, NS)
    if text is None or not text.strip():
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _sub(parent: ET.Element, tag: str, value: Any) -> Optional[ET.Element]:
    if value is None:
        return None
    element = ET.SubElement(parent, tag)
    element.text = value if isinstance(value, str) else _number(value)
    return element


def tcx_sport(sport: Optional[str]) -> str:
    for label, canonical in TCX_SPORTS.items():
        if canonical == sport:
            return label
    return 'Other'


class TcxCodec(FormatCodec):
    """Training Center XML v2 files"""

    file_type = FileType.TCX

    def decode(self, data: bytes) -> List[ActivityFile]:
        try:
            root = ET.fromstring(data)
        except ET.ParseError as e:
            raise DecodeError(f"tcx: {e}") from e

        if not root.tag.endswith('TrainingCenterDatabase'):
            raise DecodeError("tcx: root element is not TrainingCenterDatabase")

        creator: Dict[str, Any] = {}
        sessions = []
        for activity in root.findall('tcx:Activities/tcx:Activity', NS):
            if not creator:
                creator = {
                    'name': activity.findtext('tcx:Creator/tcx:Name', None, NS),
                    'product': _int_or_none(activity.findtext('tcx:Creator/tcx:ProductID', None, NS)),
                    'time_created': parse_time(activity.findtext('tcx:Id', None, NS)),
                }
            session = self._activity_to_session(activity)
            if session is not None:
                sessions.append(session)

        if not sessions:
            raise DecodeError("tcx: file has no activity")

        logger.debug(f"Decoded TCX file: {len(sessions)} activities")
        return [self.build_activity({'creator': creator, 'sessions': sessions})]

    def _activity_to_session(self, activity: ET.Element) -> Optional[Dict[str, Any]]:
        sport = TCX_SPORTS.get(activity.get('Sport', 'Other'), SPORT_GENERIC)
        laps = []
        records = []

        for lap_element in activity.findall('tcx:Lap', NS):
            lap_records = [
                record for record in (
                    self._trackpoint_to_record(tp)
                    for tp in lap_element.findall('tcx:Track/tcx:Trackpoint', NS)
                )
                if record is not None
            ]

            start_time = parse_time(lap_element.get('StartTime'))
            if start_time is None and lap_records:
                start_time = lap_records[0]['timestamp']
            if start_time is None:
                continue

            laps.append({
                'start_time': start_time,
                'timestamp': lap_records[-1]['timestamp'] if lap_records else start_time,
                'total_elapsed_time': _float(lap_element, 'tcx:TotalTimeSeconds'),
                'total_timer_time': _float(lap_element, 'tcx:TotalTimeSeconds'),
                'total_distance': _recorded_distance(_float(lap_element, 'tcx:DistanceMeters'), lap_records),
                'max_speed': _float(lap_element, 'tcx:MaximumSpeed'),
                'total_calories': _float(lap_element, 'tcx:Calories'),
                'avg_heart_rate': _float(lap_element, 'tcx:AverageHeartRateBpm/tcx:Value'),
                'max_heart_rate': _float(lap_element, 'tcx:MaximumHeartRateBpm/tcx:Value'),
                'avg_cadence': _float(lap_element, 'tcx:Cadence'),
                'avg_speed': _float(lap_element, 'tcx:Extensions/ax:LX/ax:AvgSpeed'),
                'avg_power': _float(lap_element, 'tcx:Extensions/ax:LX/ax:AvgWatts'),
                'max_power': _float(lap_element, 'tcx:Extensions/ax:LX/ax:MaxWatts'),
                'max_cadence': _float(lap_element, 'tcx:Extensions/ax:LX/ax:MaxBikeCadence'),
            })
            records.extend(lap_records)

        if not records and not laps:
            return None

        records.sort(key=lambda r: r['timestamp'])
        laps.sort(key=lambda lap: lap['start_time'])
        session = {'sport': sport, 'laps': laps, 'records': records}
        widen_session_window(session)
        return session

    def _trackpoint_to_record(self, trackpoint: ET.Element) -> Optional[Dict[str, Any]]:
        timestamp = parse_time(trackpoint.findtext('tcx:Time', None, NS))
        if timestamp is None:
            return None
        return {
            'timestamp': timestamp,
            'position_lat': _float(trackpoint, 'tcx:Position/tcx:LatitudeDegrees'),
            'position_long': _float(trackpoint, 'tcx:Position/tcx:LongitudeDegrees'),
            'altitude': _float(trackpoint, 'tcx:AltitudeMeters'),
            'distance': _float(trackpoint, 'tcx:DistanceMeters'),
            'heart_rate': _float(trackpoint, 'tcx:HeartRateBpm/tcx:Value'),
            'cadence': _float(trackpoint, 'tcx:Cadence'),
            'speed': _float(trackpoint, 'tcx:Extensions/ax:TPX/ax:Speed'),
            'power': _float(trackpoint, 'tcx:Extensions/ax:TPX/ax:Watts'),
        }

    def encode_activity(self, activity: ActivityFile) -> bytes:
        root = ET.Element(_t('TrainingCenterDatabase'))
        activities = ET.SubElement(root, _t('Activities'))

        for session in activity.sessions:
            element = ET.SubElement(activities, _t('Activity'), Sport=tcx_sport(session.sport))
            start, _ = session.time_range()
            _sub(element, _t('Id'), format_time(start or activity.creator.time_created or datetime.now(timezone.utc)))

            laps = session.laps or [Lap(start_time=start, total_elapsed_time=session.total_elapsed_time)]
            groups = records_by_lap(session) if session.laps else [list(session.records)]
            for lap, records in zip(laps, groups):
                self._write_lap(element, lap, records, session)

            creator = ET.SubElement(element, _t('Creator'), {
                f'{{{XSI_NAMESPACE}}}type': 'Device_t',
            })
            _sub(creator, _t('Name'), activity.creator.name)
            _sub(creator, _t('UnitId'), '0')
            _sub(creator, _t('ProductID'), str(activity.creator.product or 0))

        return ET.tostring(root, encoding='utf-8', xml_declaration=True)

    def _write_lap(self, parent: ET.Element, lap: Lap, records: List[Record], session: Session) -> None:
        start = lap.start_time or (records[0].timestamp if records else session.time_range()[0])
        element = ET.SubElement(parent, _t('Lap'), StartTime=format_time(start))
        # TotalTimeSeconds, DistanceMeters and Calories are required by the schema
        _sub(element, _t('TotalTimeSeconds'), lap.total_timer_time if lap.total_timer_time is not None
             else (lap.total_elapsed_time or 0))
        _sub(element, _t('DistanceMeters'), _lap_distance(lap, records))
        _sub(element, _t('MaximumSpeed'), lap.max_speed)
        _sub(element, _t('Calories'), int(round(lap.total_calories or 0)))
        if lap.avg_heart_rate is not None:
            _sub(ET.SubElement(element, _t('AverageHeartRateBpm')), _t('Value'), int(round(lap.avg_heart_rate)))
        if lap.max_heart_rate is not None:
            _sub(ET.SubElement(element, _t('MaximumHeartRateBpm')), _t('Value'), int(round(lap.max_heart_rate)))
        _sub(element, _t('Intensity'), 'Active')
        if lap.avg_cadence is not None:
            _sub(element, _t('Cadence'), int(round(lap.avg_cadence)))
        _sub(element, _t('TriggerMethod'), 'Manual')

        track = ET.SubElement(element, _t('Track'))
        for record in records:
            self._write_trackpoint(track, record)

        if lap.avg_speed is not None or lap.avg_power is not None:
            lx = ET.SubElement(ET.SubElement(element, _t('Extensions')), _ax('LX'))
            _sub(lx, _ax('AvgSpeed'), lap.avg_speed)
            _sub(lx, _ax('AvgWatts'), int(round(lap.avg_power)) if lap.avg_power is not None else None)
            _sub(lx, _ax('MaxWatts'), int(round(lap.max_power)) if lap.max_power is not None else None)

    def _write_trackpoint(self, track: ET.Element, record: Record) -> None:
        trackpoint = ET.SubElement(track, _t('Trackpoint'))
        _sub(trackpoint, _t('Time'), format_time(record.timestamp))
        if record.has_position:
            position = ET.SubElement(trackpoint, _t('Position'))
            _sub(position, _t('LatitudeDegrees'), record.position_lat)
            _sub(position, _t('LongitudeDegrees'), record.position_long)
        _sub(trackpoint, _t('AltitudeMeters'), record.altitude)
        _sub(trackpoint, _t('DistanceMeters'), record.distance)
        if record.heart_rate is not None:
            _sub(ET.SubElement(trackpoint, _t('HeartRateBpm')), _t('Value'), int(round(record.heart_rate)))
        if record.cadence is not None:
            _sub(trackpoint, _t('Cadence'), int(round(record.cadence)))
        if record.speed is not None or record.power is not None:
            tpx = ET.SubElement(ET.SubElement(trackpoint, _t('Extensions')), _ax('TPX'))
            _sub(tpx, _ax('Speed'), record.speed)
            _sub(tpx, _ax('Watts'), int(round(record.power)) if record.power is not None else None)


def _int_or_none(text: Optional[str]) -> Optional[int]:
    if text is None:
        return None
    try:
        return int(text.strip())
    except ValueError:
        return None


def _lap_distance(lap: Lap, records: List[Record]) -> float:
    """Lap distance, else the span of its record distances, else 0."""
    if lap.total_distance is not None:
        return lap.total_distance
    first = first_present(record.distance for record in records)
    last = last_present(record.distance for record in records)
    if first is None or last is None:
        return 0
    return max(last - first, 0.0)


def _recorded_distance(distance: Optional[float], records: List[Dict[str, Any]]) -> Optional[float]:
    # A zero lap distance over trackpoints without any distance is the required placeholder
    if distance == 0 and records and all(record.get('distance') is None for record in records):
        return None
    return distance
