#!/usr/bin/env python3
"""
GPX codec built on gpxpy.

Tracks map to sessions and track segments to laps. Heart rate, cadence,
temperature, power and distance travel in the Garmin TrackPointExtension.
"""
import logging
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional

import gpxpy
import gpxpy.gpx

from ..const import GPX_TPX_NAMESPACE
from ..exceptions import DecodeError
from ..models import catalog
from ..models.activity import ActivityFile, Record
from ..models.spec import FileType
from .interface import FormatCodec, records_by_lap, widen_session_window

logger = logging.getLogger(__name__)

METADATA_DESCRIPTION = "The GPX file is created by paceflow"

# Extension element local name -> record field
EXTENSION_FIELDS = {
    'hr': 'heart_rate',
    'cad': 'cadence',
    'atemp': 'temperature',
    'power': 'power',
    'distance': 'distance',
}


def _local_name(tag: str) -> str:
    return tag.rsplit('}', 1)[-1] if isinstance(tag, str) else ''


def _float(text: Optional[str]) -> Optional[float]:
    if text is None:
        return None
    try:
        return float(text.strip())
    except ValueError:
        return None


def read_extensions(extensions: List[ET.Element]) -> Dict[str, float]:
    """Collect known sensor values from track point extension elements, at any depth."""
    values = {}
    for extension in extensions:
        for element in extension.iter():
            field = EXTENSION_FIELDS.get(_local_name(element.tag))
            if field and field not in values:
                value = _float(element.text)
                if value is not None:
                    values[field] = value
    return values


def _tpx(name: str) -> str:
    return f"{{{GPX_TPX_NAMESPACE}}}{name}"


def build_extension(record: Record) -> Optional[ET.Element]:
    extension = ET.Element(_tpx('TrackPointExtension'))
    for tag, field in EXTENSION_FIELDS.items():
        value = getattr(record, field)
        if value is None:
            continue
        child = ET.SubElement(extension, _tpx(tag))
        child.text = f"{value:.2f}".rstrip('0').rstrip('.') if field == 'distance' else str(int(round(value)))
    return extension if len(extension) else None


class GpxCodec(FormatCodec):
    """GPX 1.1 files via gpxpy"""

    file_type = FileType.GPX

    def decode(self, data: bytes) -> List[ActivityFile]:
        try:
            gpx = gpxpy.parse(data.decode('utf-8-sig'))
        except (gpxpy.gpx.GPXException, UnicodeDecodeError, ValueError) as e:
            raise DecodeError(f"gpx: {e}") from e

        sessions = []
        for track in gpx.tracks:
            session = self._track_to_session(track)
            if session is not None:
                sessions.append(session)

        if not sessions:
            raise DecodeError("gpx: file has no activity")

        time_created = gpx.time or sessions[0]['records'][0]['timestamp']
        logger.debug(f"Decoded GPX file: {len(sessions)} tracks")

        return [self.build_activity({
            'creator': {'name': gpx.creator, 'time_created': time_created},
            'sessions': sessions,
        })]

    def _track_to_session(self, track: gpxpy.gpx.GPXTrack) -> Optional[Dict[str, Any]]:
        laps = []
        records = []
        for segment in track.segments:
            segment_records = []
            for point in segment.points:
                if point.time is None:
                    continue
                record = {
                    'timestamp': point.time,
                    'position_lat': point.latitude,
                    'position_long': point.longitude,
                    'altitude': point.elevation,
                }
                record.update(read_extensions(point.extensions))
                segment_records.append(record)

            if not segment_records:
                continue
            start = segment_records[0]['timestamp']
            end = segment_records[-1]['timestamp']
            laps.append({'start_time': start, 'timestamp': end,
                         'total_elapsed_time': (end - start).total_seconds()})
            records.extend(segment_records)

        if not records:
            return None

        records.sort(key=lambda r: r['timestamp'])
        session = {
            'sport': catalog.sport_name(track.type),
            'laps': laps,
            'records': records,
        }
        widen_session_window(session)
        return session

    def encode_activity(self, activity: ActivityFile) -> bytes:
        gpx = gpxpy.gpx.GPX()
        gpx.creator = activity.creator.name
        gpx.time = activity.creator.time_created
        gpx.description = METADATA_DESCRIPTION
        gpx.nsmap['gpxtpx'] = GPX_TPX_NAMESPACE

        for session in activity.sessions:
            track = gpxpy.gpx.GPXTrack(name=session.sport)
            track.type = session.sport
            for group in records_by_lap(session):
                segment = gpxpy.gpx.GPXTrackSegment()
                for record in group:
                    # A track point needs a position; concealed samples are dropped
                    if not record.has_position:
                        continue
                    point = gpxpy.gpx.GPXTrackPoint(
                        latitude=record.position_lat,
                        longitude=record.position_long,
                        elevation=record.altitude,
                        time=record.timestamp,
                    )
                    extension = build_extension(record)
                    if extension is not None:
                        point.extensions.append(extension)
                    segment.points.append(point)
                if segment.points:
                    track.segments.append(segment)
            gpx.tracks.append(track)

        return gpx.to_xml(version='1.1').encode('utf-8')
