#!/usr/bin/env python3
"""
Processors Abstract Interface - Defines the contract every format codec implements
"""
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Dict, List

from ..const import FIT_SIGNATURE
from ..exceptions import DecodeError, ValidationError
from ..models.activity import ActivityFile, Record, Session, parse_activity
from ..models.spec import FileType

# How far into an XML document to look for the root element
_SNIFF_WINDOW = 2048


def detect_file_type(data: bytes) -> FileType:
    """Auto-detect the format of raw file bytes"""
    if len(data) >= 12 and data[8:12] == FIT_SIGNATURE:
        return FileType.FIT

    head = data[:_SNIFF_WINDOW].lstrip(b"\xef\xbb\xbf").lower()
    if b"<gpx" in head:
        return FileType.GPX
    if b"<trainingcenterdatabase" in head:
        return FileType.TCX
    return FileType.UNSUPPORTED


def widen_session_window(session: Dict[str, Any]) -> None:
    """
    Stretch a raw session's start/end to cover the laps and records it owns.

    Device summaries and sample timestamps rarely agree to the second; the
    model requires laps to fall inside their session.
    """
    start = session.get('start_time')
    starts_at = [start] if start else []
    ends_at = [session['end_time']] if session.get('end_time') else []
    if start and session.get('total_elapsed_time') is not None:
        ends_at.append(start + timedelta(seconds=session['total_elapsed_time']))

    records = session.get('records') or []
    if records:
        starts_at.append(records[0]['timestamp'])
        ends_at.append(records[-1]['timestamp'])

    for lap in session.get('laps') or []:
        lap_start = lap.get('start_time')
        if not lap_start:
            continue
        starts_at.append(lap_start)
        if lap.get('total_elapsed_time') is not None:
            ends_at.append(lap_start + timedelta(seconds=lap['total_elapsed_time']))

    if starts_at:
        session['start_time'] = min(starts_at)
    if ends_at:
        session['end_time'] = max(ends_at)


def records_by_lap(session: Session) -> List[List[Record]]:
    """
    Partition a session's records over its laps in order.

    Records outside every lap stay with the lap that precedes them; a
    session without laps yields a single group.
    """
    if not session.laps:
        return [list(session.records)] if session.records else []

    groups: List[List[Record]] = [[] for _ in session.laps]
    current = 0
    for record in session.records:
        while current + 1 < len(session.laps):
            next_start = session.laps[current + 1].start_time
            if next_start is None or record.timestamp < next_start:
                break
            current += 1
        groups[current].append(record)
    return groups


class FormatCodec(ABC):
    """Format codec abstract base class"""

    file_type: FileType = FileType.UNSUPPORTED

    @abstractmethod
    def decode(self, data: bytes) -> List[ActivityFile]:
        """
        Decode raw file bytes.

        Raises:
            DecodeError: malformed input
            ValidationError: decoded structure violates the model invariants
        """
        pass

    @abstractmethod
    def encode_activity(self, activity: ActivityFile) -> bytes:
        """Encode a single activity into one file"""
        pass

    def encode(self, activities: List[ActivityFile]) -> List[bytes]:
        """Encode activities, one file each"""
        return [self.encode_activity(activity) for activity in activities]

    def validate_source(self, data: bytes) -> bool:
        """Validate data source format"""
        return detect_file_type(data) == self.file_type

    def build_activity(self, raw: Dict[str, Any]) -> ActivityFile:
        """Validate a raw decoded structure into the canonical model"""
        try:
            return parse_activity(raw)
        except ValidationError as e:
            raise DecodeError(f"{self.file_type.extension}: {e.message}", e.details) from e
