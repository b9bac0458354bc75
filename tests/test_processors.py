#!/usr/bin/env python3
"""
Tests for format detection, the FIT/GPX/TCX codecs and record preprocessing
"""
import xml.etree.ElementTree as ET
from datetime import timedelta

import pytest

from paceflow.exceptions import DecodeError, EncodeError, UnsupportedFileTypeError
from paceflow.models import Creator, FileType, FitField, FitMessage, Record
from paceflow.processors import (
    FitCodec,
    GpxCodec,
    Preprocessor,
    TcxCodec,
    detect_file_type,
    get_codec,
    records_by_lap,
)
from paceflow.processors.fit import crc16_fit, to_fit_time
from paceflow.processors.tcx import NS

from conftest import START, build_activity, build_records, build_session


class TestDetection:
    def test_detect_each_format(self, fit_bytes, gpx_bytes, tcx_bytes):
        assert detect_file_type(fit_bytes) == FileType.FIT
        assert detect_file_type(gpx_bytes) == FileType.GPX
        assert detect_file_type(tcx_bytes) == FileType.TCX

    def test_unknown_bytes(self):
        assert detect_file_type(b"hello world, not an activity") == FileType.UNSUPPORTED
        assert detect_file_type(b"") == FileType.UNSUPPORTED

    def test_get_codec(self):
        assert isinstance(get_codec(FileType.TCX), TcxCodec)
        with pytest.raises(UnsupportedFileTypeError):
            get_codec(FileType.UNSUPPORTED)


class TestFitCodec:
    """FIT writer output read back through fitparse"""

    def test_file_is_crc_framed(self, fit_bytes):
        assert fit_bytes[8:12] == b".FIT"
        assert crc16_fit(fit_bytes) == 0

    def test_round_trip(self, running_activity, fit_bytes):
        [decoded] = FitCodec().decode(fit_bytes)
        original = running_activity.sessions[0]
        session = decoded.sessions[0]

        assert decoded.creator.manufacturer_id == 1
        assert decoded.creator.product == 1
        assert decoded.creator.time_created == START
        assert session.sport == "Running"
        assert len(session.records) == len(original.records)
        assert len(session.laps) == 1
        assert session.total_distance == pytest.approx(original.total_distance)
        assert session.total_elapsed_time == pytest.approx(original.total_elapsed_time)

        first = session.records[0]
        assert first.position_lat == pytest.approx(46.5, abs=1e-6)
        assert first.heart_rate == 140
        assert session.records[-1].distance == pytest.approx(27.0)
        assert session.records[-1].speed == pytest.approx(3.0)

    def test_multiple_sessions(self, multisport_activity):
        [decoded] = FitCodec().decode(FitCodec().encode_activity(multisport_activity))
        assert [s.sport for s in decoded.sessions] == ["Running", "Cycling"]
        assert [len(s.records) for s in decoded.sessions] == [10, 10]

    def test_manufacturer_required(self, running_activity):
        activity = running_activity.model_copy(update={'creator': Creator(name="Watch")})
        with pytest.raises(EncodeError):
            FitCodec().encode_activity(activity)

    def test_unmodelled_messages_are_carried(self, running_activity):
        stamp = to_fit_time(START)
        event = FitMessage(global_number=21, name="event", fields=[
            FitField(number=253, base_type=0x86, size=4, value=stamp),
            FitField(number=0, base_type=0x00, size=1, value=0),
            FitField(number=1, base_type=0x00, size=1, value=0),
        ])
        device = FitMessage(global_number=23, name="device_info", fields=[
            FitField(number=253, base_type=0x86, size=4, value=stamp),
            FitField(number=27, base_type=0x07, size=16, value="Forerunner 965"),
        ])
        activity = running_activity.model_copy(update={'fit_messages': [event, device]})

        [decoded] = FitCodec().decode(FitCodec().encode_activity(activity))
        assert [m.name for m in decoded.fit_messages] == ["event", "device_info"]
        carried_event, carried_device = decoded.fit_messages
        assert carried_event.global_number == 21
        assert carried_event.timestamp == START
        assert [(f.number, f.value) for f in carried_event.fields] == [(253, stamp), (0, 0), (1, 0)]
        assert carried_device.fields[1].value == "Forerunner 965"
        assert len(decoded.sessions[0].records) == 10

        # A second pass writes the same messages again
        [again] = FitCodec().decode(FitCodec().encode_activity(decoded))
        assert again.fit_messages == decoded.fit_messages

    def test_accumulated_power_round_trip(self, running_activity):
        activity = running_activity.model_copy(deep=True)
        for i, record in enumerate(activity.sessions[0].records):
            record.power = 200.0
            record.accumulated_power = 200.0 * (i + 1)
        [decoded] = FitCodec().decode(FitCodec().encode_activity(activity))
        records = decoded.sessions[0].records
        assert records[0].accumulated_power == 200
        assert records[-1].accumulated_power == 2000

    def test_unknown_carried_base_type(self, running_activity):
        message = FitMessage(global_number=21, fields=[FitField(number=0, base_type=0x42, size=1, value=0)])
        with pytest.raises(EncodeError):
            FitCodec().encode_activity(running_activity.model_copy(update={'fit_messages': [message]}))

    def test_corrupt_file(self, fit_bytes):
        broken = fit_bytes[:40] + b"\x00" * 8
        with pytest.raises(DecodeError):
            FitCodec().decode(broken)


class TestGpxCodec:
    """GPX through gpxpy"""

    def test_round_trip(self, running_activity, gpx_bytes):
        [decoded] = GpxCodec().decode(gpx_bytes)
        session = decoded.sessions[0]

        assert decoded.creator.name == "Forerunner"
        assert decoded.creator.time_created == START
        assert session.sport == "Running"
        assert len(session.records) == 10
        assert session.records[3].heart_rate == 143
        assert session.records[3].cadence == 85
        assert session.records[-1].distance == pytest.approx(27.0)
        assert session.records[-1].altitude == pytest.approx(404.0)

    def test_positionless_records_are_dropped(self, running_activity):
        activity = running_activity.model_copy(deep=True)
        activity.sessions[0].records[0].position_lat = None
        [decoded] = GpxCodec().decode(GpxCodec().encode_activity(activity))
        assert len(decoded.sessions[0].records) == 9

    def test_malformed(self):
        with pytest.raises(DecodeError):
            GpxCodec().decode(b"<gpx><trk><trkseg><trkpt lat=")

    def test_empty_track(self):
        data = (b'<?xml version="1.0"?><gpx version="1.1" creator="x" '
                b'xmlns="http://www.topografix.com/GPX/1/1"></gpx>')
        with pytest.raises(DecodeError, match="no activity"):
            GpxCodec().decode(data)


class TestTcxCodec:
    """TCX through ElementTree"""

    def test_round_trip(self, running_activity, tcx_bytes):
        [decoded] = TcxCodec().decode(tcx_bytes)
        session = decoded.sessions[0]

        assert decoded.creator.name == "Forerunner"
        assert decoded.creator.product == 1
        assert session.sport == "Running"
        assert len(session.laps) == 1
        assert len(session.records) == 10
        assert session.records[-1].speed == pytest.approx(3.0)
        assert session.laps[0].total_distance == pytest.approx(27.0)

    def test_unknown_sport_is_other(self, running_activity):
        activity = running_activity.model_copy(deep=True)
        activity.sessions[0].sport = "Hiking"
        data = TcxCodec().encode_activity(activity)
        assert b'Sport="Other"' in data
        [decoded] = TcxCodec().decode(data)
        assert decoded.sessions[0].sport == "Generic"

    def test_wrong_root(self):
        with pytest.raises(DecodeError):
            TcxCodec().decode(b"<Foo/>")

    def test_missing_lap_distance_is_derived_from_records(self, running_activity):
        activity = running_activity.model_copy(deep=True)
        activity.sessions[0].laps[0].total_distance = None
        root = ET.fromstring(TcxCodec().encode_activity(activity))
        lap = root.find('tcx:Activities/tcx:Activity/tcx:Lap', NS)
        assert lap.findtext('tcx:DistanceMeters', None, NS) == "27"

    def test_removed_distance_stays_absent(self, running_activity):
        activity = running_activity.model_copy(deep=True)
        session = activity.sessions[0]
        session.laps[0].total_distance = None
        for record in session.records:
            record.distance = None
            record.position_lat = None
            record.position_long = None

        data = TcxCodec().encode_activity(activity)
        # The schema requires the element, so a placeholder is written
        assert b"<DistanceMeters>0</DistanceMeters>" in data
        [decoded] = TcxCodec().decode(data)
        assert decoded.sessions[0].laps[0].total_distance is None

    def test_recorded_zero_distance_is_kept(self):
        data = (
            b'<?xml version="1.0"?>'
            b'<TrainingCenterDatabase xmlns="http://www.garmin.com/xmlschemas/TrainingCenterDatabase/v2">'
            b'<Activities><Activity Sport="Running"><Id>2024-05-01T06:00:00Z</Id>'
            b'<Lap StartTime="2024-05-01T06:00:00Z"><TotalTimeSeconds>1</TotalTimeSeconds>'
            b'<DistanceMeters>0</DistanceMeters><Calories>0</Calories><Track>'
            b'<Trackpoint><Time>2024-05-01T06:00:00Z</Time><DistanceMeters>0</DistanceMeters></Trackpoint>'
            b'<Trackpoint><Time>2024-05-01T06:00:01Z</Time><DistanceMeters>0</DistanceMeters></Trackpoint>'
            b'</Track></Lap></Activity></Activities></TrainingCenterDatabase>'
        )
        [decoded] = TcxCodec().decode(data)
        assert decoded.sessions[0].laps[0].total_distance == 0


class TestRecordsByLap:
    def test_partition(self):
        session = build_session(count=10)
        session.laps = [
            session.laps[0].model_copy(update={'total_elapsed_time': 4}),
            session.laps[0].model_copy(update={'start_time': START + timedelta(seconds=5)}),
        ]
        groups = records_by_lap(session)
        assert [len(group) for group in groups] == [5, 5]


class TestPreprocessor:
    """Derived record metrics"""

    def test_merges_duplicate_timestamps(self):
        records = build_records(3)
        duplicate = records[1].model_copy(update={'heart_rate': 200.0, 'position_lat': None})
        merged = Preprocessor().aggregate_by_timestamp([records[0], records[1], duplicate, records[2]])
        assert len(merged) == 3
        assert merged[1].heart_rate == pytest.approx((141.0 + 200.0) / 2)
        assert merged[1].position_lat == records[1].position_lat

    def test_distance_and_speed_from_positions(self):
        records = [
            Record(timestamp=START + timedelta(seconds=i), position_lat=46.5 + i * 0.0001, position_long=6.6)
            for i in range(3)
        ]
        Preprocessor().calculate_distance_and_speed(records)
        assert records[0].distance is None
        assert records[1].distance == pytest.approx(11.1, abs=0.1)
        assert records[2].distance == pytest.approx(22.2, abs=0.2)
        assert records[1].speed == pytest.approx(11.1, abs=0.1)

    def test_grade_and_pace(self):
        records = [
            Record(timestamp=START + timedelta(seconds=i * 10), distance=i * 20.0, altitude=100.0 + i)
            for i in range(10)
        ]
        Preprocessor(smoothing_distance=1, grade_distance=50).run("Running", records)
        assert records[0].grade == pytest.approx(5.0)
        assert records[0].pace is None
        assert records[1].pace == pytest.approx(500.0)

    def test_cycling_slow_samples_have_no_pace(self):
        records = build_records(3, speed=1.0)
        Preprocessor().calculate_pace("Cycling", records)
        assert all(record.pace is None for record in records)

    def test_invalid_options_fall_back(self):
        preprocessor = Preprocessor(smoothing_distance=0, grade_distance=-1)
        assert preprocessor.smoothing_distance == 30.0
        assert preprocessor.grade_distance == 100.0

    def test_activity_fixture_is_consistent(self):
        activity = build_activity()
        assert activity.sessions[0].total_distance == pytest.approx(27.0)
