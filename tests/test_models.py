#!/usr/bin/env python3
"""
Tests for the canonical activity model, edit specifications and catalog
"""
from datetime import timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from paceflow.exceptions import ValidationError
from paceflow.models import (
    ActivityFile,
    Creator,
    EncodeSpecifications,
    FileType,
    Lap,
    Marker,
    Record,
    Session,
    Summary,
    ToolMode,
    catalog,
    parse_activities,
    parse_activity,
)

from conftest import START, build_activity, build_records


def raw_activity(**overrides):
    raw = {
        'creator': {'name': 'Forerunner', 'timeCreated': START},
        'sessions': [{
            'sport': 'Running',
            'records': [
                {'timestamp': START},
                {'timestamp': START + timedelta(seconds=1), 'heartRate': 120},
            ],
        }],
    }
    raw.update(overrides)
    return raw


class TestDefaults:
    """Absent data stays absent, labels fall back to Generic/Unknown"""

    def test_session_defaults(self):
        session = Session()
        assert session.sport == "Generic"
        assert session.creator_name == "Unknown"
        assert session.total_distance is None
        assert session.avg_heart_rate is None
        assert session.laps == []
        assert session.records == []

    def test_blank_labels(self):
        assert Session(sport="  ").sport == "Generic"
        assert Creator(name="").name == "Unknown"
        assert Creator(name=None).name == "Unknown"

    def test_sport_id_resolves_to_label(self):
        assert Session(sport=1).sport == "Running"

    def test_manufacturer_name_resolves_to_id(self):
        creator = Creator(manufacturer="garmin")
        assert creator.manufacturer == 1
        assert creator.manufacturer_id == 1
        assert Creator(manufacturer="no such brand").manufacturer_id is None

    def test_record_measurements_default_to_none(self):
        record = Record(timestamp=START)
        assert record.heart_rate is None
        assert record.distance is None
        assert not record.has_position

    def test_naive_timestamps_are_utc(self):
        record = Record(timestamp=START.replace(tzinfo=None))
        assert record.timestamp == START

    def test_camel_case_aliases(self):
        record = Record.model_validate({'timestamp': START, 'heartRate': 150, 'positionLat': 1.5})
        assert record.heart_rate == 150
        assert record.position_lat == 1.5
        assert 'heartRate' in record.to_wire()


class TestStructuralValidation:
    """Broken structures are rejected, not silently defaulted"""

    def test_parse_activity(self):
        activity = parse_activity(raw_activity())
        assert isinstance(activity, ActivityFile)
        assert activity.sessions[0].records[1].heart_rate == 120
        assert parse_activity(activity) is activity

    def test_missing_creator(self):
        raw = raw_activity()
        del raw['creator']
        with pytest.raises(ValidationError) as exc_info:
            parse_activity(raw)
        locations = [error['loc'] for error in exc_info.value.details['errors']]
        assert ('creator',) in locations

    def test_zero_sessions(self):
        with pytest.raises(ValidationError):
            parse_activity(raw_activity(sessions=[]))

    def test_record_without_timestamp(self):
        raw = raw_activity()
        raw['sessions'][0]['records'].append({'heartRate': 130})
        with pytest.raises(ValidationError):
            parse_activity(raw)

    def test_unordered_records(self):
        records = build_records(3)
        with pytest.raises(PydanticValidationError, match="time-ordered"):
            Session(records=[records[1], records[0], records[2]])

    def test_duplicate_timestamps_are_allowed(self):
        records = build_records(2)
        session = Session(records=[records[0], records[0].model_copy(), records[1]])
        assert len(session.records) == 3

    def test_parse_activities_reports_index(self):
        with pytest.raises(ValidationError, match=r"^\[1\]: "):
            parse_activities([raw_activity(), raw_activity(sessions=[])])


class TestLapRange:
    """Laps fall inside their session, with one second of tolerance"""

    def test_lap_outside_session(self):
        with pytest.raises(PydanticValidationError, match="starts outside"):
            Session(
                records=build_records(10),
                laps=[Lap(start_time=START + timedelta(minutes=5), total_elapsed_time=10)],
            )

    def test_lap_ending_after_session(self):
        with pytest.raises(PydanticValidationError, match="ends after"):
            Session(records=build_records(10), laps=[Lap(start_time=START, total_elapsed_time=60)])

    def test_lap_within_tolerance(self):
        session = Session(
            records=build_records(10),
            laps=[Lap(start_time=START - timedelta(seconds=1), total_elapsed_time=10)],
        )
        assert len(session.laps) == 1

    def test_lap_contains(self):
        lap = Lap(start_time=START, total_elapsed_time=10)
        assert lap.contains(START + timedelta(seconds=10))
        assert not lap.contains(START + timedelta(seconds=11))


class TestActivityFile:
    def test_sort_key_prefers_time_created(self, running_activity, later_activity):
        ordered = sorted([later_activity, running_activity], key=lambda a: a.sort_key())
        assert ordered[0] is running_activity

    def test_summary_projection(self, running_activity):
        session = running_activity.sessions[0]
        summary = Summary.from_session(session)
        assert summary.sport == "Running"
        assert summary.total_distance == session.total_distance
        assert summary.start_time == START
        assert summary.end_time == START + timedelta(seconds=9)


class TestEncodeSpecifications:
    """Edit directives"""

    def test_marker_half_open(self):
        marker = Marker(start_n=2, end_n=5)
        assert marker.contains(2)
        assert not marker.contains(5)
        assert Marker.whole(10).covers(10)
        assert not marker.covers(10)

    def test_marker_end_before_start(self):
        with pytest.raises(PydanticValidationError):
            Marker(start_n=5, end_n=2)
        with pytest.raises(PydanticValidationError):
            Marker(start_n=-1, end_n=2)

    def test_marker_aliases(self):
        assert Marker.model_validate({'startN': 1, 'endN': 3}).end_n == 3

    def test_identity(self):
        activity = build_activity()
        spec = EncodeSpecifications.identity([activity], FileType.GPX)
        assert spec.tool_mode == ToolMode.EDIT
        assert spec.target_file_type == FileType.GPX
        assert spec.manufacturer_id == 1
        assert spec.device_name == "Forerunner"
        assert spec.sports == [None]
        assert spec.trim_markers == []

    def test_blank_sports_keep(self):
        spec = EncodeSpecifications(sports=["", "Cycling", None])
        assert spec.sports == [None, "Cycling", None]

    def test_labels(self):
        assert ToolMode.from_label("split") == ToolMode.SPLIT_PER_SESSION
        assert ToolMode.from_label("bogus") == ToolMode.UNKNOWN
        assert FileType.from_extension(".TCX") == FileType.TCX
        assert FileType.from_extension("kml") == FileType.UNSUPPORTED


class TestCatalog:
    """Catalog derived from the FIT profile"""

    def test_sports_sorted_by_name(self):
        names = [sport.name.lower() for sport in catalog.list_sports()]
        assert names == sorted(names)
        assert "running" in names

    def test_manufacturers_sorted_by_name(self):
        manufacturers = catalog.list_manufacturers()
        names = [m.name.lower() for m in manufacturers]
        assert names == sorted(names)
        garmin = catalog.get_manufacturer(1)
        assert garmin.name == "Garmin"
        product_names = [p.name.lower() for p in garmin.products]
        assert product_names == sorted(product_names)

    def test_sport_tolerance(self):
        sport = catalog.get_sport("Cycling")
        assert sport.tolerance_moving_speed == 1.41

    def test_creator_name(self):
        assert catalog.creator_name(1, 99999) == "Garmin (99999)"
        assert catalog.creator_name(None, 1) == "Unknown"
        assert catalog.creator_name(1, 1).startswith("Garmin ")

    def test_sport_name_normalization(self):
        assert catalog.sport_name("running") == "Running"
        assert catalog.sport_name(2) == "Cycling"
        assert catalog.sport_name(None) == "Generic"
        assert catalog.sport_id("Running") == 1
