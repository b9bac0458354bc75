#!/usr/bin/env python3
"""
Tests for lap/session summaries and pace estimation
"""
from datetime import timedelta

import pytest

from paceflow.analytics import (
    accumulate_session,
    average_paces,
    complete_session,
    distance_covered,
    estimate_pace,
    lap_from_records,
    pace_by_grade,
    recompute_session,
    summarize_sessions,
    total_ascent_descent,
    total_moving_time,
)
from paceflow.exceptions import RegressionError
from paceflow.models import Record, Session

from conftest import START, build_records, build_session


class TestBuildingBlocks:
    def test_moving_time_needs_speed(self):
        records = [Record(timestamp=START + timedelta(seconds=i)) for i in range(3)]
        assert total_moving_time(records, "Running") is None

    def test_moving_time_skips_stopped_intervals(self):
        records = build_records(5)
        records[1].speed = 0.0
        assert total_moving_time(records, "Running") == 3.0

    def test_ascent_descent(self):
        records = build_records(6)
        ascent, descent = total_ascent_descent(records)
        # altitudes 400, 401, 402, 403, 404, 400
        assert ascent == 4.0
        assert descent == 4.0
        assert total_ascent_descent([Record(timestamp=START)]) == (None, None)

    def test_distance_covered(self):
        assert distance_covered(build_records(10, distance_start=100.0)) == 27.0
        assert distance_covered([Record(timestamp=START)]) is None

    def test_average_paces_only_for_pace_sports(self):
        assert average_paces("Running", 300.0, 360.0, 1000.0) == (300.0, 360.0)
        assert average_paces("Cycling", 300.0, 360.0, 1000.0) == (None, None)
        assert average_paces("Running", 300.0, 360.0, 0.0) == (None, None)


class TestLaps:
    def test_lap_from_records(self):
        lap = lap_from_records(build_records(10), "Running")
        assert lap.start_time == START
        assert lap.total_elapsed_time == 9.0
        assert lap.total_distance == 27.0
        assert lap.avg_speed == 3.0
        assert lap.max_heart_rate == 149.0
        assert lap.avg_pace == pytest.approx(9.0 / 0.027)


class TestCompleteSession:
    """Decoded sessions keep device values and get the gaps filled"""

    def test_single_lap_created(self):
        session = complete_session(Session(sport="Running", records=build_records(10)))
        assert len(session.laps) == 1
        assert session.total_distance == 27.0
        assert session.min_heart_rate == 140.0
        assert session.start_time == START
        assert session.end_time == START + timedelta(seconds=9)

    def test_device_values_are_kept(self):
        session = Session(sport="Running", records=build_records(10), total_distance=30.0, total_calories=12)
        complete_session(session)
        assert session.total_distance == 30.0
        assert session.total_calories == 12
        assert session.avg_heart_rate is not None

    def test_no_records(self):
        session = Session(sport="Running", total_distance=5.0)
        assert complete_session(session).laps == []


class TestRecomputeSession:
    def test_rebuilds_from_records(self):
        session = build_session(count=10)
        session.records = session.records[:5]
        rebuilt = recompute_session(session)
        assert rebuilt.total_elapsed_time == 4.0
        assert rebuilt.total_distance == 12.0
        assert rebuilt.end_time == START + timedelta(seconds=4)
        assert rebuilt.total_cycles is None
        assert len(rebuilt.laps) == 1

    def test_laps_without_records_are_dropped(self):
        session = build_session(count=10)
        second = session.laps[0].model_copy(update={'start_time': START + timedelta(seconds=5)})
        session.laps = [session.laps[0], second]
        session.records = session.records[:4]
        assert len(recompute_session(session).laps) == 1


class TestAccumulate:
    def test_gap_counts_as_elapsed(self):
        first = build_session(count=10)
        second = build_session(count=10, start=START + timedelta(seconds=19), distance_start=27.0)
        merged = accumulate_session(first, second)

        assert merged.total_elapsed_time == 9.0 + 9.0 + 10.0
        assert merged.total_distance == 54.0
        assert len(merged.records) == 20
        assert len(merged.laps) == 2
        assert merged.start_time == START
        assert merged.end_time == START + timedelta(seconds=28)


class TestSummaries:
    def test_summarize_sessions(self):
        summary = summarize_sessions([build_session(count=10), build_session(count=5, start=START + timedelta(minutes=1))])
        assert summary.total_distance == 27.0 + 12.0
        assert summary.start_time == START
        assert summary.end_time == START + timedelta(minutes=1, seconds=4)
        assert summary.avg_pace is not None

    def test_mixed_sports_have_no_pace(self):
        summary = summarize_sessions([
            build_session(sport="Running"),
            build_session(sport="Walking", start=START + timedelta(minutes=1)),
        ])
        assert summary.avg_pace is None

    def test_empty(self):
        assert summarize_sessions([]).total_distance is None


class TestPaceEstimation:
    def _records(self, points):
        return [
            Record(timestamp=START + timedelta(seconds=i), grade=grade, pace=pace)
            for i, (grade, pace) in enumerate(points)
        ]

    def test_pace_by_grade(self):
        model = pace_by_grade(self._records([(0, 300), (5, 350), (10, 400), (None, 1)]))
        assert model.slope == pytest.approx(10)
        assert model.predict(0) == pytest.approx(300)
        assert estimate_pace(self._records([(0, 300), (10, 400)]), 20) == pytest.approx(500)

    def test_degenerate(self):
        with pytest.raises(RegressionError):
            pace_by_grade(self._records([(0, 300)]))
        assert estimate_pace(self._records([(2, 300), (2, 320)]), 5) is None
