"""
Pytest configuration and fixtures for PaceFlow tests.

Activities are built in memory and encoded into FIT, GPX and TCX bytes with
the package's own codecs, so no sample files are needed.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from paceflow.analytics import complete_session
from paceflow.config import Settings, get_settings
from paceflow.models import ActivityFile, Creator, Record, Session
from paceflow.processors import FitCodec, GpxCodec, TcxCodec
from paceflow.services import ActivityService

START = datetime(2024, 5, 1, 6, 0, 0, tzinfo=timezone.utc)

GARMIN = 1
GARMIN_PRODUCT = 1


def build_records(
    count: int,
    start: datetime = START,
    speed: float = 3.0,
    distance_start: float = 0.0,
    lat: float = 46.5,
    lon: float = 6.6,
) -> List[Record]:
    """One record per second, moving north at a constant speed."""
    records = []
    for i in range(count):
        records.append(Record(
            timestamp=start + timedelta(seconds=i),
            position_lat=lat + i * 0.00003,
            position_long=lon,
            distance=distance_start + i * speed,
            speed=speed,
            altitude=400.0 + (i % 5),
            heart_rate=140.0 + (i % 10),
            cadence=85.0,
        ))
    return records


def build_session(
    count: int = 10,
    sport: str = "Running",
    start: datetime = START,
    speed: float = 3.0,
    distance_start: float = 0.0,
) -> Session:
    session = Session(
        sport=sport,
        records=build_records(count, start=start, speed=speed, distance_start=distance_start),
    )
    return complete_session(session)


def build_activity(
    sessions: Optional[List[Session]] = None,
    name: str = "Forerunner",
    time_created: datetime = START,
) -> ActivityFile:
    return ActivityFile(
        creator=Creator(name=name, manufacturer=GARMIN, product=GARMIN_PRODUCT, time_created=time_created),
        sessions=sessions or [build_session(start=time_created)],
    )


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached process-wide; env overrides need a fresh instance."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    """Settings for in-process tests."""
    return Settings(worker_mode="thread", shutdown_timeout=2.0)


@pytest.fixture
def service(settings):
    return ActivityService(settings)


@pytest.fixture
def running_activity():
    """A single 10-record running session."""
    return build_activity()


@pytest.fixture
def multisport_activity():
    """A running session followed by a cycling session continuing the distance."""
    run = build_session(count=10, sport="Running")
    ride = build_session(
        count=10,
        sport="Cycling",
        start=START + timedelta(seconds=20),
        speed=8.0,
        distance_start=30.0,
    )
    return build_activity(sessions=[run, ride])


@pytest.fixture
def later_activity():
    """A running activity recorded one hour after ``running_activity``."""
    later = START + timedelta(hours=1)
    return build_activity(name="Edge", time_created=later)


@pytest.fixture
def fit_bytes(running_activity):
    return FitCodec().encode_activity(running_activity)


@pytest.fixture
def gpx_bytes(running_activity):
    return GpxCodec().encode_activity(running_activity)


@pytest.fixture
def tcx_bytes(running_activity):
    return TcxCodec().encode_activity(running_activity)
