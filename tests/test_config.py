#!/usr/bin/env python3
"""
Tests for settings, logging setup and the exception hierarchy
"""
import json
import logging

import pytest
from pydantic import ValidationError as PydanticValidationError

from paceflow import exceptions
from paceflow.config import Settings, get_settings
from paceflow.dispatch import ProcessTransport, ThreadTransport, create_transport
from paceflow.exceptions import (
    ConfigurationError,
    DecodeError,
    DispatcherError,
    EncodeError,
    EncodeSpecificationError,
    PaceflowError,
    ProtocolError,
    ServiceUnavailableError,
    UnsupportedFileTypeError,
    encode_spec_error,
    protocol_error,
    service_unavailable,
)
from paceflow.utils import JSONFormatter, KeyValueFormatter, get_logger, setup_logging


class TestSettings:
    """PACEFLOW_* environment overrides"""

    def test_defaults(self, monkeypatch):
        for name in ("PACEFLOW_LOG_LEVEL", "PACEFLOW_WORKER_MODE", "PACEFLOW_FILE_PREFIX"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings()
        assert settings.worker_mode == "process"
        assert settings.start_method == "spawn"
        assert settings.shutdown_timeout == 5.0
        assert settings.preprocessor_options() == {'smoothing_distance': 30.0, 'grade_distance': 100.0}

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("PACEFLOW_LOG_LEVEL", "debug")
        monkeypatch.setenv("PACEFLOW_WORKER_MODE", "thread")
        monkeypatch.setenv("PACEFLOW_GRADE_DISTANCE", "50")
        monkeypatch.setenv("PACEFLOW_FILE_PREFIX", "export")

        settings = get_settings()
        assert settings.log_level == "DEBUG"
        assert settings.worker_mode == "thread"
        assert settings.grade_distance == 50.0
        assert settings.file_prefix == "export"
        assert get_settings() is settings

    @pytest.mark.parametrize("name, value", [
        ("PACEFLOW_WORKER_MODE", "cluster"),
        ("PACEFLOW_LOG_FORMAT", "xml"),
        ("PACEFLOW_START_METHOD", "clone"),
        ("PACEFLOW_SHUTDOWN_TIMEOUT", "0"),
    ])
    def test_invalid_values(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(PydanticValidationError):
            Settings()

    def test_transport_selection(self):
        assert isinstance(create_transport(Settings(worker_mode="thread")), ThreadTransport)
        assert isinstance(create_transport(Settings(worker_mode="process")), ProcessTransport)

    def test_unknown_start_method(self):
        with pytest.raises(ConfigurationError):
            ProcessTransport("teleport")


class TestLogging:
    def test_setup_is_idempotent_unless_forced(self):
        setup_logging("ERROR", force=True)
        assert logging.getLogger("paceflow").level == logging.ERROR
        setup_logging("DEBUG")
        assert logging.getLogger("paceflow").level == logging.ERROR
        setup_logging("INFO", force=True)
        assert logging.getLogger("paceflow").level == logging.INFO

    def test_structured_events_become_record_fields(self):
        setup_logging("INFO", "json", force=True)
        records = []
        handler = logging.Handler()
        handler.emit = records.append
        target = logging.getLogger("paceflow.tests.events")
        target.addHandler(handler)
        try:
            get_logger("paceflow.tests.events").info("files written", files=2, mode="combine")
        finally:
            target.removeHandler(handler)

        assert len(records) == 1
        record = records[0]
        # The stdlib formatter owns level and timestamp; the message is the bare event
        assert record.getMessage() == "files written"
        assert record.levelname == "INFO"
        assert record.files == 2

        entry = json.loads(JSONFormatter().format(record))
        assert entry['message'] == "files written"
        assert entry['files'] == 2
        assert entry['mode'] == "combine"

    def test_key_value_formatter(self):
        record = logging.makeLogRecord({
            'name': 'paceflow.x', 'levelname': 'INFO', 'msg': 'request completed',
            'request_id': 'abc', 'elapsed_ms': 1.5,
        })
        line = KeyValueFormatter('%(levelname)s | %(message)s').format(record)
        assert line == "INFO | request completed request_id=abc elapsed_ms=1.5"
        assert line.count("INFO") == 1


class TestExceptions:
    def test_hierarchy(self):
        assert issubclass(UnsupportedFileTypeError, DecodeError)
        assert issubclass(EncodeSpecificationError, EncodeError)
        assert issubclass(ServiceUnavailableError, DispatcherError)
        assert issubclass(ProtocolError, DispatcherError)
        assert issubclass(DispatcherError, PaceflowError)

    def test_details(self):
        error = encode_spec_error("bad markers", markers=1, sessions=2)
        assert error.message == "bad markers"
        assert error.details == {'markers': 1, 'sessions': 2}
        assert "details" in str(error)
        assert str(PaceflowError("plain")) == "plain"

    def test_helper_constructors(self):
        assert isinstance(protocol_error("bad reply", request_id="1"), ProtocolError)
        assert service_unavailable("gone").details == {}
        assert not hasattr(exceptions, 'validation_error')
        assert not hasattr(exceptions, 'decode_error')
