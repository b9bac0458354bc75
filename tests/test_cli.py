#!/usr/bin/env python3
"""
Tests for the paceflow command-line interface
"""
import json

import pytest
from click.testing import CliRunner

from paceflow.cli import cli
from paceflow.utils import setup_logging


@pytest.fixture
def runner(monkeypatch):
    # Keep INFO events off the captured output so --json stays parseable
    monkeypatch.setenv("PACEFLOW_LOG_LEVEL", "WARNING")
    yield CliRunner()
    # The CLI bound the log handlers to the runner's stderr
    setup_logging(force=True)


@pytest.fixture
def gpx_file(tmp_path, gpx_bytes):
    path = tmp_path / "run.gpx"
    path.write_bytes(gpx_bytes)
    return path


@pytest.fixture
def fit_file(tmp_path, fit_bytes):
    path = tmp_path / "run.fit"
    path.write_bytes(fit_bytes)
    return path


class TestDecodeCommand:
    def test_summary(self, runner, gpx_file):
        result = runner.invoke(cli, ["decode", str(gpx_file)])
        assert result.exit_code == 0, result.output
        assert "Activity 1: Forerunner" in result.output
        assert "Running" in result.output
        assert "records 10" in result.output
        assert "Decoded 1 file(s)" in result.output

    def test_json(self, runner, fit_file):
        result = runner.invoke(cli, ["decode", "--json", str(fit_file)])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["err"] is None
        assert payload["activities"][0]["sessions"][0]["sport"] == "Running"
        assert "totalElapsed" in payload

    def test_unsupported_file(self, runner, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("not an activity")
        result = runner.invoke(cli, ["decode", str(path)])
        assert result.exit_code == 1
        assert "[0]: file format is not supported" in result.output


class TestEncodeCommand:
    def test_encode_to_tcx(self, runner, gpx_file, tmp_path):
        out = tmp_path / "out"
        result = runner.invoke(cli, [
            "encode", str(gpx_file), "--to", "tcx", "--trim", "2:8", "--remove-field", "heartRate",
            "--output", str(out),
        ])
        assert result.exit_code == 0, result.output
        written = list(out.glob("*.tcx"))
        assert len(written) == 1
        assert written[0].name.startswith("paceflow-")
        assert b"HeartRateBpm" not in written[0].read_bytes()
        assert "Encoded 1 file(s)" in result.output

    def test_fit_with_manufacturer(self, runner, gpx_file, tmp_path):
        result = runner.invoke(cli, [
            "encode", str(gpx_file), "--to", "fit", "--manufacturer", "garmin", "-o", str(tmp_path),
        ])
        assert result.exit_code == 0, result.output
        assert len(list(tmp_path.glob("*.fit"))) == 1

    def test_fit_without_manufacturer_fails(self, runner, gpx_file, tmp_path):
        result = runner.invoke(cli, ["encode", str(gpx_file), "--to", "fit", "-o", str(tmp_path)])
        assert result.exit_code == 1
        assert "Encode failed" in result.output

    def test_unknown_manufacturer(self, runner, gpx_file, tmp_path):
        result = runner.invoke(cli, ["encode", str(gpx_file), "--manufacturer", "acme-watches"])
        assert result.exit_code == 1
        assert "Unknown manufacturer" in result.output

    def test_bad_marker(self, runner, gpx_file):
        result = runner.invoke(cli, ["encode", str(gpx_file), "--trim", "5"])
        assert result.exit_code == 2
        assert "START:END" in result.output


class TestCatalogCommands:
    def test_sports(self, runner):
        result = runner.invoke(cli, ["sports"])
        assert result.exit_code == 0
        assert "Running" in result.output

    def test_manufacturers(self, runner):
        result = runner.invoke(cli, ["manufacturers"])
        assert result.exit_code == 0
        assert "Garmin" in result.output
