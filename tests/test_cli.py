"""Tests for CLI module - formatting helpers and commands."""

import json
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from pyplc_poller import Metric, NormalizedValue, TransportError, ValueKind, __version__
from pyplc_poller.cli import app, format_metric, format_value

runner = CliRunner()

CONFIG_TOML = """
schema = "{schema}"
domain_name = "10.0.0.5:502"
parameters = [{{ unit-identifier = "1" }}]
timeout = "1s"

[[metric]]
name = "m"
tags = {{ unit = "1" }}
fields = [
  {{ name = "temp", address = "holding-register:1:REAL" }},
  {{ name = "pressure", address = "holding-register:99:INT" }},
]
"""


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "poller.toml"
    path.write_text(CONFIG_TOML.format(schema="modbus-tcp"), encoding="utf-8")
    return path


# ============================================================================
# Formatting Tests
# ============================================================================


class TestFormatValue:
    """Test field value formatting."""

    def test_bool(self) -> None:
        assert format_value(True) == "true"
        assert format_value(False) == "false"

    def test_numbers(self) -> None:
        assert format_value(21.5) == "21.5"
        assert format_value(42) == "42"

    def test_string_is_quoted(self) -> None:
        assert format_value("pump 1") == '"pump 1"'


def test_format_metric_sorts_tags() -> None:
    metric = Metric(
        measurement="m",
        tags={"unit": "1", "line": "a"},
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        fields={"temp": NormalizedValue(ValueKind.FLOAT32, 21.5)},
    )
    assert format_metric(metric) == "2024-01-01T00:00:00+00:00 m,line=a,unit=1 temp=21.5"


# ============================================================================
# Command Tests
# ============================================================================


class TestCheckCommand:
    def test_check_text(self, config_file: Path) -> None:
        result = runner.invoke(app, ["check", str(config_file)])
        assert result.exit_code == 0
        assert "modbus-tcp://10.0.0.5:502?unit-identifier=1" in result.output
        assert "m.temp <- holding-register:1:REAL" in result.output

    def test_check_json(self, config_file: Path) -> None:
        result = runner.invoke(app, ["check", str(config_file), "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["url"] == "modbus-tcp://10.0.0.5:502?unit-identifier=1"
        assert data["timeout"] == 1.0
        assert [f["name"] for f in data["fields"]] == ["temp", "pressure"]
        assert data["fields"][0]["tags"] == {"unit": "1"}

    def test_check_duplicate_field(self, tmp_path: Path) -> None:
        path = tmp_path / "dup.toml"
        path.write_text(
            CONFIG_TOML.format(schema="modbus-tcp").replace('name = "pressure"', 'name = "temp"'),
            encoding="utf-8",
        )
        result = runner.invoke(app, ["check", str(path)])
        assert result.exit_code == 2
        assert "duplicate_field" in result.output

    def test_check_unsupported_schema(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.toml"
        path.write_text(CONFIG_TOML.format(schema="profinet"), encoding="utf-8")
        result = runner.invoke(app, ["check", str(path)])
        assert result.exit_code == 2
        assert "unsupported_schema" in result.output

    def test_check_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["check", str(tmp_path / "missing.toml")])
        assert result.exit_code == 2


def test_url_command(config_file: Path) -> None:
    result = runner.invoke(app, ["url", str(config_file)])
    assert result.exit_code == 0
    assert result.output.strip() == "modbus-tcp://10.0.0.5:502?unit-identifier=1"


class TestPollCommand:
    def test_poll_once_text(self, config_file: Path, fake_manager) -> None:
        with patch("pyplc_poller.cli.get_default_driver_manager", return_value=fake_manager):
            result = runner.invoke(app, ["poll", str(config_file), "--once"])
        assert result.exit_code == 0
        lines = [line for line in result.output.splitlines() if line]
        assert len(lines) == 1
        assert lines[0].endswith(" m,unit=1 temp=21.5")

    def test_poll_count_json(self, config_file: Path, fake_manager, fake_driver) -> None:
        with patch("pyplc_poller.cli.get_default_driver_manager", return_value=fake_manager):
            result = runner.invoke(
                app, ["poll", str(config_file), "--count", "2", "--interval", "0.01", "--format", "json"]
            )
        assert result.exit_code == 0
        records = [json.loads(line) for line in result.output.splitlines() if line]
        assert len(records) == 2
        assert records[0]["measurement"] == "m"
        assert records[0]["tags"] == {"unit": "1"}
        assert records[0]["fields"] == {"temp": 21.5}
        assert fake_driver.executions == 2

    def test_poll_connection_error_exit_code(self, config_file: Path, fake_manager, fake_driver) -> None:
        fake_driver.connect_error = TransportError("no route to host")
        with patch("pyplc_poller.cli.get_default_driver_manager", return_value=fake_manager):
            result = runner.invoke(app, ["poll", str(config_file), "--once"])
        assert result.exit_code == 3
        assert "connect_failed" in result.output

    def test_poll_schema_without_driver_exit_code(self, tmp_path: Path, fake_manager) -> None:
        path = tmp_path / "opcua.toml"
        path.write_text(CONFIG_TOML.format(schema="opcua"), encoding="utf-8")
        with patch("pyplc_poller.cli.get_default_driver_manager", return_value=fake_manager):
            result = runner.invoke(app, ["poll", str(path), "--once"])
        assert result.exit_code == 2

    @pytest.mark.parametrize(
        "args",
        [
            ["--format", "csv"],
            ["--interval", "0"],
            ["--count", "0"],
        ],
    )
    def test_poll_invalid_options(self, config_file: Path, args: list[str]) -> None:
        result = runner.invoke(app, ["poll", str(config_file), *args])
        assert result.exit_code == 2


def test_version() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output
