"""Unit tests for the structlog setup."""

from __future__ import annotations

import json

import pytest
import structlog

from src.utils.logging import SERVICE_NAME, add_service_name, configure_logging, get_logger


class TestAddServiceName:
    def test_stamps_service(self) -> None:
        event = add_service_name(None, "info", {"event": "source_switched"})
        assert event["service"] == SERVICE_NAME

    def test_keeps_explicit_service(self) -> None:
        event = add_service_name(None, "info", {"event": "x", "service": "other"})
        assert event["service"] == "other"


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def _restore_structlog(self):  # noqa: ANN202
        yield
        structlog.reset_defaults()
        configure_logging()

    def test_json_events_carry_service_and_logger_name(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        configure_logging(log_level="INFO", json_output=True)

        get_logger("relay.test").info("cache_swept", removed=2)

        line = capsys.readouterr().out.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "cache_swept"
        assert record["service"] == SERVICE_NAME
        assert record["logger_name"] == "relay.test"
        assert record["removed"] == 2

    def test_events_below_level_are_dropped(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(log_level="WARNING", json_output=True)

        get_logger("relay.test").info("probe_complete")

        assert "probe_complete" not in capsys.readouterr().out
