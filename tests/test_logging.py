"""Tests for structlog setup and the run correlation id."""

import json
import logging
from collections.abc import Generator

import pytest
import structlog

from threadhub.core.logging import configure_logging, current_run_id, end_run, get_logger, start_run


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    yield
    end_run()
    structlog.reset_defaults()


class TestRunId:
    """Tests for start_run / current_run_id / end_run."""

    def test_each_run_gets_a_new_id(self) -> None:
        first = start_run()
        second = start_run()

        assert first != second
        assert current_run_id() == second

    def test_end_run_clears(self) -> None:
        start_run()
        end_run()

        assert current_run_id() is None


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_json_events_carry_run_id(self, caplog: pytest.LogCaptureFixture) -> None:
        configure_logging("INFO", json_output=True)
        caplog.set_level(logging.INFO)
        run_id = start_run()

        get_logger("threadhub.tests").info("thread_created", thread_id="thread_ab12")

        event = json.loads(caplog.records[-1].getMessage())
        assert event["event"] == "thread_created"
        assert event["thread_id"] == "thread_ab12"
        assert event["run_id"] == run_id
        assert event["level"] == "info"

    def test_below_level_is_dropped(self, caplog: pytest.LogCaptureFixture) -> None:
        configure_logging("WARNING", json_output=True)
        caplog.set_level(logging.WARNING)

        get_logger("threadhub.tests").info("noise")

        assert caplog.records == []
