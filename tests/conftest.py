"""Pytest fixtures and configuration for ThreadHub tests.

Provides common fixtures for configuration, messages, and controllable clocks.
"""

from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from threadhub.config import reset_config
from threadhub.config_schema import AppConfig
from threadhub.engine.matcher import ThreadMatcher
from threadhub.engine.models import Message

T0 = datetime(2024, 3, 4, 9, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_config_singleton() -> Generator[None, None, None]:
    """Reset the config singleton before each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def temp_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a minimal valid config.yaml content."""
    return """
schema_version: 1

threading:
  time_window_hours: 72
  consolidate_after_process: true

cache:
  max_size: 200
  ttl_hours: 12

batching:
  batch_size: 20
  concurrency_limit: 3
  performance_target_ms: 50

logging:
  level: "WARNING"
  json_output: false
"""


@pytest.fixture
def sample_config_dict() -> dict[str, Any]:
    """Return a minimal valid config as a dictionary."""
    return {
        "schema_version": 1,
        "threading": {"time_window_hours": 72},
        "cache": {"max_size": 200, "ttl_hours": 12},
        "batching": {"batch_size": 20, "concurrency_limit": 3},
    }


@pytest.fixture
def sample_config(sample_config_dict: dict[str, Any]) -> AppConfig:
    """Return a minimal valid AppConfig instance."""
    return AppConfig(**sample_config_dict)


@pytest.fixture
def config_file(temp_config_dir: Path, sample_config_yaml: str) -> Path:
    """Write the sample config to disk and return its path."""
    path = temp_config_dir / "config.yaml"
    path.write_text(sample_config_yaml)
    return path


@pytest.fixture
def make_message() -> Callable[..., Message]:
    """Factory for messages with sensible defaults.

    ``hours`` offsets the timestamp from a fixed reference time.
    """

    def _make(
        message_id: str = "gmail_work_1",
        subject: str = "Kickoff",
        sender: str = "john@example.com",
        to: list[str] | None = None,
        cc: list[str] | None = None,
        hours: float = 0,
        body: str = "",
    ) -> Message:
        return Message(
            id=message_id,
            subject=subject,
            sender=sender,
            to=tuple(to if to is not None else ["jane@example.com"]),
            cc=tuple(cc or ()),
            timestamp=T0 + timedelta(hours=hours),
            body=body,
        )

    return _make


@pytest.fixture
def fake_clock() -> FakeClock:
    """Return a clock that only moves when told to."""
    return FakeClock()


@pytest.fixture
def never_matcher() -> ThreadMatcher:
    """Matcher that never places a message into an existing thread.

    Lets tests build several similar threads side by side.
    """
    matcher = MagicMock(spec=ThreadMatcher)
    matcher.find_best_match = MagicMock(return_value=None)
    return matcher
