"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
from typing import Callable

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from logpoller.lib.tracker import LogEvent  # noqa: E402


@pytest.fixture
def make_event() -> Callable[..., LogEvent]:
    """Factory for log events with sensible defaults."""

    def _make(
        timestamp: int = 1,
        stream: str = "streamX",
        event_id: str = "event1",
        message: str = "this be the verse",
    ) -> LogEvent:
        return LogEvent(
            timestamp=timestamp,
            log_stream_name=stream,
            event_id=event_id,
            message=message,
            ingestion_time=timestamp + 5,
        )

    return _make


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    """Location for a state file inside the test's temp directory."""
    return tmp_path / "sincedb.json"


@pytest.fixture
def sincedb_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point SINCEDB_DIR at a temp directory so configs never touch $HOME."""
    directory = tmp_path / "sincedb_home"
    directory.mkdir()
    monkeypatch.setenv("SINCEDB_DIR", str(directory))
    return directory
