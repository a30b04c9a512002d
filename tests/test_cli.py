"""Tests for the logpoller command line."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from logpoller import __main__ as cli
from logpoller.lib.config_loader import PollerConfig


@pytest.fixture(autouse=True)
def _quiet_cli(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Leave root logging and signal handlers alone while testing main()."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "setup_logging", MagicMock())
    monkeypatch.setattr(cli, "_install_signal_handlers", MagicMock())


@pytest.fixture
def config_file(tmp_path: Path, state_path: Path) -> Path:
    path = tmp_path / "poller.yaml"
    path.write_text(
        "cloudwatch_logs:\n"
        "  log_group: [groupA, groupB]\n"
        f"  sincedb_path: {state_path}\n"
    )
    return path


@pytest.fixture
def fake_poller(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    poller = MagicMock()
    monkeypatch.setattr(cli.LogPoller, "from_config", MagicMock(return_value=poller))
    return poller


class TestRun:
    """Tests for the run subcommand."""

    def test_run_once(self, config_file: Path, fake_poller: MagicMock) -> None:
        assert cli.main(["run", str(config_file), "--once"]) == cli.EXIT_OK
        fake_poller.run.assert_called_once_with(max_cycles=1)

    def test_run_forever(self, config_file: Path, fake_poller: MagicMock) -> None:
        assert cli.main(["run", str(config_file)]) == cli.EXIT_OK
        fake_poller.run.assert_called_once_with(max_cycles=None)

    def test_keyboard_interrupt_stops_cleanly(self, config_file: Path, fake_poller: MagicMock) -> None:
        fake_poller.run.side_effect = KeyboardInterrupt

        assert cli.main(["run", str(config_file)]) == cli.EXIT_OK
        fake_poller.stop.assert_called_once()

    def test_logging_flags_are_passed_through(self, config_file: Path, fake_poller: MagicMock, tmp_path: Path) -> None:
        log_file = str(tmp_path / "poller.log")
        cli.main(["-v", "--json-log", "--log-file", log_file, "run", str(config_file), "--once"])
        cli.setup_logging.assert_called_once_with(verbose=True, json_format=True, log_file=log_file)


class TestConfigErrors:
    """Configuration problems exit with a distinct status."""

    def test_missing_config_file(self, tmp_path: Path) -> None:
        assert cli.main(["run", str(tmp_path / "missing.yaml")]) == cli.EXIT_CONFIG_ERROR

    def test_invalid_start_position(self, tmp_path: Path, state_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text(f"log_group: [g]\nstart_position: later\nsincedb_path: {state_path}\n")

        assert cli.main(["run", str(path), "--once"]) == cli.EXIT_CONFIG_ERROR

    def test_subcommand_is_required(self) -> None:
        with pytest.raises(SystemExit):
            cli.main([])


class TestShowState:
    """Tests for the show-state subcommand."""

    def test_prints_saved_windows(self, config_file: Path, state_path: Path, capsys) -> None:
        state_path.write_text(
            json.dumps({"groupA": {"1": ["s:a", "s:b"], "2": ["s:c"]}, "groupB": {}})
        )

        assert cli.main(["show-state", str(config_file)]) == cli.EXIT_OK

        output = json.loads(capsys.readouterr().out)
        assert output["format"] == "json"
        assert output["error"] is None
        assert output["groups"]["groupA"] == {
            "min_time": 1,
            "max_time": 2,
            "timestamps": 2,
            "events": 3,
        }
        assert output["groups"]["groupB"]["min_time"] is None

    def test_describe_state_without_file(self, state_path: Path) -> None:
        config = PollerConfig(log_group=["g"], sincedb_path=state_path)

        summary = cli.describe_state(config)

        assert summary == {
            "path": str(state_path),
            "format": "empty",
            "error": None,
            "groups": {},
        }
