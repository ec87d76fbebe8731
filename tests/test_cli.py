"""Tests for the phasetimer CLI layer.

Timer commands mock ``TimerApp`` so they only check wiring and output;
preset and sync commands run against a real config directory.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import click.testing
import pytest
from conftest import make_preset

from phasetimer.cli.main import cli
from phasetimer.config import ENV_CONFIG_DIR, ENV_SYNC_TOKEN, ENV_SYNC_URL, ENV_USER_ID
from phasetimer.core.presets import PresetError, PresetStore
from phasetimer.core.timer import TimerState, TimerStatus, build_view


@pytest.fixture()
def runner() -> click.testing.CliRunner:
    """Return a Click CliRunner for invoking CLI commands."""
    return click.testing.CliRunner()


@pytest.fixture(autouse=True)
def isolated(monkeypatch: pytest.MonkeyPatch):
    """Keep the user's environment and log file out of every test."""
    for name in (ENV_CONFIG_DIR, ENV_USER_ID, ENV_SYNC_URL, ENV_SYNC_TOKEN):
        monkeypatch.delenv(name, raising=False)
    with patch("phasetimer.cli.main.setup_logging") as mock_setup:
        yield mock_setup


def _invoke(runner: click.testing.CliRunner, config_dir: Path, *args: str):
    return runner.invoke(cli, ["--config-dir", str(config_dir), *args])


def _mock_app(mock_app_cls: MagicMock, state: TimerState, preset=None) -> MagicMock:
    """Make ``with TimerApp(...) as app`` yield a mock showing *state*."""
    app = mock_app_cls.return_value.__enter__.return_value
    app.view.return_value = build_view(state, preset)
    return app


PAUSED_AT_BREAK = TimerState(
    remaining_seconds=42, running=False, status=TimerStatus.PAUSED, current_phase_index=1
)


# ---------------------------------------------------------------------------
# phasetimer status / start / pause / reset
# ---------------------------------------------------------------------------


class TestTimerCommands:
    """Tests for the commands that drive the countdown."""

    @patch("phasetimer.cli.main.TimerApp")
    def test_status(
        self, mock_app_cls: MagicMock, runner: click.testing.CliRunner, tmp_path: Path
    ) -> None:
        _mock_app(mock_app_cls, PAUSED_AT_BREAK, make_preset())
        result = _invoke(runner, tmp_path, "status")
        assert result.exit_code == 0
        assert "Break (2/2) 00:00:42 paused" in result.output
        mock_app_cls.assert_called_once_with(config_dir=tmp_path)

    @patch("phasetimer.cli.main.TimerApp")
    def test_status_without_preset(
        self, mock_app_cls: MagicMock, runner: click.testing.CliRunner, tmp_path: Path
    ) -> None:
        _mock_app(mock_app_cls, TimerState())
        result = _invoke(runner, tmp_path, "status")
        assert result.exit_code == 1
        assert "No active preset" in result.output

    @pytest.mark.parametrize(
        "command, method",
        [
            ("start", "start"),
            ("pause", "pause"),
            ("reset", "reset"),
            ("next", "skip_to_next_phase"),
            ("prev", "skip_to_previous_phase"),
        ],
    )
    @patch("phasetimer.cli.main.TimerApp")
    def test_control_calls_engine(
        self,
        mock_app_cls: MagicMock,
        command: str,
        method: str,
        runner: click.testing.CliRunner,
        tmp_path: Path,
    ) -> None:
        app = _mock_app(mock_app_cls, PAUSED_AT_BREAK, make_preset())
        result = _invoke(runner, tmp_path, command)
        assert result.exit_code == 0
        getattr(app.engine, method).assert_called_once_with()

    @patch("phasetimer.cli.main.TimerApp")
    def test_goto_is_one_based(
        self, mock_app_cls: MagicMock, runner: click.testing.CliRunner, tmp_path: Path
    ) -> None:
        app = _mock_app(mock_app_cls, PAUSED_AT_BREAK, make_preset())
        result = _invoke(runner, tmp_path, "goto", "2")
        assert result.exit_code == 0
        app.engine.go_to_phase.assert_called_once_with(1)

    def test_goto_rejects_zero(self, runner: click.testing.CliRunner, tmp_path: Path) -> None:
        result = _invoke(runner, tmp_path, "goto", "0")
        assert result.exit_code != 0

    @patch("phasetimer.cli.main.TimerApp")
    def test_forget(
        self, mock_app_cls: MagicMock, runner: click.testing.CliRunner, tmp_path: Path
    ) -> None:
        result = _invoke(runner, tmp_path, "forget")
        assert result.exit_code == 0
        assert "Local timer state cleared" in result.output
        mock_app_cls.return_value.forget.assert_called_once_with()

    def test_broken_settings_file(self, runner: click.testing.CliRunner, tmp_path: Path) -> None:
        (tmp_path / "settings.json").write_text("{oops")
        result = _invoke(runner, tmp_path, "status")
        assert result.exit_code == 1
        assert "not valid JSON" in result.output


# ---------------------------------------------------------------------------
# phasetimer presets
# ---------------------------------------------------------------------------


class TestPresetsCommands:
    """Tests for ``phasetimer presets ...`` against a real config directory."""

    def test_add_with_default_phases(
        self, runner: click.testing.CliRunner, tmp_path: Path
    ) -> None:
        result = _invoke(runner, tmp_path, "presets", "add", "Focus")
        assert result.exit_code == 0
        assert "Created preset" in result.output
        (preset,) = PresetStore(tmp_path).list_presets()
        assert preset.name == "Focus"
        assert [(p.name, p.duration_minutes) for p in preset.phases] == [
            ("Work", 25),
            ("Break", 5),
        ]

    def test_add_with_phases_and_loop(
        self, runner: click.testing.CliRunner, tmp_path: Path
    ) -> None:
        result = _invoke(
            runner, tmp_path,
            "presets", "add", "Deep", "--phase", "Write:50", "--phase", "Walk:10", "--loop",
        )
        assert result.exit_code == 0
        (preset,) = PresetStore(tmp_path).list_presets()
        assert [(p.name, p.duration_minutes, p.order) for p in preset.phases] == [
            ("Write", 50, 0),
            ("Walk", 10, 1),
        ]
        assert preset.loop_phases is True

    def test_add_out_of_range_duration(
        self, runner: click.testing.CliRunner, tmp_path: Path
    ) -> None:
        result = _invoke(runner, tmp_path, "presets", "add", "Long", "--phase", "Work:181")
        assert result.exit_code == 1
        assert "between 1 and 180" in result.output
        assert PresetStore(tmp_path).list_presets() == []

    def test_add_malformed_phase(self, runner: click.testing.CliRunner, tmp_path: Path) -> None:
        result = _invoke(runner, tmp_path, "presets", "add", "X", "--phase", "Work")
        assert result.exit_code != 0
        assert "NAME:MINUTES" in result.output

    def test_list_marks_active(self, runner: click.testing.CliRunner, tmp_path: Path) -> None:
        store = PresetStore(tmp_path)
        store.add(make_preset("a", minutes=(10, 5)))
        store.add(make_preset("b", minutes=(3,), loop=True))
        (tmp_path / "settings.json").write_text(json.dumps({"activePresetId": "b"}))
        result = _invoke(runner, tmp_path, "presets", "list")
        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert lines[0] == "  a  Preset a: Work 10m, Break 5m"
        assert lines[1] == "* b  Preset b: Work 3m (loop)"

    def test_use_activates(self, runner: click.testing.CliRunner, tmp_path: Path) -> None:
        PresetStore(tmp_path).add(make_preset("a", minutes=(25, 5)))
        result = _invoke(runner, tmp_path, "presets", "use", "a")
        assert result.exit_code == 0
        assert "Work (1/2) 00:25:00 idle" in result.output
        settings = json.loads((tmp_path / "settings.json").read_text())
        assert settings["activePresetId"] == "a"

    def test_use_unknown(self, runner: click.testing.CliRunner, tmp_path: Path) -> None:
        result = _invoke(runner, tmp_path, "presets", "use", "missing")
        assert result.exit_code == 1
        assert "no preset with id missing" in result.output

    def test_remove_active_clears_it(
        self, runner: click.testing.CliRunner, tmp_path: Path
    ) -> None:
        PresetStore(tmp_path).add(make_preset("a"))
        (tmp_path / "settings.json").write_text(json.dumps({"activePresetId": "a"}))
        result = _invoke(runner, tmp_path, "presets", "remove", "a")
        assert result.exit_code == 0
        assert PresetStore(tmp_path).list_presets() == []
        settings = json.loads((tmp_path / "settings.json").read_text())
        assert settings["activePresetId"] is None

    def test_list_corrupt_presets_file(
        self, runner: click.testing.CliRunner, tmp_path: Path
    ) -> None:
        (tmp_path / "presets.json").write_text("{broken")
        result = _invoke(runner, tmp_path, "presets", "list")
        assert result.exit_code == 1
        assert "corrupt" in result.output
        assert not isinstance(result.exception, PresetError)

    def test_status_with_corrupt_presets_file(
        self, runner: click.testing.CliRunner, tmp_path: Path
    ) -> None:
        (tmp_path / "presets.json").write_text("{broken")
        (tmp_path / "settings.json").write_text(json.dumps({"activePresetId": "a"}))
        result = _invoke(runner, tmp_path, "status")
        assert result.exit_code == 1
        assert "corrupt" in result.output
        assert not isinstance(result.exception, PresetError)

    def test_remove_unknown(self, runner: click.testing.CliRunner, tmp_path: Path) -> None:
        result = _invoke(runner, tmp_path, "presets", "remove", "missing")
        assert result.exit_code == 1
        assert "no preset with id missing" in result.output


# ---------------------------------------------------------------------------
# phasetimer sync
# ---------------------------------------------------------------------------


class TestSyncCommand:
    """Tests for ``phasetimer sync``."""

    def test_enable(self, runner: click.testing.CliRunner, tmp_path: Path) -> None:
        result = _invoke(
            runner, tmp_path,
            "sync", "--enable", "--user", "u1", "--url", "https://sync.example.com",
        )
        assert result.exit_code == 0
        assert "Sync on (user=u1, url=https://sync.example.com)" in result.output
        settings = json.loads((tmp_path / "settings.json").read_text())
        assert settings["syncTimerState"] is True
        assert settings["userId"] == "u1"

    def test_enabled_without_user_is_off(
        self, runner: click.testing.CliRunner, tmp_path: Path
    ) -> None:
        result = _invoke(runner, tmp_path, "sync", "--enable")
        assert result.exit_code == 0
        assert "Sync off (user=-, url=-)" in result.output

    def test_disable(self, runner: click.testing.CliRunner, tmp_path: Path) -> None:
        _invoke(runner, tmp_path, "sync", "--enable", "--user", "u1", "--url", "https://s")
        result = _invoke(runner, tmp_path, "sync", "--disable")
        assert "Sync off" in result.output
        settings = json.loads((tmp_path / "settings.json").read_text())
        assert settings["syncTimerState"] is False
        assert settings["userId"] == "u1"


# ---------------------------------------------------------------------------
# phasetimer --version / --verbose
# ---------------------------------------------------------------------------


class TestGlobalOptions:
    """Tests for options on the ``phasetimer`` group."""

    def test_version_output(self, runner: click.testing.CliRunner) -> None:
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    @patch("phasetimer.cli.main.TimerApp")
    def test_verbose_passed_to_logging(
        self,
        mock_app_cls: MagicMock,
        isolated: MagicMock,
        runner: click.testing.CliRunner,
        tmp_path: Path,
    ) -> None:
        _mock_app(mock_app_cls, PAUSED_AT_BREAK, make_preset())
        runner.invoke(cli, ["--verbose", "--config-dir", str(tmp_path), "status"])
        isolated.assert_called_once_with(tmp_path, True)
