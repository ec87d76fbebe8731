"""CLI entry point for phasetimer.

Uses Click to expose the ``phasetimer`` command group.  Every command opens
a :class:`TimerApp` for the config directory, so state carries across
invocations through the persisted snapshot.
"""

from __future__ import annotations

import sys
import threading
from pathlib import Path
from typing import Callable, TypeVar

import click

import phasetimer
from phasetimer.app import TimerApp
from phasetimer.config import ConfigError, load_settings, save_settings
from phasetimer.core.presets import Phase, Preset, PresetError, default_phases, generate_id
from phasetimer.core.timer import TimerState, TimerView
from phasetimer.log import setup_logging

T = TypeVar("T")


class CliContext:
    def __init__(self, config_dir: Path | None) -> None:
        self.config_dir = config_dir


def _run(action: Callable[[], T]) -> T:
    """Execute *action*, converting domain errors to a CLI error.

    The message is printed to stderr and the process exits with code 1.
    """
    try:
        return action()
    except (ConfigError, PresetError) as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)


def _app(obj: CliContext) -> TimerApp:
    return _run(lambda: TimerApp(config_dir=obj.config_dir))


def _describe(view: TimerView) -> str:
    if view.current_phase is None:
        return "No active preset"
    return (
        f"{view.current_phase.name} ({view.current_phase_index + 1}/{view.total_phases}) "
        f"{view.formatted_time} {view.status.value}"
    )


def _control(obj: CliContext, action: Callable[[TimerApp], None]) -> None:
    """Open the app, apply *action*, print the resulting state."""

    def apply() -> TimerView:
        with _app(obj) as app:
            action(app)
            return app.view()

    view = _run(apply)
    click.echo(_describe(view))
    sys.exit(0 if view.current_phase is not None else 1)


@click.group()
@click.version_option(version=phasetimer.__version__, prog_name="phasetimer")
@click.option("--verbose", "-v", is_flag=True, help="Log to stderr as well as the log file.")
@click.option(
    "--config-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding settings, presets and timer state.",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_dir: Path | None) -> None:
    """phasetimer: a phase-cycle focus timer with synced state."""
    ctx.obj = CliContext(config_dir)
    settings = _run(lambda: load_settings(config_dir))
    setup_logging(settings.config_dir, verbose)


@cli.command()
@click.pass_obj
def status(obj: CliContext) -> None:
    """Show the current phase and remaining time."""
    _control(obj, lambda app: None)


@cli.command()
@click.pass_obj
def start(obj: CliContext) -> None:
    """Start or resume the countdown."""
    _control(obj, lambda app: app.engine.start())


@cli.command()
@click.pass_obj
def pause(obj: CliContext) -> None:
    """Pause the countdown."""
    _control(obj, lambda app: app.engine.pause())


@cli.command()
@click.pass_obj
def reset(obj: CliContext) -> None:
    """Return to the first phase, idle."""
    _control(obj, lambda app: app.engine.reset())


@cli.command(name="next")
@click.pass_obj
def next_phase(obj: CliContext) -> None:
    """Skip to the next phase."""
    _control(obj, lambda app: app.engine.skip_to_next_phase())


@cli.command(name="prev")
@click.pass_obj
def previous_phase(obj: CliContext) -> None:
    """Skip to the previous phase."""
    _control(obj, lambda app: app.engine.skip_to_previous_phase())


@cli.command()
@click.argument("number", type=click.IntRange(min=1))
@click.pass_obj
def goto(obj: CliContext, number: int) -> None:
    """Jump to phase NUMBER (1-based)."""
    _control(obj, lambda app: app.engine.go_to_phase(number - 1))


@cli.command()
@click.pass_obj
def run(obj: CliContext) -> None:
    """Run the countdown in the foreground until it completes or Ctrl-C."""
    app = _app(obj)
    _run(app.open)
    stopped = threading.Event()

    def on_change(state: TimerState) -> None:
        click.echo(f"\r{_describe(app.view())}   ", nl=False)
        if not state.running:
            stopped.set()

    try:
        app.engine.subscribe(on_change)
        if not app.engine.state.running:
            app.engine.start()
        if not app.engine.state.running:
            click.echo("No active preset", err=True)
            sys.exit(1)
        try:
            while not stopped.wait(0.5):
                pass
        except KeyboardInterrupt:
            click.echo("\nInterrupted, state saved.")
            return
        click.echo()
    finally:
        app.close()


@cli.command()
@click.pass_obj
def forget(obj: CliContext) -> None:
    """Delete the locally saved timer state."""
    _app(obj).forget()
    click.echo("Local timer state cleared")


# ---------------------------------------------------------------------------
# presets
# ---------------------------------------------------------------------------


def _parse_phases(
    ctx: click.Context, param: click.Parameter, values: tuple[str, ...]
) -> list[Phase]:
    phases = []
    for value in values:
        name, sep, minutes = value.rpartition(":")
        if not sep or not minutes.isdigit():
            raise click.BadParameter(f"expected NAME:MINUTES, got {value!r}")
        phases.append(Phase(id=generate_id(), name=name, duration_minutes=int(minutes)))
    return phases


@cli.group()
def presets() -> None:
    """Manage presets."""


@presets.command(name="list")
@click.pass_obj
def list_presets(obj: CliContext) -> None:
    """List presets; the active one is marked with *."""
    app = _app(obj)
    active_id = app.settings.active_preset_id
    for preset in _run(app.presets.list_presets):
        marker = "*" if preset.id == active_id else " "
        phases = ", ".join(f"{p.name} {p.duration_minutes}m" for p in preset.phases)
        loop = " (loop)" if preset.loop_phases else ""
        click.echo(f"{marker} {preset.id}  {preset.name}: {phases}{loop}")


@presets.command(name="add")
@click.argument("name")
@click.option(
    "--phase",
    "phases",
    multiple=True,
    callback=_parse_phases,
    help="Phase as NAME:MINUTES; repeat in order. Defaults to Work:25 Break:5.",
)
@click.option("--loop", is_flag=True, help="Start over after the last phase.")
@click.option("--color", default=None, help="Display color as hex.")
@click.pass_obj
def add_preset(
    obj: CliContext, name: str, phases: list[Phase], loop: bool, color: str | None
) -> None:
    """Create a preset called NAME."""
    app = _app(obj)
    preset = Preset(id=generate_id(), name=name, loop_phases=loop, color=color)
    preset = preset.with_phases(phases or default_phases())
    saved = _run(lambda: app.presets.add(preset))
    click.echo(f"Created preset {saved.id}")


@presets.command(name="remove")
@click.argument("preset_id")
@click.pass_obj
def remove_preset(obj: CliContext, preset_id: str) -> None:
    """Delete preset PRESET_ID."""
    app = _app(obj)
    _run(lambda: app.presets.remove(preset_id))
    if app.settings.active_preset_id == preset_id:
        app.settings.active_preset_id = None
        save_settings(app.settings)
    click.echo(f"Removed preset {preset_id}")


@presets.command(name="use")
@click.argument("preset_id")
@click.pass_obj
def use_preset(obj: CliContext, preset_id: str) -> None:
    """Make PRESET_ID the active preset."""
    app = _app(obj)
    if _run(lambda: app.presets.get(preset_id)) is None:
        click.echo(f"no preset with id {preset_id}", err=True)
        sys.exit(1)
    app.settings.active_preset_id = preset_id
    save_settings(app.settings)
    _control(obj, lambda app: None)


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--enable/--disable", default=None, help="Turn cross-device sync on or off.")
@click.option("--user", "user_id", default=None, help="Signed-in user id.")
@click.option("--url", "sync_url", default=None, help="Base URL of the sync service.")
@click.option("--token", "sync_token", default=None, help="Bearer token for the sync service.")
@click.pass_obj
def sync(
    obj: CliContext,
    enable: bool | None,
    user_id: str | None,
    sync_url: str | None,
    sync_token: str | None,
) -> None:
    """Show or change sync settings."""
    settings = _run(lambda: load_settings(obj.config_dir))
    if enable is not None:
        settings.sync_enabled = enable
    if user_id is not None:
        settings.user_id = user_id
    if sync_url is not None:
        settings.sync_url = sync_url
    if sync_token is not None:
        settings.sync_token = sync_token
    save_settings(settings)
    state = "on" if settings.can_sync else "off"
    click.echo(f"Sync {state} (user={settings.user_id or '-'}, url={settings.sync_url or '-'})")
