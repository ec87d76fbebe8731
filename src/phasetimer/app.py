"""Composition root — wires one engine to its stores and owns their lifetime."""

from __future__ import annotations

from concurrent.futures import Executor
from pathlib import Path

from phasetimer.config import Settings, load_settings
from phasetimer.core.persistence import LocalSnapshotStore, RemoteSnapshotStore
from phasetimer.core.presets import Preset, PresetStore
from phasetimer.core.sync import SyncOrchestrator
from phasetimer.core.timer import CountdownEngine, ThreadTicker, TickerFactory, TimerView


class TimerApp:
    """One timer owner: engine, presets, and sync for a config directory.

    Use as a context manager; entering boots from storage and activates the
    configured preset, leaving flushes a final snapshot and disposes.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        config_dir: Path | None = None,
        ticker_factory: TickerFactory = ThreadTicker,
        executor: Executor | None = None,
    ) -> None:
        self.settings = settings if settings is not None else load_settings(config_dir)
        self.presets = PresetStore(self.settings.config_dir)
        self.engine = CountdownEngine(ticker_factory=ticker_factory)
        remote = (
            RemoteSnapshotStore(self.settings.sync_url, token=self.settings.sync_token)
            if self.settings.sync_url
            else None
        )
        self.sync = SyncOrchestrator(
            self.engine,
            LocalSnapshotStore(self.settings.config_dir),
            remote,
            user_id=self.settings.user_id,
            sync_enabled=self.settings.sync_enabled,
            executor=executor,
        )

    def __enter__(self) -> TimerApp:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def active_preset(self) -> Preset | None:
        return self.engine.preset

    def open(self) -> None:
        self.sync.boot()
        self.sync.load_remote()
        self.sync.activate_preset(self.presets.get(self.settings.active_preset_id))

    def close(self) -> None:
        self.sync.flush()
        self.engine.dispose()
        self.sync.dispose()

    def view(self) -> TimerView:
        return self.engine.view()

    def forget(self) -> None:
        """Clear the local snapshot slot without booting."""
        self.sync.forget()
        self.sync.dispose()
