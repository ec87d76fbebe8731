"""Sync Orchestrator — restores, persists and flushes the countdown engine's state."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Callable

from phasetimer.core.persistence import (
    LocalSnapshotStore,
    PersistedSnapshot,
    RemoteSnapshotStore,
    RemoteStoreError,
    reconcile,
)
from phasetimer.core.presets import Preset
from phasetimer.core.timer import CountdownEngine, TimerState

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class SyncOrchestrator:
    """Keeps one :class:`CountdownEngine` in step with its local and remote snapshots.

    The local slot is written on every state change and is authoritative for
    the running session.  The remote document is only pulled in at boot and
    written fire-and-forget when sync is enabled and a user is present.
    Persistence failures never reach the engine.
    """

    def __init__(
        self,
        engine: CountdownEngine,
        local: LocalSnapshotStore,
        remote: RemoteSnapshotStore | None = None,
        *,
        user_id: str | None = None,
        sync_enabled: bool = False,
        executor: Executor | None = None,
    ) -> None:
        self._engine = engine
        self._local = local
        self._remote = remote
        self._user_id = user_id
        self._sync_enabled = sync_enabled
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="phasetimer-sync"
        )
        self._active_preset_id: str | None = None
        self._local_saved_at: int | None = None
        self._restored_preset_id: str | None = None
        self._restore_pending = False
        self._activated = False
        self._unsubscribe: Callable[[], None] | None = None

    # -- properties ----------------------------------------------------------

    @property
    def remote_enabled(self) -> bool:
        return self._sync_enabled and self._user_id is not None and self._remote is not None

    @property
    def active_preset_id(self) -> str | None:
        return self._active_preset_id

    @property
    def restored_preset_id(self) -> str | None:
        return self._restored_preset_id

    # -- boot ----------------------------------------------------------------

    def boot(self) -> bool:
        """Restore from the local slot and start persisting state changes.

        Returns ``True`` if a local snapshot was adopted.
        """
        snapshot = self._local.load()
        restored = False
        if snapshot is not None:
            self._local_saved_at = snapshot.saved_at
            self._adopt(reconcile(snapshot, _now_ms()))
            restored = True
            logger.info(
                "Restored local timer state: %ds remaining, status=%s",
                self._engine.state.remaining_seconds,
                self._engine.state.status.value,
            )
        self._unsubscribe = self._engine.subscribe(self._on_state_change)
        self.persist()
        return restored

    def load_remote(self) -> bool:
        """Adopt the remote snapshot if it is newer than the local one read at boot.

        Returns ``True`` if the remote copy replaced the in-memory state.
        """
        if not self.remote_enabled:
            return False
        try:
            snapshot = self._remote.load(self._user_id)
        except RemoteStoreError as exc:
            logger.warning("Remote timer state unavailable: %s", exc)
            return False
        if snapshot is None:
            return False
        if self._local_saved_at is not None and snapshot.saved_at <= self._local_saved_at:
            logger.debug("Remote timer state is not newer than local, keeping local")
            return False

        restored = reconcile(snapshot, _now_ms())
        if not self._adopt(restored):
            self.persist()
            return False
        self._local.save(restored)
        logger.info("Adopted remote timer state saved at %d", snapshot.saved_at)
        return True

    # -- preset activation ---------------------------------------------------

    def activate_preset(self, preset: Preset | None) -> None:
        """Point the engine at *preset*, re-initializing it when the identity changes.

        A restore adopted for this exact preset id survives the first
        activation; the guard is cleared after that.
        """
        preset_id = preset.id if preset is not None else None
        self._engine.set_preset(preset)
        first_activation = not self._activated
        self._activated = True
        if (
            not first_activation
            and preset_id == self._active_preset_id
            and not self._restore_pending
        ):
            if not self._fits(self._engine.state):
                # The edited phase list no longer holds the current phase.
                self._engine.initialize()
            return
        self._active_preset_id = preset_id

        if (
            self._restore_pending
            and self._restored_preset_id == preset_id
            and self._fits(self._engine.state)
        ):
            self._restore_pending = False
            logger.debug("Keeping restored state for preset %s", preset_id)
            self.persist()
            return

        self._restore_pending = False
        self._engine.initialize()
        self.persist()

    # -- persistence ---------------------------------------------------------

    def persist(self) -> None:
        """Write the current state locally, and remotely when sync applies."""
        if self._engine.state.is_untouched and self._active_preset_id is None:
            return
        self._write()

    def flush(self) -> None:
        """Final best-effort save on teardown; the remote write is not awaited."""
        self._write()

    def handle_visibility(self, hidden: bool) -> None:
        if hidden:
            self.flush()

    def forget(self) -> None:
        self._local.clear()
        self._local_saved_at = None

    def dispose(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._executor.shutdown(wait=False)

    # -- private helpers -----------------------------------------------------

    def _adopt(self, snapshot: PersistedSnapshot) -> bool:
        """Load *snapshot* into the engine; returns ``False`` if it was discarded."""
        self._restored_preset_id = snapshot.active_preset_id
        state = snapshot.to_state()
        if not self._activated:
            self._restore_pending = True
            self._active_preset_id = snapshot.active_preset_id
            self._engine.load(state)
            return True

        # A late restore: the active preset is already fixed, no activation follows.
        self._restore_pending = False
        if snapshot.active_preset_id == self._active_preset_id and self._fits(state):
            self._engine.load(state)
            return True
        logger.info(
            "Discarding restored state for preset %s, active preset is %s",
            snapshot.active_preset_id,
            self._active_preset_id,
        )
        self._engine.initialize()
        return False

    def _fits(self, state: TimerState) -> bool:
        preset = self._engine.preset
        return preset is None or preset.phase_at(state.current_phase_index) is not None

    def _on_state_change(self, state: TimerState) -> None:
        self.persist()

    def _write(self) -> None:
        snapshot = PersistedSnapshot.capture(
            self._engine.state, self._active_preset_id, _now_ms()
        )
        self._local.save(snapshot)
        if self.remote_enabled:
            self._executor.submit(self._save_remote, snapshot)

    def _save_remote(self, snapshot: PersistedSnapshot) -> None:
        try:
            self._remote.save(self._user_id, snapshot)
        except RemoteStoreError as exc:
            logger.warning("Remote timer state write lost: %s", exc)
