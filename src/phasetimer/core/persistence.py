"""Snapshot persistence — local JSON slot, remote document, and restore-time reconciliation."""

from __future__ import annotations

import fcntl
import json
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import requests

from phasetimer.core.timer import TimerState, TimerStatus

logger = logging.getLogger(__name__)

_STATE_FILE = "timer_state.json"
_DEFAULT_TIMEOUT = 5.0


class SnapshotError(ValueError):
    """Raised when a stored snapshot record cannot be decoded."""


class RemoteStoreError(Exception):
    """Raised when the remote snapshot document cannot be read or written."""


@dataclass(frozen=True)
class PersistedSnapshot:
    """Durable projection of :class:`TimerState` plus what is needed to resume it.

    ``saved_at`` is the wall-clock time (epoch milliseconds) of the write that
    produced the record.
    """

    remaining_seconds: int
    current_phase_index: int
    status: TimerStatus
    active_preset_id: str | None
    running: bool
    saved_at: int

    @classmethod
    def capture(
        cls, state: TimerState, active_preset_id: str | None, now_ms: int
    ) -> PersistedSnapshot:
        return cls(
            remaining_seconds=state.remaining_seconds,
            current_phase_index=state.current_phase_index,
            status=state.status,
            active_preset_id=active_preset_id,
            running=state.running,
            saved_at=now_ms,
        )

    def to_state(self) -> TimerState:
        return TimerState(
            remaining_seconds=self.remaining_seconds,
            running=self.running,
            status=self.status,
            current_phase_index=self.current_phase_index,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "remainingSeconds": self.remaining_seconds,
            "currentPhaseIndex": self.current_phase_index,
            "status": self.status.value,
            "activePresetId": self.active_preset_id,
            "running": self.running,
            "savedAt": self.saved_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> PersistedSnapshot:
        if not isinstance(data, dict):
            raise SnapshotError(f"snapshot must be an object, got {type(data).__name__}")
        try:
            preset_id = data["activePresetId"]
            snapshot = cls(
                remaining_seconds=int(data["remainingSeconds"]),
                current_phase_index=int(data["currentPhaseIndex"]),
                status=TimerStatus(data["status"]),
                active_preset_id=None if preset_id is None else str(preset_id),
                running=bool(data["running"]),
                saved_at=int(data["savedAt"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise SnapshotError(f"malformed snapshot: {exc}") from exc
        if snapshot.remaining_seconds < 0 or snapshot.current_phase_index < 0:
            raise SnapshotError("snapshot holds negative values")
        return snapshot


def reconcile(snapshot: PersistedSnapshot, now_ms: int) -> PersistedSnapshot:
    """Correct *snapshot* for the wall-clock time that passed since it was saved.

    Only a running countdown drifts.  The correction stays within the current
    phase: if the phase would have run out, the result is stopped at zero and
    ``paused`` rather than advanced or completed.
    """
    if not snapshot.running or snapshot.status != TimerStatus.RUNNING:
        return snapshot

    elapsed = (now_ms - snapshot.saved_at) // 1000
    adjusted = max(0, snapshot.remaining_seconds - elapsed)
    if adjusted == 0:
        return replace(
            snapshot,
            remaining_seconds=0,
            running=False,
            status=TimerStatus.PAUSED,
            saved_at=now_ms,
        )
    return replace(snapshot, remaining_seconds=adjusted, saved_at=now_ms)


class LocalSnapshotStore:
    """The single well-known snapshot slot in the config directory.

    Shared by every user on this machine.  Read and write failures are
    logged and reported as "nothing stored" / ``False``.
    """

    def __init__(self, config_dir: Path) -> None:
        self._config_dir = config_dir

    @property
    def path(self) -> Path:
        return self._config_dir / _STATE_FILE

    def load(self) -> PersistedSnapshot | None:
        if not self.path.exists():
            return None
        try:
            with open(self.path) as f:
                fcntl.flock(f, fcntl.LOCK_SH)
                data = json.load(f)
            return PersistedSnapshot.from_dict(data)
        except (OSError, json.JSONDecodeError, SnapshotError) as exc:
            logger.error("Failed to load local timer state: %s", exc)
            return None

    def save(self, snapshot: PersistedSnapshot) -> bool:
        try:
            self._config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                fcntl.flock(f, fcntl.LOCK_EX)
                json.dump(snapshot.to_dict(), f)
        except OSError as exc:
            logger.error("Failed to save local timer state: %s", exc)
            return False
        return True

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Failed to clear local timer state: %s", exc)


class RemoteSnapshotStore:
    """Per-user snapshot document behind an HTTP endpoint.

    ``GET``/``PUT`` on ``{base_url}/users/{user_id}/timerState/current``; the
    whole record is replaced on every write.  Every failure surfaces as
    :class:`RemoteStoreError`.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"

    def document_url(self, user_id: str) -> str:
        return f"{self._base_url}/users/{user_id}/timerState/current"

    def load(self, user_id: str) -> PersistedSnapshot | None:
        try:
            response = self._session.get(self.document_url(user_id), timeout=self._timeout)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return PersistedSnapshot.from_dict(response.json())
        except (requests.RequestException, ValueError) as exc:
            raise RemoteStoreError(f"failed to load timer state for {user_id}: {exc}") from exc

    def save(self, user_id: str, snapshot: PersistedSnapshot) -> None:
        try:
            response = self._session.put(
                self.document_url(user_id), json=snapshot.to_dict(), timeout=self._timeout
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise RemoteStoreError(f"failed to save timer state for {user_id}: {exc}") from exc
