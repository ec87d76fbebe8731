"""Timer core — a phase-aware countdown state machine driven by a 1-second tick."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Protocol

from phasetimer.core.presets import Phase, Preset

logger = logging.getLogger(__name__)

TICK_INTERVAL_SECONDS = 1.0


class TimerStatus(Enum):
    """Possible states of the timer."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


@dataclass(frozen=True)
class TimerState:
    """Authoritative in-memory timer state.

    ``running`` implies ``status == RUNNING``; ``COMPLETED`` implies the
    countdown is stopped at zero.
    """

    remaining_seconds: int = 0
    running: bool = False
    status: TimerStatus = TimerStatus.IDLE
    current_phase_index: int = 0

    @property
    def is_untouched(self) -> bool:
        return self == TimerState()


@dataclass(frozen=True)
class TimerView:
    """Values derived from a :class:`TimerState` for display."""

    hours: int
    minutes: int
    seconds: int
    digits: tuple[str, ...]
    formatted_time: str
    remaining_seconds: int
    running: bool
    status: TimerStatus
    current_phase: Phase | None
    current_phase_index: int
    total_phases: int


def split_seconds(total: int) -> tuple[int, int, int]:
    """Return ``(hours, minutes, seconds)`` for *total* seconds."""
    return total // 3600, (total % 3600) // 60, total % 60


def build_view(state: TimerState, preset: Preset | None) -> TimerView:
    hours, minutes, seconds = split_seconds(state.remaining_seconds)
    digits = f"{hours:02d}{minutes:02d}{seconds:02d}"
    return TimerView(
        hours=hours,
        minutes=minutes,
        seconds=seconds,
        digits=tuple(digits),
        formatted_time=f"{hours:02d}:{minutes:02d}:{seconds:02d}",
        remaining_seconds=state.remaining_seconds,
        running=state.running,
        status=state.status,
        current_phase=preset.phase_at(state.current_phase_index) if preset else None,
        current_phase_index=state.current_phase_index,
        total_phases=len(preset.phases) if preset else 0,
    )


class Ticker(Protocol):
    """A cancellable repeating timer."""

    def start(self) -> None: ...

    def cancel(self) -> None: ...


TickerFactory = Callable[[float, Callable[[], None]], Ticker]
StateListener = Callable[[TimerState], None]


class ThreadTicker:
    """Calls *callback* every *interval* seconds on a daemon thread until cancelled."""

    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self._interval = interval
        self._callback = callback
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start from phase 0, or resume the current phase.

        A no-op without a preset or with an empty phase list.  From IDLE or
        COMPLETED, or when the current phase index no longer exists, the
        countdown begins at the first phase.
        """
        self._thread = threading.Thread(target=self._run, daemon=True, name="phasetimer-tick")
        self._thread.start()

    def cancel(self) -> None:
        # No join: the tick thread may be waiting on the engine lock held by the caller.
        self._stop_event.set()

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self._callback()
            except Exception:
                logger.exception("Tick callback failed")


class CountdownEngine:
    """Owns the timer state for one active preset.

    Every control is a no-op when it does not apply (no preset, empty phase
    list, out-of-range index); nothing here raises for a user action.  A
    single ticker is armed while ``running`` is true and cancelled as soon as
    it becomes false.  Listeners are told about every state change.
    """

    def __init__(
        self,
        ticker_factory: TickerFactory = ThreadTicker,
        interval: float = TICK_INTERVAL_SECONDS,
    ) -> None:
        self._ticker_factory = ticker_factory
        self._interval = interval
        self._lock = threading.RLock()
        self._state = TimerState()
        self._preset: Preset | None = None
        self._ticker: Ticker | None = None
        self._generation = 0
        self._listeners: list[StateListener] = []

    # -- observation ---------------------------------------------------------

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def preset(self) -> Preset | None:
        return self._preset

    @property
    def ticking(self) -> bool:
        return self._ticker is not None

    def view(self) -> TimerView:
        with self._lock:
            return build_view(self._state, self._preset)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register *listener*; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- lifecycle -----------------------------------------------------------

    def set_preset(self, preset: Preset | None) -> None:
        """Swap the preset used for durations without touching the state."""
        with self._lock:
            self._preset = preset

    def initialize(self) -> None:
        """Return to phase 0 of the current preset, idle."""
        phase = self._preset.phase_at(0) if self._preset else None
        self._apply(
            TimerState(remaining_seconds=phase.duration_seconds if phase else 0)
        )

    def load(self, state: TimerState) -> None:
        """Adopt a restored state as-is."""
        self._apply(state)

    def dispose(self) -> None:
        """Stop ticking and drop all listeners."""
        with self._lock:
            self._disarm()
        self._listeners.clear()

    # -- controls ------------------------------------------------------------

    def start(self) -> None:
        """Start from phase 0, or resume the current phase.

        A no-op without a preset or with an empty phase list.  From IDLE or
        COMPLETED, or when the current phase index no longer exists, the
        countdown begins at the first phase.
        """
        with self._lock:
            if not self._has_phases():
                return
            prev = self._state
            if (
                prev.status in (TimerStatus.COMPLETED, TimerStatus.IDLE)
                or self._preset.phase_at(prev.current_phase_index) is None
            ):
                new = self._at_phase(0, running=True)
            elif prev.remaining_seconds == 0:
                new = self._at_phase(prev.current_phase_index, running=True)
            else:
                new = replace(prev, running=True, status=TimerStatus.RUNNING)
            logger.info("Timer started at phase %d", new.current_phase_index)
            self._apply(new)

    def pause(self) -> None:
        """Freeze the countdown.

        Valid only while running; otherwise a no-op.
        """
        with self._lock:
            if not self._state.running:
                return
            logger.info("Timer paused with %ds remaining", self._state.remaining_seconds)
            self._apply(replace(self._state, running=False, status=TimerStatus.PAUSED))

    def reset(self) -> None:
        """Return to the first phase at full duration, idle.  No-op without phases."""
        with self._lock:
            if not self._has_phases():
                return
            self._apply(self._at_phase(0, running=False, status=TimerStatus.IDLE))

    def skip_to_next_phase(self) -> None:
        """Move to the next phase, paused.

        On the last phase this wraps to phase 0 only when the preset loops,
        and is otherwise a no-op, as it is without phases.
        """
        with self._lock:
            if not self._has_phases():
                return
            next_index = self._state.current_phase_index + 1
            if next_index < len(self._preset.phases):
                self._apply(self._at_phase(next_index, running=False))
            elif self._preset.loop_phases:
                self._apply(self._at_phase(0, running=False))

    def skip_to_previous_phase(self) -> None:
        """Move to the previous phase, paused; wraps from phase 0 only when looping."""
        with self._lock:
            if not self._has_phases():
                return
            prev_index = self._state.current_phase_index - 1
            if prev_index >= 0:
                self._apply(self._at_phase(prev_index, running=False))
            elif self._preset.loop_phases:
                self._apply(self._at_phase(len(self._preset.phases) - 1, running=False))

    def go_to_phase(self, index: int) -> None:
        """Jump to phase *index*, paused.  An out-of-range index is a no-op."""
        with self._lock:
            if self._preset is None or self._preset.phase_at(index) is None:
                return
            self._apply(self._at_phase(index, running=False))

    def tick(self) -> None:
        """Advance the countdown by one second."""
        with self._lock:
            prev = self._state
            if not prev.running:
                return
            if prev.remaining_seconds > 1:
                self._apply(replace(prev, remaining_seconds=prev.remaining_seconds - 1))
                return

            preset = self._preset
            next_index = prev.current_phase_index + 1
            if preset is not None and next_index < len(preset.phases):
                logger.info("Phase %d finished, advancing to %d", prev.current_phase_index, next_index)
                self._apply(self._at_phase(next_index, running=True))
            elif preset is not None and preset.phases and preset.loop_phases:
                logger.info("Last phase finished, looping to phase 0")
                self._apply(self._at_phase(0, running=True))
            else:
                logger.info("All phases completed")
                self._apply(
                    replace(prev, remaining_seconds=0, running=False, status=TimerStatus.COMPLETED)
                )

    # -- private helpers -----------------------------------------------------

    def _has_phases(self) -> bool:
        return self._preset is not None and self._preset.can_activate

    def _at_phase(
        self, index: int, *, running: bool, status: TimerStatus | None = None
    ) -> TimerState:
        """A state positioned at the start of phase *index* with its full duration."""
        if status is None:
            status = TimerStatus.RUNNING if running else TimerStatus.PAUSED
        return TimerState(
            remaining_seconds=self._preset.phases[index].duration_seconds,
            running=running,
            status=status,
            current_phase_index=index,
        )

    def _apply(self, new: TimerState) -> None:
        """Install *new*, re-arm or cancel the ticker, then notify listeners."""
        with self._lock:
            old = self._state
            self._state = new
            if new.running and self._ticker is None:
                self._arm()
            elif not new.running:
                self._disarm()
        if new != old:
            for listener in list(self._listeners):
                listener(new)

    def _arm(self) -> None:
        self._generation += 1
        generation = self._generation
        self._ticker = self._ticker_factory(self._interval, lambda: self._on_tick(generation))
        self._ticker.start()

    def _disarm(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    def _on_tick(self, generation: int) -> None:
        with self._lock:
            # A cancelled ticker can still fire once while waiting on the lock.
            if generation != self._generation or self._ticker is None:
                return
            self.tick()
