"""Shared fixtures: a hand-fired ticker, an inline executor, and sample presets."""

from __future__ import annotations

from concurrent.futures import Executor, Future
from typing import Callable

import pytest

from phasetimer.core.presets import Phase, Preset
from phasetimer.core.timer import CountdownEngine


class FakeTicker:
    """Stands in for ``ThreadTicker``; ticks only when :meth:`fire` is called."""

    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.callback()


class TickerRecorder:
    """Ticker factory that keeps every ticker it hands out."""

    def __init__(self) -> None:
        self.tickers: list[FakeTicker] = []

    def __call__(self, interval: float, callback: Callable[[], None]) -> FakeTicker:
        ticker = FakeTicker(interval, callback)
        self.tickers.append(ticker)
        return ticker

    @property
    def active(self) -> list[FakeTicker]:
        return [t for t in self.tickers if t.started and not t.cancelled]

    def fire(self, times: int = 1) -> None:
        """Fire the single active ticker *times* times."""
        for _ in range(times):
            (ticker,) = self.active
            ticker.fire()


class InlineExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def submit(self, fn, /, *args, **kwargs) -> Future:  # type: ignore[override]
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


def make_preset(
    preset_id: str = "p1",
    minutes: tuple[int, ...] = (1, 1),
    loop: bool = False,
) -> Preset:
    names = ["Work", "Break", "Review", "Rest"]
    phases = tuple(
        Phase(id=f"{preset_id}-ph{i}", name=names[i % len(names)], duration_minutes=m, order=i)
        for i, m in enumerate(minutes)
    )
    return Preset(id=preset_id, name=f"Preset {preset_id}", phases=phases, loop_phases=loop)


@pytest.fixture()
def tickers() -> TickerRecorder:
    return TickerRecorder()


@pytest.fixture()
def engine(tickers: TickerRecorder) -> CountdownEngine:
    return CountdownEngine(ticker_factory=tickers)


@pytest.fixture()
def two_phase() -> Preset:
    """Work 1 min, Break 1 min, no looping."""
    return make_preset()


@pytest.fixture()
def looping() -> Preset:
    """Work 1 min, Break 1 min, looping."""
    return make_preset(loop=True)


@pytest.fixture()
def inline_executor() -> InlineExecutor:
    return InlineExecutor()
