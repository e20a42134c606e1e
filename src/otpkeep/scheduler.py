"""Countdown scheduler: broadcasts seconds remaining in the current code window.

Runs one background thread only while someone is subscribed. Each tick is
recomputed from the wall clock, so late or missed ticks never drift.

The headline ``remaining`` value uses one global window (default 30s),
which is only exact when every account uses that period; ``by_period``
carries the exact countdown for each distinct period in the store.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from otpkeep.config import settings
from otpkeep.events import Channel
from otpkeep.otp import seconds_remaining

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefreshTick:
    timestamp: float
    window: int
    remaining: int
    by_period: dict[int, int] = field(default_factory=dict)


class RefreshScheduler:
    """Start/stop lifecycle follows the subscriber count."""

    def __init__(
        self,
        window: int | None = None,
        interval: float | None = None,
        clock: Callable[[], float] = time.time,
        periods: Callable[[], Iterable[int]] | None = None,
    ) -> None:
        self.window = window or settings.refresh_window
        self.interval = interval or settings.tick_interval
        self._clock = clock
        self._periods = periods
        self.ticks: Channel[RefreshTick] = Channel("refresh")
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    def compute(self) -> RefreshTick:
        now = self._clock()
        periods = set(self._periods()) if self._periods else set()
        periods.add(self.window)
        return RefreshTick(
            timestamp=now,
            window=self.window,
            remaining=seconds_remaining(self.window, now),
            by_period={p: seconds_remaining(p, now) for p in sorted(periods)},
        )

    def tick(self) -> RefreshTick:
        """Compute and broadcast one tick."""
        current = self.compute()
        self.ticks.publish(current)
        return current

    def subscribe(self, callback: Callable[[RefreshTick], None]) -> Callable[[], None]:
        """Subscribe and make sure the ticker is running."""
        self.ticks.subscribe(callback)
        self.start()

        def unsubscribe() -> None:
            self.unsubscribe(callback)

        return unsubscribe

    def unsubscribe(self, callback: Callable[[RefreshTick], None]) -> None:
        self.ticks.unsubscribe(callback)
        if len(self.ticks) == 0:
            self.stop()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._loop,
                args=(self._stop_event,),
                name="refresh-scheduler",
                daemon=True,
            )
            self._thread.start()
        logger.info("Refresh scheduler started (window=%ds, interval=%.1fs)", self.window, self.interval)

    def stop(self) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
            self._stop_event.set()
        if thread is None:
            return
        if thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=max(self.interval * 2, 1.0))
        logger.info("Refresh scheduler stopped")

    def _loop(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            self.tick()
            stop_event.wait(self.interval)
