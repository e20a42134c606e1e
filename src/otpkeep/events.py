"""In-process event channels for observers (UI lists, countdown displays).

Publishers never see subscriber failures: a raising callback is logged
and the remaining subscribers still run.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Channel(Generic[T]):
    """Fan-out of values of type T to subscribed callbacks."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._subscribers: list[Callable[[T], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register ``callback``; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            self.unsubscribe(callback)

        return unsubscribe

    def unsubscribe(self, callback: Callable[[T], None]) -> None:
        with self._lock:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, value: T) -> int:
        """Deliver ``value`` to every subscriber. Returns how many succeeded."""
        with self._lock:
            subscribers = list(self._subscribers)
        delivered = 0
        for callback in subscribers:
            try:
                callback(value)
                delivered += 1
            except Exception:
                logger.warning("Subscriber failed on channel %s", self.name, exc_info=True)
        logger.debug("[event] %s: delivered to %d/%d", self.name, delivered, len(subscribers))
        return delivered
