"""
auth/events.py -- Minimal synchronous publish/subscribe hub.

Used twice:
  SessionStore publishes SessionEvent on every session mutation, so other
  client contexts sharing the store notice logouts and expiries (this replaces
  a browser storage-change listener).

  AuthService publishes the new AuthContext after every login, logout and
  restore (the Presentation Adapter's onAuthStateChanged).

Delivery is in subscription order on the publishing thread. A failing
listener is logged and does not stop delivery to the remaining listeners or
fail the operation that triggered it.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger("authkeeper.auth.events")

E = TypeVar("E")


class EventHub(Generic[E]):
    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: list[Callable[[E], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Callable[[E], None]) -> Callable[[], None]:
        """Register listener; returns a zero-arg callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Callable[[E], None]) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, event: E) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("%s listener %r failed", self.name, listener)
