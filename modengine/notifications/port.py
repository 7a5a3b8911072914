"""Notification port and the best-effort wrapper around it."""

from __future__ import annotations

import logging
import queue
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

logger = logging.getLogger(__name__)

# All event types the engine emits
EVENTS = [
    "report.urgent",
    "report.overdue",
    "report.resolved",
    "report.dismissed",
    "user.sanctioned",
    "user.ban_lifted",
]


class NotificationPort(ABC):
    """Channel for alerting moderators and users."""

    @abstractmethod
    def notify(self, event: str, payload: dict[str, Any]) -> None:
        """Deliver *event*. Raise ``NotificationDeliveryError`` on failure."""


class LogNotifier(NotificationPort):
    """Writes notifications to the log instead of delivering them."""

    def notify(self, event: str, payload: dict[str, Any]) -> None:
        logger.info("Notification %s: %s", event, payload)


class SafeNotifier:
    """Wraps a port so delivery failures are logged and counted, never raised.

    ``send`` delivers on the caller's thread. ``post`` queues the event for
    a daemon worker, started on first use, so a slow channel never holds up
    the operation that raised it. ``close`` drains the queue and stops the
    worker; a later ``post`` starts a new one.
    """

    def __init__(self, port: NotificationPort, max_queued: int = 1000) -> None:
        self._port = port
        self._failures = 0
        self._lock = threading.Lock()
        self._queue: queue.Queue = queue.Queue(maxsize=max_queued)
        self._pending = 0
        self._idle = threading.Condition(self._lock)
        self._worker: Optional[threading.Thread] = None

    @property
    def port(self) -> NotificationPort:
        return self._port

    @property
    def failures(self) -> int:
        return self._failures

    def send(self, event: str, payload: dict[str, Any]) -> bool:
        """Deliver *event*; returns False if delivery failed."""
        try:
            self._port.notify(event, payload)
        except Exception:
            with self._lock:
                self._failures += 1
            logger.warning("Notification %s failed for %s", event, payload.get("report_id", ""), exc_info=True)
            return False
        return True

    # ------------------------------------------------------------------
    # Background delivery
    # ------------------------------------------------------------------

    def post(self, event: str, payload: dict[str, Any]) -> None:
        """Queue *event* for the background worker."""
        with self._lock:
            if self._worker is None or not self._worker.is_alive():
                self._worker = threading.Thread(target=self._drain, name="notifier", daemon=True)
                self._worker.start()
            try:
                self._queue.put_nowait((event, payload))
            except queue.Full:
                self._failures += 1
                logger.warning("Notification queue full; dropped %s for %s", event, payload.get("report_id", ""))
                return
            self._pending += 1

    def flush(self, timeout: float = 5.0) -> bool:
        """Wait until every queued event has been attempted. False on timeout."""
        deadline = time.monotonic() + timeout
        with self._idle:
            while self._pending:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._idle.wait(remaining)
        return True

    def close(self, timeout: float = 5.0) -> None:
        """Deliver what is queued, then stop the worker."""
        with self._lock:
            worker, self._worker = self._worker, None
        if worker is None:
            return
        self.flush(timeout)
        self._queue.put(None)
        worker.join(timeout)

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                return
            event, payload = item
            self.send(event, payload)
            with self._idle:
                self._pending -= 1
                self._idle.notify_all()
