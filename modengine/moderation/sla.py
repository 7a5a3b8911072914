"""SLA monitor — periodic sweep for reports past their response deadline.

Overdue is derived from ``response_deadline`` at query time and never
stored, so the sweep only reads reports and raises escalations. The same
timer lifts temporary bans whose ``ban_until`` has passed.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from modengine.moderation.models import parse_ts, utcnow
from modengine.moderation.store import ReportStore
from modengine.notifications.port import SafeNotifier

logger = logging.getLogger(__name__)


class SLAMonitor:
    """Finds overdue reports and escalates each one to moderators."""

    def __init__(self, store: ReportStore, notifier: SafeNotifier, clock: Callable = utcnow) -> None:
        self._store = store
        self._notifier = notifier
        self._clock = clock
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def sweep_overdue(self) -> list[str]:
        """Escalate every open report past its deadline. Returns their ids."""
        now = self._clock()
        overdue = self._store.query_overdue(now)
        for report in overdue:
            hours_late = (now - parse_ts(report.response_deadline)).total_seconds() / 3600
            logger.warning(
                "Report %s overdue by %.1fh (status=%s, priority=%s)",
                report.id,
                hours_late,
                report.status.value,
                report.priority.value,
            )
            self._notifier.post(
                "report.overdue",
                {
                    "report_id": report.id,
                    "status": report.status.value,
                    "priority": report.priority.value,
                    "category": report.category.value,
                    "assigned_moderator": report.assigned_moderator,
                    "response_deadline": report.response_deadline,
                    "hours_overdue": round(hours_late, 2),
                },
            )
        if overdue:
            logger.info("SLA sweep found %d overdue report(s)", len(overdue))
        return [r.id for r in overdue]

    def lift_expired_bans(self) -> list[str]:
        """Restore users whose temporary ban has run out. Permanent bans stay."""
        now = self._clock()
        with self._store.transaction() as tx:
            lifted = tx.lift_expired_bans(now)
        for user_id in lifted:
            logger.info("Temporary ban expired for %s", user_id)
            self._notifier.post("user.ban_lifted", {"user_id": user_id, "lifted_at": now.isoformat()})
        return lifted

    # ------------------------------------------------------------------
    # Background timer
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, interval_seconds: float = 300) -> None:
        """Run ``sweep_overdue`` every *interval_seconds* on a daemon thread."""
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, args=(interval_seconds,), name="sla-monitor", daemon=True
        )
        self._thread.start()
        logger.info("SLA monitor started (interval=%ss)", interval_seconds)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("SLA monitor stopped")

    def _run(self, interval_seconds: float) -> None:
        while not self._stop.is_set():
            try:
                self.sweep_overdue()
            except Exception:
                logger.error("SLA sweep failed", exc_info=True)
            try:
                self.lift_expired_bans()
            except Exception:
                logger.error("Ban expiry sweep failed", exc_info=True)
            self._stop.wait(interval_seconds)
