"""ModerationEngine — one object exposing every moderation operation.

Wires the classifier, store, intake, queue, executor and SLA monitor from
an ``EngineConfig`` so the CLI and the HTTP layer share one construction
path.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from modengine.config import EngineConfig
from modengine.filtering.classifier import ClassificationContext, PolicyClassifier
from modengine.filtering.models import Decision
from modengine.filtering.policy import FilterPolicy, load_policy
from modengine.moderation.executor import ActionExecutor
from modengine.moderation.intake import ReportIntake
from modengine.moderation.models import (
    ContentRecord,
    ContentType,
    ModerationAction,
    ModerationStats,
    Report,
    ReportRequest,
    SanctionAction,
    UserSanctionState,
    utcnow,
)
from modengine.moderation.queue import ModerationQueue
from modengine.moderation.ratelimit import RateLimiter, SlidingWindowRateLimiter
from modengine.moderation.sla import SLAMonitor
from modengine.moderation.store import JsonReportStore, ReportStore
from modengine.notifications.port import LogNotifier, NotificationPort, SafeNotifier
from modengine.notifications.webhook import WebhookNotifier

logger = logging.getLogger(__name__)


class ModerationEngine:
    """Facade over the moderation components."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        store: Optional[ReportStore] = None,
        notifier: Optional[NotificationPort] = None,
        rate_limiter: Optional[RateLimiter] = None,
        policy: Optional[FilterPolicy] = None,
        clock: Callable = utcnow,
    ) -> None:
        self.config = config or EngineConfig()
        self._clock = clock
        self.store = store or JsonReportStore(self.config.store_dir)
        self.notifier = SafeNotifier(notifier or LogNotifier())
        self._policy_lock = threading.Lock()

        self.classifier = PolicyClassifier(
            policy or self.config.load_filter_policy(), self.config.policy_tier
        )
        if rate_limiter is None:
            rate_limiter = SlidingWindowRateLimiter(
                self.config.rate_limit_max_reports, self.config.rate_limit_window
            )
        self.intake = ReportIntake(
            self.store, self.classifier, self.notifier, self.config, rate_limiter, clock
        )
        self.queue = ModerationQueue(self.store, self.config.sla_window_hours, clock)
        self.executor = ActionExecutor(
            self.store, self.notifier, self.config.temporary_ban_duration, clock
        )
        self.sla_monitor = SLAMonitor(self.store, self.notifier, clock)

    def now(self):
        """Current time according to the engine clock."""
        return self._clock()

    @classmethod
    def from_config(cls, config: EngineConfig, webhooks: bool = True) -> ModerationEngine:
        """Build an engine with file-backed storage under ``config.home_dir``.

        With *webhooks* set, notifications go to the hooks registered in
        ``config.webhooks_dir``; otherwise they are only logged.
        """
        notifier: NotificationPort = (
            WebhookNotifier(config.webhooks_dir) if webhooks else LogNotifier()
        )
        return cls(config=config, notifier=notifier)

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    @property
    def policy(self) -> FilterPolicy:
        return self.classifier.policy

    def reload_policy(self, policy: Optional[FilterPolicy] = None) -> FilterPolicy:
        """Swap in a new filter policy version for subsequent requests.

        Without an argument the policy file named in the config is re-read.
        Requests already being classified finish against the old version.
        """
        if policy is None:
            policy = load_policy(self.config.policy_path)
        with self._policy_lock:
            classifier = self.classifier.with_policy(policy)
            self.classifier = classifier
            self.intake.classifier = classifier
        logger.info("Filter policy reloaded: %s@%s", policy.name, policy.version)
        return policy

    def scan_text(self, text: str, context: Optional[ClassificationContext] = None) -> Decision:
        return self.classifier.classify(text, context)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def submit_report(self, request: ReportRequest) -> str:
        return self.intake.submit(request)

    def get_report(self, report_id: str) -> Report:
        return self.queue.get(report_id)

    def list_reports(self, **filters) -> list[Report]:
        return self.queue.list_reports(**filters)

    def list_overdue(self) -> list[Report]:
        return self.queue.list_overdue()

    def list_by_reporter(self, reporter_id: str) -> list[Report]:
        return self.queue.list_by_reporter(reporter_id)

    def list_against_user(self, user_id: str) -> list[Report]:
        return self.queue.list_against_user(user_id)

    def assign_report(self, report_id: str, moderator_id: str) -> Report:
        return self.queue.assign(report_id, moderator_id)

    def process_report(
        self, report_id: str, action: SanctionAction | str, moderator_id: str, details: str = ""
    ) -> ModerationAction:
        return self.executor.process(report_id, action, moderator_id, details)

    def list_actions(self, report_id: Optional[str] = None) -> list[ModerationAction]:
        return self.queue.list_actions(report_id)

    def get_stats(self) -> ModerationStats:
        return self.queue.stats()

    # ------------------------------------------------------------------
    # Content and users
    # ------------------------------------------------------------------

    def register_content(
        self, content_type: ContentType | str, content_id: str, author_id: str = ""
    ) -> ContentRecord:
        """Make content known to the engine so it can be removed and attributed."""
        record = ContentRecord(content_type=content_type, content_id=content_id, author_id=author_id)
        with self.store.transaction() as tx:
            existing = tx.get_content(record.content_type, content_id)
            if existing is not None:
                return existing
            tx.put_content(record)
        return record

    def get_content(self, content_type: ContentType | str, content_id: str) -> Optional[ContentRecord]:
        with self.store.transaction() as tx:
            return tx.get_content(ContentType(content_type), content_id)

    def get_user_state(self, user_id: str) -> UserSanctionState:
        """Sanction state of *user_id*; an expired temporary ban is lifted on read."""
        with self.store.transaction() as tx:
            if tx.lift_expired_ban(user_id, self._clock()):
                logger.info("Temporary ban expired for %s", user_id)
            return tx.get_user(user_id)

    def lift_expired_bans(self) -> list[str]:
        return self.sla_monitor.lift_expired_bans()

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    def sweep_overdue(self) -> list[str]:
        return self.sla_monitor.sweep_overdue()

    def start(self) -> None:
        self.sla_monitor.start(self.config.sweep_interval_seconds)

    def stop(self) -> None:
        self.sla_monitor.stop()
        self.close()

    def close(self) -> None:
        """Deliver queued notifications and stop the delivery worker."""
        self.notifier.close()
