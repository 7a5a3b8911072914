"""Action executor — applies a moderator's decision to a report.

The report transition, the sanction and the audit record are committed in
one store transaction, guarded by the version read before the decision.
Either all three land or none do; a racing moderator gets
``ConcurrentModificationError`` instead of a second sanction.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Optional

from modengine.moderation.errors import (
    AlreadyResolvedError,
    ConcurrentModificationError,
    NotFoundError,
    ValidationError,
)
from modengine.moderation.models import (
    ContentType,
    ModerationAction,
    Report,
    ReportStatus,
    SanctionAction,
    utcnow,
)
from modengine.moderation.state import can_transition, terminal_status_for
from modengine.moderation.store import ReportStore, StoreTransaction
from modengine.notifications.port import SafeNotifier

logger = logging.getLogger(__name__)

USER_SANCTIONS = frozenset(
    {SanctionAction.WARNING, SanctionAction.TEMPORARY_BAN, SanctionAction.PERMANENT_BAN}
)


class ActionExecutor:
    """Executes ``ProcessReport``."""

    def __init__(
        self,
        store: ReportStore,
        notifier: SafeNotifier,
        temporary_ban_duration: timedelta = timedelta(days=7),
        clock: Callable = utcnow,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._ban_duration = temporary_ban_duration
        self._clock = clock

    def process(
        self,
        report_id: str,
        action: SanctionAction | str,
        moderator_id: str,
        details: str = "",
    ) -> ModerationAction:
        """Resolve or dismiss *report_id* and apply the sanction.

        Returns the audit record written for the decision.
        """
        try:
            action = SanctionAction(action)
        except ValueError:
            raise ValidationError(f"Invalid action: {action!r}") from None
        if not moderator_id:
            raise ValidationError("moderator_id is required")

        report = self._store.get_by_id(report_id)
        if report is None:
            raise NotFoundError(f"Report {report_id} not found")
        if report.status.is_terminal:
            raise AlreadyResolvedError(f"Report {report_id} is already {report.status.value}")

        target = terminal_status_for(action)
        if not can_transition(report.status, target):
            raise AlreadyResolvedError(
                f"Report {report_id} cannot move from {report.status.value} to {target.value}"
            )

        now = self._clock()
        timestamp = now.isoformat()
        with self._store.transaction() as tx:
            current = tx.get_report(report_id)
            if current is None:
                raise NotFoundError(f"Report {report_id} not found")
            if current.version != report.version:
                raise ConcurrentModificationError(
                    f"Report {report_id} changed while being processed; reload and retry"
                )

            sanctioned_user, applied = self._apply_sanction(tx, current, action, details, now)
            record = ModerationAction(
                id=uuid.uuid4().hex,
                report_id=report_id,
                moderator_id=moderator_id,
                action=action,
                reason=f"{current.category.value}: {action.value}",
                details=details,
                created_at=timestamp,
                sanction_applied=applied,
            )
            tx.append_action(record)
            tx.put_report(
                replace(
                    current,
                    status=target,
                    assigned_moderator=moderator_id,
                    action_taken=action,
                    resolution=details,
                    reviewed_at=timestamp,
                    updated_at=timestamp,
                    version=current.version + 1,
                )
            )

        logger.info(
            "Report %s %s by %s: action=%s applied=%s",
            report_id,
            target.value,
            moderator_id,
            action.value,
            applied,
        )
        self._notify_outcome(current, action, target, details, sanctioned_user, applied, now)
        return record

    # ------------------------------------------------------------------
    # Sanctions
    # ------------------------------------------------------------------

    @staticmethod
    def _target_user(tx: StoreTransaction, report: Report) -> Optional[str]:
        if report.reported_user_id:
            return report.reported_user_id
        if report.reported_content_type == ContentType.USER:
            return report.reported_content_id
        content = tx.get_content(report.reported_content_type, report.reported_content_id)
        if content is not None and content.author_id:
            return content.author_id
        return None

    def _apply_sanction(
        self,
        tx: StoreTransaction,
        report: Report,
        action: SanctionAction,
        details: str,
        now: datetime,
    ) -> tuple[Optional[str], bool]:
        """Apply *action* inside *tx*. Returns (sanctioned user, whether state changed)."""
        if action == SanctionAction.DISMISS:
            return None, False

        user_id = self._target_user(tx, report)
        reason = details or f"Report {report.id}: {report.category.value}"

        if action == SanctionAction.CONTENT_REMOVAL:
            if report.reported_content_type == ContentType.USER:
                raise ValidationError("content_removal does not apply to user reports")
            applied = tx.soft_delete_content(
                report.reported_content_type, report.reported_content_id, reason, now
            )
            return user_id, applied

        if user_id is None:
            raise ValidationError(f"Report {report.id} has no reported user to sanction")

        if action == SanctionAction.WARNING:
            tx.increment_warning(user_id, reason, now)
            return user_id, True
        if action == SanctionAction.TEMPORARY_BAN:
            return user_id, tx.apply_temporary_ban(user_id, reason, now, now + self._ban_duration)
        return user_id, tx.apply_permanent_ban(user_id, reason, now)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _notify_outcome(
        self,
        report: Report,
        action: SanctionAction,
        status: ReportStatus,
        details: str,
        sanctioned_user: Optional[str],
        applied: bool,
        now: datetime,
    ) -> None:
        self._notifier.post(
            f"report.{status.value}",
            {
                "report_id": report.id,
                "user_id": report.reporter_id,
                "action": action.value,
                "resolution": details,
            },
        )
        if not applied or sanctioned_user is None or sanctioned_user == report.reporter_id:
            return
        payload = {
            "report_id": report.id,
            "user_id": sanctioned_user,
            "action": action.value,
            "details": details,
        }
        if action == SanctionAction.TEMPORARY_BAN:
            payload["ban_until"] = (now + self._ban_duration).isoformat()
        self._notifier.post("user.sanctioned", payload)
