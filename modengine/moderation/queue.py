"""Moderation queue — listing, assignment and statistics over the store."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Callable, Optional

from modengine.moderation.errors import AlreadyResolvedError, NotFoundError, ValidationError
from modengine.moderation.models import (
    ModerationAction,
    ModerationStats,
    Priority,
    Report,
    ReportCategory,
    ReportStatus,
    parse_ts,
    utcnow,
)
from modengine.moderation.state import can_assign, can_transition
from modengine.moderation.store import ReportStore

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class ModerationQueue:
    """Read side of the report lifecycle plus moderator assignment."""

    def __init__(self, store: ReportStore, sla_window_hours: float = 24, clock: Callable = utcnow) -> None:
        self._store = store
        self._sla_hours = sla_window_hours
        self._clock = clock

    def get(self, report_id: str) -> Report:
        report = self._store.get_by_id(report_id)
        if report is None:
            raise NotFoundError(f"Report {report_id} not found")
        return report

    def list_reports(
        self,
        status: Optional[ReportStatus | str] = None,
        priority: Optional[Priority | str] = None,
        category: Optional[ReportCategory | str] = None,
        limit: int = 20,
        offset: int = 0,
        newest_first: bool = True,
    ) -> list[Report]:
        """List reports matching the filters, ordered by ``created_at``."""
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValidationError("offset must not be negative")
        try:
            return self._store.query_by_filter(
                status=ReportStatus(status) if status else None,
                priority=Priority(priority) if priority else None,
                category=ReportCategory(category) if category else None,
                limit=limit,
                offset=offset,
                newest_first=newest_first,
            )
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

    def list_overdue(self) -> list[Report]:
        """Open reports whose response deadline has passed, oldest deadline first."""
        return self._store.query_overdue(self._clock())

    def list_by_reporter(self, reporter_id: str) -> list[Report]:
        return self._store.query_by_filter(reporter_id=reporter_id)

    def list_against_user(self, user_id: str) -> list[Report]:
        return self._store.query_by_filter(reported_user_id=user_id)

    def list_actions(self, report_id: Optional[str] = None) -> list[ModerationAction]:
        return self._store.list_actions(report_id)

    def assign(self, report_id: str, moderator_id: str) -> Report:
        """Assign a moderator, moving a pending report into review."""
        if not moderator_id:
            raise ValidationError("moderator_id is required")
        report = self.get(report_id)
        if not can_assign(report.status):
            raise AlreadyResolvedError(f"Report {report_id} is already {report.status.value}")

        status = report.status
        if can_transition(status, ReportStatus.REVIEWING):
            status = ReportStatus.REVIEWING
        updated = self._store.update_conditional(
            report_id,
            report.version,
            status=status,
            assigned_moderator=moderator_id,
            updated_at=self._clock().isoformat(),
        )
        logger.info("Report %s assigned to %s (%s)", report_id, moderator_id, status.value)
        return updated

    def stats(self) -> ModerationStats:
        now = self._clock()
        reports = self._store.query_by_filter()
        by_status = Counter(r.status for r in reports)

        response_hours = [
            (parse_ts(r.reviewed_at) - parse_ts(r.created_at)).total_seconds() / 3600
            for r in reports
            if r.status.is_terminal and r.reviewed_at
        ]
        return ModerationStats(
            total_reports=len(reports),
            pending_reports=by_status[ReportStatus.PENDING],
            reviewing_reports=by_status[ReportStatus.REVIEWING],
            resolved_reports=by_status[ReportStatus.RESOLVED],
            dismissed_reports=by_status[ReportStatus.DISMISSED],
            reports_within_24h=sum(1 for h in response_hours if h <= self._sla_hours),
            overdue_count=sum(1 for r in reports if r.is_overdue(now)),
            average_response_time_hours=(
                round(sum(response_hours) / len(response_hours), 2) if response_hours else 0.0
            ),
            by_category=dict(Counter(r.category.value for r in reports)),
            by_priority=dict(Counter(r.priority.value for r in reports)),
        )
