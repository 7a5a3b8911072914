"""Report intake — validation, sanitization, prioritization, deadline."""

from __future__ import annotations

import logging
import uuid
from typing import Callable, Iterable, Optional

from modengine.config import EngineConfig
from modengine.filtering.classifier import ClassificationContext, PolicyClassifier
from modengine.moderation.errors import DuplicateReportError, RateLimitedError, ValidationError
from modengine.moderation.models import (
    ContentType,
    Priority,
    Report,
    ReportCategory,
    ReportRequest,
    utcnow,
)
from modengine.moderation.ratelimit import RateLimiter
from modengine.moderation.store import ReportStore
from modengine.notifications.port import SafeNotifier

logger = logging.getLogger(__name__)

URGENT_CATEGORIES = frozenset(
    {ReportCategory.VIOLENCE, ReportCategory.HATE_SPEECH, ReportCategory.HARASSMENT}
)
MEDIUM_CATEGORIES = frozenset(
    {ReportCategory.INAPPROPRIATE_CONTENT, ReportCategory.PRIVACY_VIOLATION}
)


def determine_priority(
    category: ReportCategory, filtered_description: str, high_priority_keywords: Iterable[str]
) -> Priority:
    """Priority as a pure function of category and the sanitized description."""
    if category in URGENT_CATEGORIES:
        return Priority.URGENT
    if any(k and k in filtered_description for k in high_priority_keywords):
        return Priority.HIGH
    if category in MEDIUM_CATEGORIES:
        return Priority.MEDIUM
    return Priority.LOW


class ReportIntake:
    """Turns a ``ReportRequest`` into a stored ``Report``.

    Abusive text inside a report is never a reason to reject it: the report
    is accepted with its reason and description replaced by the filtered
    text whenever the classifier found anything.
    """

    def __init__(
        self,
        store: ReportStore,
        classifier: PolicyClassifier,
        notifier: SafeNotifier,
        config: EngineConfig,
        rate_limiter: Optional[RateLimiter] = None,
        clock: Callable = utcnow,
    ) -> None:
        self.store = store
        self.classifier = classifier
        self.notifier = notifier
        self.config = config
        self.rate_limiter = rate_limiter
        self._clock = clock

    # -- validation ----------------------------------------------------------

    def _validate(self, request: ReportRequest) -> tuple[ContentType, ReportCategory]:
        issues: list[str] = []

        for name in ("reporter_id", "reported_content_id", "reason"):
            value = getattr(request, name)
            if not isinstance(value, str) or not value.strip():
                issues.append(f"{name} is required")

        content_type = category = None
        try:
            content_type = ContentType(request.reported_content_type)
        except ValueError:
            issues.append(f"Invalid reported_content_type: {request.reported_content_type!r}")
        try:
            category = ReportCategory(request.category)
        except ValueError:
            issues.append(f"Invalid category: {request.category!r}")

        if isinstance(request.reason, str) and len(request.reason) > self.config.reason_max_length:
            issues.append(f"reason exceeds {self.config.reason_max_length} characters")
        if request.description is not None and not isinstance(request.description, str):
            issues.append("description must be a string")
        elif len(request.description or "") > self.config.description_max_length:
            issues.append(f"description exceeds {self.config.description_max_length} characters")

        if issues:
            raise ValidationError("; ".join(issues))
        return content_type, category

    # -- public API ----------------------------------------------------------

    def submit(self, request: ReportRequest) -> str:
        """Validate, sanitize and store a report. Returns the new report id."""
        content_type, category = self._validate(request)
        now = self._clock()
        reporter_id = request.reporter_id.strip()
        content_id = request.reported_content_id.strip()

        if self.store.find_open_report(reporter_id, content_type, content_id) is not None:
            raise DuplicateReportError(
                f"Reporter {reporter_id} already has an open report on {content_type.value} {content_id}"
            )
        if self.rate_limiter is not None and not self.rate_limiter.acquire(reporter_id, now):
            raise RateLimitedError(reporter_id, self.rate_limiter.retry_after(reporter_id, now))

        reason = self.classifier.classify(request.reason, ClassificationContext(field="reason"))
        description = self.classifier.classify(
            request.description or "", ClassificationContext(field="description")
        )
        priority = determine_priority(
            category, description.filtered_text, self.config.high_priority_keywords
        )

        reported_user_id = request.reported_user_id or None
        if reported_user_id is None and content_type == ContentType.USER:
            reported_user_id = content_id

        timestamp = now.isoformat()
        report = Report(
            id=uuid.uuid4().hex,
            reporter_id=reporter_id,
            reported_user_id=reported_user_id,
            reported_content_id=content_id,
            reported_content_type=content_type,
            category=category,
            reason=reason.filtered_text,
            description=description.filtered_text,
            priority=priority,
            created_at=timestamp,
            updated_at=timestamp,
            response_deadline=(now + self.config.sla_window).isoformat(),
        )
        # Duplicate check repeated under the store lock
        self.store.create_unless_open(report)
        logger.info(
            "Report %s created: category=%s priority=%s content=%s:%s",
            report.id,
            category.value,
            priority.value,
            content_type.value,
            content_id,
        )

        if priority == Priority.URGENT:
            self.notifier.send(
                "report.urgent",
                {
                    "report_id": report.id,
                    "category": category.value,
                    "priority": priority.value,
                    "reported_content_type": content_type.value,
                    "response_deadline": report.response_deadline,
                },
            )
        return report.id
