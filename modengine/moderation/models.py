"""Data models for reports and moderation actions."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class ReportStatus(str, Enum):
    PENDING = "pending"
    REVIEWING = "reviewing"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"

    @property
    def is_terminal(self) -> bool:
        return self in (ReportStatus.RESOLVED, ReportStatus.DISMISSED)


OPEN_STATUSES = (ReportStatus.PENDING, ReportStatus.REVIEWING)


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ReportCategory(str, Enum):
    SPAM = "spam"
    HARASSMENT = "harassment"
    HATE_SPEECH = "hate_speech"
    VIOLENCE = "violence"
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    PRIVACY_VIOLATION = "privacy_violation"
    OTHER = "other"


class ContentType(str, Enum):
    POST = "post"
    COMMENT = "comment"
    USER = "user"
    MESSAGE = "message"


class SanctionAction(str, Enum):
    WARNING = "warning"
    CONTENT_REMOVAL = "content_removal"
    TEMPORARY_BAN = "temporary_ban"
    PERMANENT_BAN = "permanent_ban"
    DISMISS = "dismiss"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_ts(value: str) -> datetime:
    """Parse an ISO timestamp written by this package (always UTC-aware)."""
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass
class ReportRequest:
    """An incoming, not yet validated report."""

    reporter_id: str
    reported_content_id: str
    reported_content_type: str
    category: str
    reason: str
    description: str = ""
    reported_user_id: Optional[str] = None


@dataclass
class Report:
    """A user-submitted report and its review state.

    ``version`` increases on every update and backs the optimistic
    concurrency check in ``ReportStore.update_conditional``.
    """

    id: str
    reporter_id: str
    reported_content_id: str
    reported_content_type: ContentType
    category: ReportCategory
    reason: str
    description: str
    priority: Priority
    created_at: str
    updated_at: str
    response_deadline: str
    status: ReportStatus = ReportStatus.PENDING
    reported_user_id: Optional[str] = None
    assigned_moderator: Optional[str] = None
    resolution: Optional[str] = None
    action_taken: Optional[SanctionAction] = None
    reviewed_at: Optional[str] = None
    version: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.reported_content_type, str):
            self.reported_content_type = ContentType(self.reported_content_type)
        if isinstance(self.category, str):
            self.category = ReportCategory(self.category)
        if isinstance(self.priority, str):
            self.priority = Priority(self.priority)
        if isinstance(self.status, str):
            self.status = ReportStatus(self.status)
        if isinstance(self.action_taken, str):
            self.action_taken = SanctionAction(self.action_taken)

    def is_overdue(self, now: datetime) -> bool:
        return self.status in OPEN_STATUSES and parse_ts(self.response_deadline) < now

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("reported_content_type", "category", "priority", "status", "action_taken"):
            if isinstance(data[key], Enum):
                data[key] = data[key].value
        return data

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Report:
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class ModerationAction:
    """Immutable audit record of one decision on a report."""

    id: str
    report_id: str
    moderator_id: str
    action: SanctionAction
    reason: str
    details: str
    created_at: str
    sanction_applied: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["action"] = self.action.value
        return data

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ModerationAction:
        fields = {k: v for k, v in d.items() if k in cls.__dataclass_fields__}
        fields["action"] = SanctionAction(fields["action"])
        return cls(**fields)


@dataclass
class ModerationStats:
    """Aggregate counters returned by ``GetStats``."""

    total_reports: int = 0
    pending_reports: int = 0
    reviewing_reports: int = 0
    resolved_reports: int = 0
    dismissed_reports: int = 0
    reports_within_24h: int = 0
    overdue_count: int = 0
    average_response_time_hours: float = 0.0
    by_category: dict[str, int] = field(default_factory=dict)
    by_priority: dict[str, int] = field(default_factory=dict)


@dataclass
class ContentRecord:
    """Moderation-relevant state of a post, comment or message."""

    content_type: ContentType
    content_id: str
    author_id: str = ""
    is_deleted: bool = False
    deleted_at: Optional[str] = None
    deleted_reason: Optional[str] = None

    def __post_init__(self) -> None:
        if isinstance(self.content_type, str):
            self.content_type = ContentType(self.content_type)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["content_type"] = self.content_type.value
        return data


@dataclass
class UserSanctionState:
    """Warnings and bans accumulated by a user."""

    user_id: str
    warning_count: int = 0
    last_warning_at: Optional[str] = None
    last_warning_reason: Optional[str] = None
    is_banned: bool = False
    is_permanent_ban: bool = False
    ban_reason: Optional[str] = None
    banned_at: Optional[str] = None
    ban_until: Optional[str] = None
    ban_lifted_at: Optional[str] = None

    def ban_expired(self, now: datetime) -> bool:
        """True for a temporary ban whose ``ban_until`` is at or before *now*."""
        return (
            self.is_banned
            and not self.is_permanent_ban
            and self.ban_until is not None
            and parse_ts(self.ban_until) <= now
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> UserSanctionState:
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})
