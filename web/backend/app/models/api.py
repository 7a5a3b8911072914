"""Pydantic models for API request/response serialization.

These models mirror the modengine dataclasses and provide proper JSON
serialization for the FastAPI endpoints.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from modengine.filtering.models import Decision
from modengine.filtering.policy import FilterPolicy
from modengine.moderation.models import (
    ContentType,
    ModerationAction,
    ModerationStats,
    Priority,
    Report,
    ReportCategory,
    ReportStatus,
    SanctionAction,
    UserSanctionState,
)


# ---------------------------------------------------------------------------
# Report models
# ---------------------------------------------------------------------------


class SubmitReportRequest(BaseModel):
    """Body of POST /api/moderation/reports.

    Enum fields stay plain strings here so that bad values surface as the
    engine's own validation message.
    """

    reporter_id: str
    reported_content_id: str
    reported_content_type: str
    category: str
    reason: str
    description: str = ""
    reported_user_id: Optional[str] = None


class SubmitReportResponse(BaseModel):
    report_id: str
    priority: Priority
    response_deadline: str


class ReportResponse(BaseModel):
    """Mirrors modengine.moderation.models.Report."""

    id: str
    reporter_id: str
    reported_user_id: Optional[str] = None
    reported_content_id: str
    reported_content_type: ContentType
    category: ReportCategory
    reason: str
    description: str = ""
    status: ReportStatus
    priority: Priority
    assigned_moderator: Optional[str] = None
    resolution: Optional[str] = None
    action_taken: Optional[SanctionAction] = None
    created_at: str
    updated_at: str
    reviewed_at: Optional[str] = None
    response_deadline: str
    is_overdue: bool = False
    version: int = 0

    @classmethod
    def from_report(cls, report: Report, is_overdue: bool = False) -> ReportResponse:
        return cls(**report.to_dict(), is_overdue=is_overdue)


class AssignRequest(BaseModel):
    moderator_id: str


class ProcessRequest(BaseModel):
    action: str
    moderator_id: str
    details: str = ""


class ActionResponse(BaseModel):
    """Mirrors modengine.moderation.models.ModerationAction."""

    id: str
    report_id: str
    moderator_id: str
    action: SanctionAction
    reason: str
    details: str = ""
    created_at: str
    sanction_applied: bool = False

    @classmethod
    def from_action(cls, action: ModerationAction) -> ActionResponse:
        return cls(**action.to_dict())


class StatsResponse(BaseModel):
    """Mirrors modengine.moderation.models.ModerationStats."""

    total_reports: int = 0
    pending_reports: int = 0
    reviewing_reports: int = 0
    resolved_reports: int = 0
    dismissed_reports: int = 0
    reports_within_24h: int = 0
    overdue_count: int = 0
    average_response_time_hours: float = 0.0
    by_category: dict[str, int] = Field(default_factory=dict)
    by_priority: dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_stats(cls, stats: ModerationStats) -> StatsResponse:
        return cls(**vars(stats))


# ---------------------------------------------------------------------------
# Filtering models
# ---------------------------------------------------------------------------


class ScanRequest(BaseModel):
    text: str
    field: str = "text"
    max_length: Optional[int] = Field(default=None, gt=0)


class ViolationResponse(BaseModel):
    kind: str
    severity: str
    term: str = ""
    position: Optional[int] = None
    pattern: str = ""
    match: str = ""
    pii: bool = False


class ScanResponse(BaseModel):
    """Mirrors modengine.filtering.models.Decision."""

    allowed: bool
    outcome: str
    severity: str
    filtered_text: str
    violations: list[ViolationResponse] = Field(default_factory=list)
    policy_version: str = ""

    @classmethod
    def from_decision(cls, decision: Decision) -> ScanResponse:
        return cls(**decision.to_dict())


class PolicyResponse(BaseModel):
    """Summary of the active filter policy."""

    name: str
    version: str
    tier: str
    keyword_count: int = 0
    patterns: list[str] = Field(default_factory=list)
    pii_patterns: list[str] = Field(default_factory=list)

    @classmethod
    def from_policy(cls, policy: FilterPolicy, tier: str) -> PolicyResponse:
        return cls(
            name=policy.name,
            version=policy.version,
            tier=tier,
            keyword_count=len(policy.keywords),
            patterns=[p.name for p in policy.patterns],
            pii_patterns=[p.name for p in policy.pii_patterns],
        )


# ---------------------------------------------------------------------------
# User models
# ---------------------------------------------------------------------------


class UserStateResponse(BaseModel):
    """Mirrors modengine.moderation.models.UserSanctionState."""

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

    @classmethod
    def from_state(cls, state: UserSanctionState) -> UserStateResponse:
        return cls(**state.to_dict())


class LiftedBansResponse(BaseModel):
    lifted: list[str] = Field(default_factory=list)
