"""Moderation router -- report intake, queue, decisions, stats and scanning."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from modengine.config import load_config
from modengine.engine import ModerationEngine
from modengine.filtering.classifier import ClassificationContext
from modengine.moderation.models import ReportRequest
from web.backend.app.models.api import (
    ActionResponse,
    AssignRequest,
    LiftedBansResponse,
    PolicyResponse,
    ProcessRequest,
    ReportResponse,
    ScanRequest,
    ScanResponse,
    StatsResponse,
    SubmitReportRequest,
    SubmitReportResponse,
    UserStateResponse,
)

router = APIRouter(prefix="/api/moderation", tags=["moderation"])


# ---------------------------------------------------------------------------
# Engine singleton
# ---------------------------------------------------------------------------

_engine: ModerationEngine | None = None


def get_engine() -> ModerationEngine:
    global _engine
    if _engine is None:
        _engine = ModerationEngine.from_config(load_config())
    return _engine


def _report_response(engine: ModerationEngine, report) -> ReportResponse:
    return ReportResponse.from_report(report, report.is_overdue(engine.now()))


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


@router.post(
    "/reports",
    response_model=SubmitReportResponse,
    summary="Submit a report",
    status_code=status.HTTP_201_CREATED,
)
def submit_report(body: SubmitReportRequest, engine: ModerationEngine = Depends(get_engine)):
    """Validate, sanitize and queue a report about content or a user."""
    report_id = engine.submit_report(ReportRequest(**body.model_dump()))
    report = engine.get_report(report_id)
    return SubmitReportResponse(
        report_id=report_id,
        priority=report.priority,
        response_deadline=report.response_deadline,
    )


@router.get(
    "/reports",
    response_model=list[ReportResponse],
    summary="List reports",
)
def list_reports(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    priority: Optional[str] = None,
    category: Optional[str] = None,
    reporter_id: Optional[str] = None,
    reported_user_id: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
    newest_first: bool = True,
    engine: ModerationEngine = Depends(get_engine),
):
    """List reports filtered by status, priority and category.

    ``reporter_id`` and ``reported_user_id`` return a user's full history
    and ignore the other filters.
    """
    if reporter_id:
        reports = engine.list_by_reporter(reporter_id)
    elif reported_user_id:
        reports = engine.list_against_user(reported_user_id)
    else:
        reports = engine.list_reports(
            status=status_filter,
            priority=priority,
            category=category,
            limit=limit,
            offset=offset,
            newest_first=newest_first,
        )
    return [_report_response(engine, r) for r in reports]


@router.get(
    "/reports/overdue",
    response_model=list[ReportResponse],
    summary="List overdue reports",
)
def list_overdue(engine: ModerationEngine = Depends(get_engine)):
    """Open reports past their response deadline, oldest deadline first."""
    return [ReportResponse.from_report(r, is_overdue=True) for r in engine.list_overdue()]


@router.get(
    "/reports/{report_id}",
    response_model=ReportResponse,
    summary="Get a report",
)
def get_report(report_id: str, engine: ModerationEngine = Depends(get_engine)):
    return _report_response(engine, engine.get_report(report_id))


@router.post(
    "/reports/{report_id}/assign",
    response_model=ReportResponse,
    summary="Assign a moderator",
)
def assign_report(
    report_id: str, body: AssignRequest, engine: ModerationEngine = Depends(get_engine)
):
    """Assign a moderator; a pending report moves to reviewing."""
    return _report_response(engine, engine.assign_report(report_id, body.moderator_id))


@router.post(
    "/reports/{report_id}/process",
    response_model=ActionResponse,
    summary="Resolve or dismiss a report",
)
def process_report(
    report_id: str, body: ProcessRequest, engine: ModerationEngine = Depends(get_engine)
):
    """Apply the moderator's decision and return the audit record."""
    action = engine.process_report(report_id, body.action, body.moderator_id, body.details)
    return ActionResponse.from_action(action)


@router.get(
    "/reports/{report_id}/actions",
    response_model=list[ActionResponse],
    summary="Audit trail of a report",
)
def list_actions(report_id: str, engine: ModerationEngine = Depends(get_engine)):
    engine.get_report(report_id)
    return [ActionResponse.from_action(a) for a in engine.list_actions(report_id)]


# ---------------------------------------------------------------------------
# Stats and scanning
# ---------------------------------------------------------------------------


@router.get("/stats", response_model=StatsResponse, summary="Moderation statistics")
def get_stats(engine: ModerationEngine = Depends(get_engine)):
    return StatsResponse.from_stats(engine.get_stats())


@router.post("/scan", response_model=ScanResponse, summary="Classify text")
def scan_text(body: ScanRequest, engine: ModerationEngine = Depends(get_engine)):
    """Run text through the active filter policy without storing anything."""
    decision = engine.scan_text(
        body.text, ClassificationContext(field=body.field, max_length=body.max_length)
    )
    return ScanResponse.from_decision(decision)


@router.get("/policy", response_model=PolicyResponse, summary="Active filter policy")
def get_policy(engine: ModerationEngine = Depends(get_engine)):
    return PolicyResponse.from_policy(engine.policy, engine.config.policy_tier.value)


@router.post("/policy/reload", response_model=PolicyResponse, summary="Reload the filter policy")
def reload_policy(engine: ModerationEngine = Depends(get_engine)):
    """Re-read the configured policy file; later requests use the new version."""
    try:
        policy = engine.reload_policy()
    except (OSError, ValueError) as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    return PolicyResponse.from_policy(policy, engine.config.policy_tier.value)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/users/{user_id}", response_model=UserStateResponse, summary="User sanction state")
def get_user_state(user_id: str, engine: ModerationEngine = Depends(get_engine)):
    return UserStateResponse.from_state(engine.get_user_state(user_id))


@router.post("/bans/lift-expired", response_model=LiftedBansResponse, summary="Lift expired temporary bans")
def lift_expired_bans(engine: ModerationEngine = Depends(get_engine)):
    return LiftedBansResponse(lifted=engine.lift_expired_bans())
