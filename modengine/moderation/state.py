"""Report state machine.

Status only moves forward.  A pending report may be resolved or dismissed
directly without passing through review.
"""

from __future__ import annotations

from modengine.moderation.models import ReportStatus, SanctionAction

TRANSITIONS: dict[ReportStatus, frozenset[ReportStatus]] = {
    ReportStatus.PENDING: frozenset(
        {ReportStatus.REVIEWING, ReportStatus.RESOLVED, ReportStatus.DISMISSED}
    ),
    ReportStatus.REVIEWING: frozenset({ReportStatus.RESOLVED, ReportStatus.DISMISSED}),
    ReportStatus.RESOLVED: frozenset(),
    ReportStatus.DISMISSED: frozenset(),
}


def can_transition(current: ReportStatus, target: ReportStatus) -> bool:
    """Return True if *current* -> *target* is a legal transition."""
    return target in TRANSITIONS[current]


def can_assign(current: ReportStatus) -> bool:
    """Only open reports may be assigned or reassigned."""
    return not current.is_terminal


def terminal_status_for(action: SanctionAction) -> ReportStatus:
    """``dismiss`` ends in ``dismissed``; every other action in ``resolved``."""
    if action == SanctionAction.DISMISS:
        return ReportStatus.DISMISSED
    return ReportStatus.RESOLVED
