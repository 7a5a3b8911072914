"""Admission policy on top of the content filter and spam detector.

This is the one place policy knobs live.  Tiers only change which
severities force a block; the detectors are identical across tiers.
Independent of tier, any high-severity violation or any leaked personal
data always blocks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from modengine.filtering.content_filter import ContentFilter
from modengine.filtering.models import Decision, Outcome, Severity, Violation
from modengine.filtering.policy import FilterPolicy
from modengine.filtering.spam import SpamDetector

logger = logging.getLogger(__name__)


class PolicyTier(str, Enum):
    """How aggressively medium/low findings are rejected."""

    STRICT = "strict"  # any violation blocks
    MODERATE = "moderate"  # medium and above blocks
    RELAXED = "relaxed"  # only the mandatory rules block

    @property
    def reject_at(self) -> Severity:
        return _REJECT_AT[self]


_REJECT_AT = {
    PolicyTier.STRICT: Severity.LOW,
    PolicyTier.MODERATE: Severity.MEDIUM,
    PolicyTier.RELAXED: Severity.HIGH,
}


@dataclass
class ClassificationContext:
    """Where the text comes from and any length bounds for that field."""

    field: str = "text"
    min_length: int = 0
    max_length: Optional[int] = None


class PolicyClassifier:
    """Combines ``ContentFilter`` and ``SpamDetector`` into a ``Decision``."""

    def __init__(self, policy: FilterPolicy, tier: PolicyTier | str = PolicyTier.MODERATE) -> None:
        self._policy = policy
        self._tier = PolicyTier(tier)
        self._filter = ContentFilter(policy)
        self._spam = SpamDetector(policy)

    @property
    def policy(self) -> FilterPolicy:
        return self._policy

    @property
    def tier(self) -> PolicyTier:
        return self._tier

    def with_policy(self, policy: FilterPolicy) -> PolicyClassifier:
        """Return a classifier for a new policy version, same tier."""
        return PolicyClassifier(policy, self._tier)

    def classify(self, text: Optional[str], context: Optional[ClassificationContext] = None) -> Decision:
        context = context or ClassificationContext()
        text = text or ""

        result = self._filter.scan(text)
        spam = self._spam.detect(text)

        violations = list(result.violations)
        if "excessive_caps" in spam.reasons:
            violations.append(Violation(kind="spam", severity=Severity.MEDIUM, term="excessive_caps"))
        if len(text) < context.min_length or (
            context.max_length is not None and len(text) > context.max_length
        ):
            violations.append(Violation(kind="length", severity=Severity.MEDIUM, term=f"{len(text)} chars"))

        severity = max((v.severity for v in violations), default=Severity.LOW)
        has_pii = bool(spam.pii_kinds) or any(v.pii for v in violations)
        filtered_text = result.filtered_text if result.filtered_text is not None else text

        if violations and (severity == Severity.HIGH or has_pii or severity >= self._tier.reject_at):
            outcome = Outcome.BLOCK
            allowed = False
        elif not violations:
            outcome = Outcome.ALLOW
            allowed = True
        else:
            outcome = Outcome.ALLOW_WITH_REDACTION
            allowed = severity == Severity.LOW

        if violations:
            preview = filtered_text[:100] + ("..." if len(filtered_text) > 100 else "")
            logger.warning(
                "Content violation in %s: outcome=%s severity=%s kinds=%s preview=%r",
                context.field,
                outcome.value,
                severity.label,
                sorted({v.kind for v in violations}),
                preview,
            )

        return Decision(
            allowed=allowed,
            outcome=outcome,
            severity=severity,
            filtered_text=filtered_text,
            violations=violations,
            policy_version=f"{self._policy.name}@{self._policy.version}",
        )
