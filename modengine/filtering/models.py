"""Data models for text filtering and classification."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional


class Severity(IntEnum):
    """Ordered severity tier. Combine with ``max()``."""

    LOW = 0
    MEDIUM = 1
    HIGH = 2

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: "str | int | Severity") -> Severity:
        if isinstance(value, Severity):
            return value
        if isinstance(value, int):
            return cls(value)
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown severity: {value!r}") from None


class Outcome(str, Enum):
    """Admission outcome produced by the classifier."""

    ALLOW = "allow"
    ALLOW_WITH_REDACTION = "allow-with-redaction"
    BLOCK = "block"


@dataclass(frozen=True)
class Violation:
    """A single detected policy violation.

    ``kind`` is one of ``keyword``, ``pattern``, ``char_run``, ``word_run``,
    ``spam`` or ``length``.  Keyword violations carry ``term`` and
    ``position``; pattern violations carry ``pattern`` and ``match``.
    """

    kind: str
    severity: Severity
    term: str = ""
    position: int = -1
    pattern: str = ""
    match: str = ""
    pii: bool = False

    def to_dict(self) -> dict:
        data = {"kind": self.kind, "severity": self.severity.label}
        if self.term:
            data["term"] = self.term
        if self.position >= 0:
            data["position"] = self.position
        if self.pattern:
            data["pattern"] = self.pattern
        if self.match:
            data["match"] = self.match
        if self.pii:
            data["pii"] = True
        return data


@dataclass
class FilterResult:
    """Result of ``ContentFilter.scan``."""

    is_allowed: bool
    violations: list[Violation] = field(default_factory=list)
    severity: Severity = Severity.LOW
    filtered_text: Optional[str] = None


@dataclass
class SpamResult:
    """Result of ``SpamDetector.detect``."""

    is_spam: bool
    reasons: list[str] = field(default_factory=list)
    pii_kinds: list[str] = field(default_factory=list)


@dataclass
class Decision:
    """Admission decision for a piece of text."""

    allowed: bool
    outcome: Outcome
    severity: Severity
    filtered_text: str
    violations: list[Violation] = field(default_factory=list)
    policy_version: str = ""

    @property
    def has_pii(self) -> bool:
        return any(v.pii for v in self.violations)

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "outcome": self.outcome.value,
            "severity": self.severity.label,
            "filtered_text": self.filtered_text,
            "violations": [v.to_dict() for v in self.violations],
            "policy_version": self.policy_version,
        }
