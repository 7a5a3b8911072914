"""Keyword and pattern content filter.

``ContentFilter`` never raises on input and never blocks anything itself: it
masks keywords, redacts pattern matches, truncates repetition runs, and
reports what it found.  Deciding what to do with the result is the
classifier's job.
"""

from __future__ import annotations

import re
from typing import Optional

from modengine.filtering.models import FilterResult, Severity, Violation
from modengine.filtering.policy import FilterPolicy, KeywordRule, PatternRule

MASK_CHAR = "*"


class ContentFilter:
    """Scans text against a ``FilterPolicy``."""

    def __init__(self, policy: FilterPolicy) -> None:
        self._policy = policy
        self._keywords: list[tuple[KeywordRule, re.Pattern[str]]] = [
            (rule, re.compile(re.escape(rule.term), re.IGNORECASE))
            for rule in policy.keywords
            if rule.term
        ]
        self._patterns: list[tuple[PatternRule, re.Pattern[str]]] = [
            (rule, rule.compile()) for rule in policy.patterns
        ]
        # Masked keywords are excluded so masking never reads as a run.
        self._char_run = re.compile(
            rf"([^\s{re.escape(MASK_CHAR)}])\1{{{policy.char_run_threshold - 1},}}"
        )
        self._word_run = re.compile(
            rf"(?<!\S)(\S+)(?:\s+\1(?!\S)){{{policy.word_run_threshold - 1},}}"
        )

    @property
    def policy(self) -> FilterPolicy:
        return self._policy

    def scan(self, text: Optional[str]) -> FilterResult:
        """Scan *text* and return the violations plus the filtered text."""
        if not text:
            return FilterResult(is_allowed=True)

        violations: list[Violation] = []
        filtered = text

        # 1. Denylisted keywords -> equal-length mask
        for rule, regex in self._keywords:
            for m in regex.finditer(filtered):
                violations.append(
                    Violation(kind="keyword", severity=rule.severity, term=rule.term, position=m.start())
                )
            filtered = regex.sub(lambda m: MASK_CHAR * len(m.group()), filtered)

        # 2. Patterns -> fixed redaction marker
        marker = self._policy.redaction_marker
        for rule, regex in self._patterns:
            for m in regex.finditer(filtered):
                violations.append(
                    Violation(
                        kind="pattern",
                        severity=rule.severity,
                        pattern=rule.name,
                        match=m.group(),
                        pii=rule.pii,
                    )
                )
            filtered = regex.sub(lambda m: marker, filtered)

        # 3. Character runs -> truncated to run_keep
        keep = self._policy.run_keep
        for m in self._char_run.finditer(filtered):
            violations.append(
                Violation(kind="char_run", severity=Severity.MEDIUM, term=m.group(1), position=m.start())
            )
        filtered = self._char_run.sub(lambda m: m.group(1) * keep, filtered)

        # 4. Word runs -> truncated to run_keep
        for m in self._word_run.finditer(filtered):
            violations.append(
                Violation(kind="word_run", severity=Severity.MEDIUM, term=m.group(1), position=m.start())
            )
        filtered = self._word_run.sub(lambda m: " ".join([m.group(1)] * keep), filtered)

        severity = max((v.severity for v in violations), default=Severity.LOW)
        return FilterResult(
            is_allowed=not violations or severity == Severity.LOW,
            violations=violations,
            severity=severity,
            filtered_text=filtered if violations else None,
        )
