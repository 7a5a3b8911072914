"""Repetition, shouting and PII-leak heuristics.

Kept apart from ``ContentFilter`` because spam heuristics change on a
different cadence than the keyword policy.
"""

from __future__ import annotations

import re
from typing import Optional

from modengine.filtering.models import SpamResult
from modengine.filtering.policy import FilterPolicy

_UPPER = re.compile(r"[A-Z]")


class SpamDetector:
    """Detects repetition spam, excessive capitals and leaked personal data."""

    def __init__(self, policy: FilterPolicy) -> None:
        self._policy = policy
        self._char_run = re.compile(rf"(\S)\1{{{policy.char_run_threshold - 1},}}")
        self._word_run = re.compile(
            rf"(?<!\S)(\S+)(?:\s+\1(?!\S)){{{policy.word_run_threshold - 1},}}"
        )
        self._pii = [(rule.name, rule.compile()) for rule in policy.pii_patterns]

    def detect(self, text: Optional[str]) -> SpamResult:
        if not text:
            return SpamResult(is_spam=False)

        reasons: list[str] = []
        if self._char_run.search(text):
            reasons.append("repeated_characters")
        if self._word_run.search(text):
            reasons.append("repeated_words")
        if self._is_shouting(text):
            reasons.append("excessive_caps")

        pii_kinds = [name for name, regex in self._pii if regex.search(text)]
        reasons.extend(f"pii:{name}" for name in pii_kinds)

        return SpamResult(
            is_spam=any(not r.startswith("pii:") for r in reasons),
            reasons=reasons,
            pii_kinds=pii_kinds,
        )

    def _is_shouting(self, text: str) -> bool:
        if len(text) <= self._policy.caps_min_length:
            return False
        return len(_UPPER.findall(text)) / len(text) > self._policy.caps_ratio
