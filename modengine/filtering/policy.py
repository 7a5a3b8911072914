"""Filter policy — the versioned denylist and pattern set.

A policy is immutable once built.  Changing the denylist means producing a
new policy version (``FilterPolicy.revise``) and handing it to a new
``ContentFilter``/``PolicyClassifier``; nothing is edited in place.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Optional

import yaml

from modengine.filtering.models import Severity

DEFAULT_POLICY_PATH = Path(__file__).parent / "policies" / "default.yaml"


@dataclass(frozen=True)
class KeywordRule:
    """A denylisted term, matched case-insensitively as a substring."""

    term: str
    severity: Severity = Severity.LOW
    category: str = ""


@dataclass(frozen=True)
class PatternRule:
    """A regex whose matches are replaced by the redaction marker."""

    name: str
    regex: str
    severity: Severity = Severity.MEDIUM
    pii: bool = False

    def compile(self) -> re.Pattern[str]:
        return re.compile(self.regex, re.IGNORECASE)


@dataclass(frozen=True)
class FilterPolicy:
    """A complete, versioned filter configuration."""

    name: str
    version: str = "1.0.0"
    keywords: tuple[KeywordRule, ...] = field(default_factory=tuple)
    patterns: tuple[PatternRule, ...] = field(default_factory=tuple)
    redaction_marker: str = "[차단된 내용]"
    char_run_threshold: int = 10
    word_run_threshold: int = 5
    run_keep: int = 3
    caps_ratio: float = 0.7
    caps_min_length: int = 10

    def __post_init__(self) -> None:
        if self.char_run_threshold < 2 or self.word_run_threshold < 2:
            raise ValueError("Run thresholds must be at least 2")
        if not 1 <= self.run_keep < min(self.char_run_threshold, self.word_run_threshold):
            raise ValueError("run_keep must be positive and below both run thresholds")

    @property
    def pii_patterns(self) -> tuple[PatternRule, ...]:
        return tuple(p for p in self.patterns if p.pii)

    def revise(
        self,
        add: Iterable[KeywordRule] = (),
        remove: Iterable[str] = (),
        version: Optional[str] = None,
    ) -> FilterPolicy:
        """Return a new policy version with keywords added and/or removed.

        When *version* is omitted the patch component is bumped.
        """
        dropped = {t.lower() for t in remove}
        kept = [k for k in self.keywords if k.term.lower() not in dropped]
        existing = {k.term.lower() for k in kept}
        for rule in add:
            if rule.term.lower() not in existing:
                kept.append(rule)
                existing.add(rule.term.lower())
        return replace(self, keywords=tuple(kept), version=version or _bump_patch(self.version))


def parse_policy(data: dict) -> FilterPolicy:
    """Build a policy from a parsed YAML/JSON mapping."""
    keywords = tuple(
        KeywordRule(
            term=k["term"],
            severity=Severity.parse(k.get("severity", "low")),
            category=k.get("category", ""),
        )
        for k in data.get("keywords", [])
    )
    patterns = []
    for p in data.get("patterns", []):
        rule = PatternRule(
            name=p["name"],
            regex=p["regex"],
            severity=Severity.parse(p.get("severity", "medium")),
            pii=bool(p.get("pii", False)),
        )
        try:
            rule.compile()
        except re.error as exc:
            raise ValueError(f"Invalid regex for pattern {rule.name!r}: {exc}") from exc
        patterns.append(rule)

    defaults = FilterPolicy.__dataclass_fields__
    return FilterPolicy(
        name=data.get("name", "unnamed"),
        version=str(data.get("version", "1.0.0")),
        keywords=keywords,
        patterns=tuple(patterns),
        redaction_marker=data.get("redaction_marker", defaults["redaction_marker"].default),
        char_run_threshold=int(data.get("char_run_threshold", defaults["char_run_threshold"].default)),
        word_run_threshold=int(data.get("word_run_threshold", defaults["word_run_threshold"].default)),
        run_keep=int(data.get("run_keep", defaults["run_keep"].default)),
        caps_ratio=float(data.get("caps_ratio", defaults["caps_ratio"].default)),
        caps_min_length=int(data.get("caps_min_length", defaults["caps_min_length"].default)),
    )


def load_policy(path: str | Path) -> FilterPolicy:
    """Load a filter policy from a YAML file."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return parse_policy(data)


@lru_cache(maxsize=1)
def default_policy() -> FilterPolicy:
    """Return the packaged default policy."""
    return load_policy(DEFAULT_POLICY_PATH)


def _bump_patch(version: str) -> str:
    parts = version.split(".")
    if parts and parts[-1].isdigit():
        parts[-1] = str(int(parts[-1]) + 1)
        return ".".join(parts)
    return f"{version}.1"
