"""Filtering — deterministic text policy checks.

This package provides the signal side of moderation:
- ContentFilter: keyword masking, pattern redaction, repetition truncation
- SpamDetector: repetition, shouting, and PII leakage heuristics
- PolicyClassifier: merges both into an admission decision
"""

from modengine.filtering.classifier import ClassificationContext, PolicyClassifier, PolicyTier
from modengine.filtering.content_filter import ContentFilter
from modengine.filtering.models import Decision, FilterResult, Outcome, Severity, SpamResult, Violation
from modengine.filtering.policy import FilterPolicy, KeywordRule, PatternRule, default_policy, load_policy
from modengine.filtering.spam import SpamDetector

__all__ = [
    "ClassificationContext",
    "ContentFilter",
    "Decision",
    "FilterPolicy",
    "FilterResult",
    "KeywordRule",
    "Outcome",
    "PatternRule",
    "PolicyClassifier",
    "PolicyTier",
    "Severity",
    "SpamDetector",
    "SpamResult",
    "Violation",
    "default_policy",
    "load_policy",
]
