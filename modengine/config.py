"""Engine configuration.

Loaded from a YAML file (``MODENGINE_CONFIG`` or an explicit path), with
``MODENGINE_HOME`` overriding where state is kept.  Everything the engine
treats as policy lives here rather than in code.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Optional

import yaml

from modengine.filtering.classifier import PolicyTier
from modengine.filtering.policy import DEFAULT_POLICY_PATH, FilterPolicy, load_policy

DEFAULT_HIGH_PRIORITY_KEYWORDS = ["죽이", "자살", "폭력", "위협", "개인정보", "사생활"]


@dataclass
class EngineConfig:
    """Tunable settings for a ``ModerationEngine``."""

    home_dir: Path = field(default_factory=lambda: Path.home() / ".modengine")
    policy_path: Path = DEFAULT_POLICY_PATH
    policy_tier: PolicyTier = PolicyTier.MODERATE
    high_priority_keywords: list[str] = field(
        default_factory=lambda: list(DEFAULT_HIGH_PRIORITY_KEYWORDS)
    )
    sla_window_hours: float = 24
    temporary_ban_days: float = 7
    rate_limit_max_reports: int = 10
    rate_limit_window_minutes: float = 60
    sweep_interval_seconds: float = 300
    reason_max_length: int = 200
    description_max_length: int = 2000

    def __post_init__(self) -> None:
        self.home_dir = Path(self.home_dir).expanduser()
        self.policy_path = Path(self.policy_path).expanduser()
        self.policy_tier = PolicyTier(self.policy_tier)
        for name in (
            "sla_window_hours",
            "temporary_ban_days",
            "rate_limit_max_reports",
            "rate_limit_window_minutes",
            "sweep_interval_seconds",
            "reason_max_length",
            "description_max_length",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

    @property
    def sla_window(self) -> timedelta:
        return timedelta(hours=self.sla_window_hours)

    @property
    def temporary_ban_duration(self) -> timedelta:
        return timedelta(days=self.temporary_ban_days)

    @property
    def rate_limit_window(self) -> timedelta:
        return timedelta(minutes=self.rate_limit_window_minutes)

    @property
    def store_dir(self) -> Path:
        return self.home_dir / "store"

    @property
    def webhooks_dir(self) -> Path:
        return self.home_dir / "webhooks"

    def load_filter_policy(self) -> FilterPolicy:
        return load_policy(self.policy_path)


def load_config(path: Optional[str | Path] = None) -> EngineConfig:
    """Load configuration from *path*, ``$MODENGINE_CONFIG``, or defaults."""
    path = path or os.environ.get("MODENGINE_CONFIG")
    data: dict = {}
    if path:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        # Relative policy paths are relative to the config file
        if data.get("policy_path") and not Path(data["policy_path"]).is_absolute():
            data["policy_path"] = Path(path).parent / data["policy_path"]

    unknown = set(data) - set(EngineConfig.__dataclass_fields__)
    if unknown:
        raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")

    home = os.environ.get("MODENGINE_HOME")
    if home:
        data["home_dir"] = home
    return EngineConfig(**data)
