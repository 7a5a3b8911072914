"""Tests for filter policies and engine configuration."""

import tempfile
from pathlib import Path

import pytest
import yaml

from modengine.config import EngineConfig, load_config
from modengine.filtering import FilterPolicy, KeywordRule, PolicyTier, Severity, default_policy, load_policy
from modengine.filtering.policy import parse_policy


def test_default_policy_loads():
    policy = default_policy()
    assert policy.name == "default"
    assert policy.version == "1.0.0"
    assert {p.name for p in policy.pii_patterns} == {"email", "national_id", "phone", "street_address"}
    severities = {k.term: k.severity for k in policy.keywords}
    assert severities["병신"] == Severity.HIGH
    assert severities["바보"] == Severity.MEDIUM
    assert severities["광고"] == Severity.LOW


def test_revise_creates_new_version():
    policy = default_policy()
    revised = policy.revise(add=[KeywordRule("새단어", Severity.MEDIUM)], remove=["광고"])
    assert revised.version == "1.0.1"
    terms = {k.term for k in revised.keywords}
    assert "새단어" in terms
    assert "광고" not in terms
    # The original is untouched
    assert "광고" in {k.term for k in policy.keywords}
    assert policy.revise(version="2.0.0").version == "2.0.0"


def test_revise_ignores_duplicate_terms():
    policy = FilterPolicy(name="t", keywords=(KeywordRule("spam"),))
    assert len(policy.revise(add=[KeywordRule("SPAM")]).keywords) == 1


def test_invalid_thresholds_rejected():
    with pytest.raises(ValueError):
        FilterPolicy(name="t", run_keep=10)
    with pytest.raises(ValueError):
        FilterPolicy(name="t", char_run_threshold=1)


def test_parse_policy_rejects_bad_regex():
    with pytest.raises(ValueError, match="broken"):
        parse_policy({"name": "t", "patterns": [{"name": "broken", "regex": "("}]})


def test_parse_policy_rejects_unknown_severity():
    with pytest.raises(ValueError):
        parse_policy({"name": "t", "keywords": [{"term": "x", "severity": "extreme"}]})


def test_load_policy_from_yaml():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "policy.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "name": "board",
                    "version": "3.1.4",
                    "keywords": [{"term": "nope", "severity": "high"}],
                    "patterns": [{"name": "ticket", "regex": "TKT-\\d+", "pii": True}],
                }
            )
        )
        policy = load_policy(path)
    assert policy.name == "board"
    assert policy.version == "3.1.4"
    assert policy.keywords[0].severity == Severity.HIGH
    assert policy.patterns[0].severity == Severity.MEDIUM
    assert policy.pii_patterns[0].name == "ticket"


# -- configuration -----------------------------------------------------------


def test_config_defaults(monkeypatch):
    monkeypatch.delenv("MODENGINE_CONFIG", raising=False)
    monkeypatch.delenv("MODENGINE_HOME", raising=False)
    config = load_config()
    assert config.sla_window_hours == 24
    assert config.temporary_ban_days == 7
    assert config.policy_tier == PolicyTier.MODERATE
    assert config.home_dir == Path.home() / ".modengine"


def test_config_from_file_with_relative_policy(monkeypatch):
    monkeypatch.delenv("MODENGINE_HOME", raising=False)
    with tempfile.TemporaryDirectory() as tmpdir:
        Path(tmpdir, "strict.yaml").write_text(yaml.safe_dump({"name": "strict", "version": "9.0.0"}))
        cfg = Path(tmpdir) / "modengine.yaml"
        cfg.write_text(
            yaml.safe_dump(
                {
                    "policy_path": "strict.yaml",
                    "policy_tier": "strict",
                    "sla_window_hours": 12,
                    "home_dir": tmpdir,
                }
            )
        )
        config = load_config(cfg)
        assert config.policy_tier == PolicyTier.STRICT
        assert config.sla_window.total_seconds() == 12 * 3600
        assert config.load_filter_policy().version == "9.0.0"
        assert config.store_dir == Path(tmpdir) / "store"


def test_config_env_overrides(monkeypatch):
    with tempfile.TemporaryDirectory() as tmpdir:
        cfg = Path(tmpdir) / "modengine.yaml"
        cfg.write_text(yaml.safe_dump({"rate_limit_max_reports": 3}))
        monkeypatch.setenv("MODENGINE_CONFIG", str(cfg))
        monkeypatch.setenv("MODENGINE_HOME", str(Path(tmpdir) / "home"))
        config = load_config()
        assert config.rate_limit_max_reports == 3
        assert config.home_dir == Path(tmpdir) / "home"


def test_config_rejects_unknown_keys():
    with tempfile.TemporaryDirectory() as tmpdir:
        cfg = Path(tmpdir) / "modengine.yaml"
        cfg.write_text(yaml.safe_dump({"sla_hours": 12}))
        with pytest.raises(ValueError, match="sla_hours"):
            load_config(cfg)


def test_config_rejects_non_positive_values():
    with pytest.raises(ValueError):
        EngineConfig(sla_window_hours=0)
    with pytest.raises(ValueError):
        EngineConfig(policy_tier="lenient")
