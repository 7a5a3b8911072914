"""Tests for engine wiring and policy reloads."""

import tempfile
from pathlib import Path

import yaml

from fakes import make_engine, request
from modengine.config import EngineConfig
from modengine.engine import ModerationEngine
from modengine.filtering import KeywordRule, Outcome, Severity
from modengine.notifications.webhook import WebhookNotifier


def test_reload_policy_affects_later_requests():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(tmpdir)
        assert engine.scan_text("도배꾼 등장").outcome == Outcome.ALLOW

        revised = engine.policy.revise(add=[KeywordRule("도배꾼", Severity.HIGH)])
        engine.reload_policy(revised)

        assert engine.policy.version == "1.0.1"
        assert engine.scan_text("도배꾼 등장").outcome == Outcome.BLOCK
        report_id = engine.submit_report(request(reason="도배꾼 신고"))
        assert engine.get_report(report_id).reason == "*** 신고"


def test_reload_policy_rereads_configured_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "policy.yaml"
        path.write_text(yaml.safe_dump({"name": "board", "version": "1.0.0"}))
        engine = make_engine(tmpdir, policy_path=path)
        assert engine.scan_text("바보").outcome == Outcome.ALLOW

        path.write_text(
            yaml.safe_dump(
                {"name": "board", "version": "1.1.0", "keywords": [{"term": "바보", "severity": "medium"}]}
            )
        )
        assert engine.reload_policy().version == "1.1.0"
        assert engine.scan_text("바보").outcome == Outcome.BLOCK


def test_from_config_uses_home_dir_and_webhooks():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = ModerationEngine.from_config(EngineConfig(home_dir=tmpdir))
        assert isinstance(engine.notifier.port, WebhookNotifier)
        engine.submit_report(request())
        assert (Path(tmpdir) / "store" / "moderation.json").exists()


def test_register_content_is_idempotent():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(tmpdir)
        engine.register_content("comment", "c1", author_id="author-1")
        again = engine.register_content("comment", "c1", author_id="someone-else")
        assert again.author_id == "author-1"
        assert engine.get_content("comment", "missing") is None
