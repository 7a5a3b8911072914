"""Tests for processing reports: transitions, sanctions, audit, races."""

import multiprocessing
import os
import tempfile
import threading
from datetime import timedelta

import pytest

from fakes import T0, FailingNotifier, FixedClock, RecordingNotifier, make_engine, request
from modengine.config import EngineConfig
from modengine.engine import ModerationEngine
from modengine.moderation.errors import (
    AlreadyResolvedError,
    ConcurrentModificationError,
    NotFoundError,
    ValidationError,
)
from modengine.moderation.models import ReportStatus, SanctionAction
from modengine.moderation.store import JsonReportStore


def _engine_with_post(tmpdir, notifier=None, clock=None):
    engine = make_engine(tmpdir, notifier=notifier, clock=clock)
    engine.register_content("post", "post-1", author_id="author-1")
    return engine


def test_dismiss_closes_without_sanction():
    with tempfile.TemporaryDirectory() as tmpdir:
        notifier = RecordingNotifier()
        engine = _engine_with_post(tmpdir, notifier)
        report_id = engine.submit_report(request())

        action = engine.process_report(report_id, "dismiss", "mod-1", "not spam")

        report = engine.get_report(report_id)
        assert report.status == ReportStatus.DISMISSED
        assert report.action_taken == SanctionAction.DISMISS
        assert report.resolution == "not spam"
        assert report.assigned_moderator == "mod-1"
        assert report.reviewed_at == T0.isoformat()
        assert not action.sanction_applied
        assert engine.get_user_state("author-1").warning_count == 0

        assert engine.notifier.flush()
        assert notifier.of("report.dismissed")[0]["user_id"] == "reporter-1"
        assert notifier.of("user.sanctioned") == []


def test_warning_resolves_and_records_audit():
    with tempfile.TemporaryDirectory() as tmpdir:
        notifier = RecordingNotifier()
        engine = _engine_with_post(tmpdir, notifier)
        report_id = engine.submit_report(request())
        engine.assign_report(report_id, "mod-1")

        action = engine.process_report(report_id, SanctionAction.WARNING, "mod-1", "first strike")

        assert engine.get_report(report_id).status == ReportStatus.RESOLVED
        state = engine.get_user_state("author-1")
        assert state.warning_count == 1
        assert state.last_warning_reason == "first strike"

        (recorded,) = engine.list_actions(report_id)
        assert recorded == action
        assert recorded.moderator_id == "mod-1"
        assert recorded.action == SanctionAction.WARNING
        assert recorded.sanction_applied

        assert engine.notifier.flush()
        assert notifier.of("report.resolved")[0]["report_id"] == report_id
        assert notifier.of("user.sanctioned")[0]["user_id"] == "author-1"


def test_processing_a_closed_report_fails_without_side_effects():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = _engine_with_post(tmpdir)
        report_id = engine.submit_report(request())
        engine.process_report(report_id, "warning", "mod-1")

        with pytest.raises(AlreadyResolvedError):
            engine.process_report(report_id, "warning", "mod-2")
        with pytest.raises(AlreadyResolvedError):
            engine.assign_report(report_id, "mod-2")

        assert len(engine.list_actions(report_id)) == 1
        assert engine.get_user_state("author-1").warning_count == 1


def test_content_removal_is_idempotent():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = _engine_with_post(tmpdir)
        first = engine.submit_report(request())
        second = engine.submit_report(request(reporter_id="reporter-2"))

        assert engine.process_report(first, "content_removal", "mod-1").sanction_applied
        assert not engine.process_report(second, "content_removal", "mod-1").sanction_applied

        content = engine.get_content("post", "post-1")
        assert content.is_deleted
        assert content.deleted_at == T0.isoformat()
        assert engine.get_report(second).status == ReportStatus.RESOLVED


def test_removing_unknown_content_changes_nothing():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(tmpdir)
        report_id = engine.submit_report(request(reported_content_id="ghost"))

        with pytest.raises(NotFoundError):
            engine.process_report(report_id, "content_removal", "mod-1")

        assert engine.get_report(report_id).status == ReportStatus.PENDING
        assert engine.list_actions(report_id) == []


def test_content_removal_does_not_apply_to_users():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(tmpdir)
        report_id = engine.submit_report(
            request(reported_content_type="user", reported_content_id="user-9")
        )
        with pytest.raises(ValidationError):
            engine.process_report(report_id, "content_removal", "mod-1")


def test_user_sanction_needs_a_target():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(tmpdir)
        report_id = engine.submit_report(request(reported_content_id="orphan"))
        with pytest.raises(ValidationError):
            engine.process_report(report_id, "warning", "mod-1")
        assert engine.get_report(report_id).status == ReportStatus.PENDING


def test_ban_escalation():
    with tempfile.TemporaryDirectory() as tmpdir:
        notifier = RecordingNotifier()
        engine = make_engine(tmpdir, notifier=notifier)

        def report(n):
            return engine.submit_report(
                request(
                    reporter_id=f"reporter-{n}",
                    reported_content_type="user",
                    reported_content_id="user-9",
                )
            )

        engine.process_report(report(1), "temporary_ban", "mod-1")
        state = engine.get_user_state("user-9")
        assert state.is_banned and not state.is_permanent_ban
        assert state.ban_until == (T0 + timedelta(days=7)).isoformat()
        assert engine.notifier.flush()
        assert notifier.of("user.sanctioned")[0]["ban_until"] == state.ban_until

        assert engine.process_report(report(2), "permanent_ban", "mod-1").sanction_applied
        assert engine.get_user_state("user-9").is_permanent_ban

        # A temporary ban never downgrades a permanent one
        assert not engine.process_report(report(3), "temporary_ban", "mod-1").sanction_applied
        state = engine.get_user_state("user-9")
        assert state.is_permanent_ban
        assert state.ban_until is None


def test_repeated_temporary_ban_resets_from_now():
    with tempfile.TemporaryDirectory() as tmpdir:
        clock = FixedClock()
        engine = make_engine(tmpdir, clock=clock)
        first = engine.submit_report(
            request(reported_content_type="user", reported_content_id="user-9")
        )
        engine.process_report(first, "temporary_ban", "mod-1")

        clock.advance(days=2)
        second = engine.submit_report(
            request(reporter_id="reporter-2", reported_content_type="user", reported_content_id="user-9")
        )
        engine.process_report(second, "temporary_ban", "mod-1")

        assert engine.get_user_state("user-9").ban_until == (T0 + timedelta(days=9)).isoformat()


def test_invalid_arguments():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = _engine_with_post(tmpdir)
        report_id = engine.submit_report(request())
        with pytest.raises(ValidationError):
            engine.process_report(report_id, "shadow_ban", "mod-1")
        with pytest.raises(ValidationError):
            engine.process_report(report_id, "warning", "")
        with pytest.raises(NotFoundError):
            engine.process_report("missing", "warning", "mod-1")


def test_notification_failure_does_not_undo_the_decision():
    with tempfile.TemporaryDirectory() as tmpdir:
        notifier = FailingNotifier()
        engine = _engine_with_post(tmpdir, notifier)
        report_id = engine.submit_report(request())

        engine.process_report(report_id, "warning", "mod-1")

        assert engine.get_report(report_id).status == ReportStatus.RESOLVED
        assert engine.get_user_state("author-1").warning_count == 1
        assert engine.notifier.flush()
        assert engine.notifier.failures == 2


class _RacingStore(JsonReportStore):
    """Holds readers at a barrier so both see the same report version."""

    barrier = None

    def get_by_id(self, report_id):
        report = super().get_by_id(report_id)
        if self.barrier is not None:
            self.barrier.wait(timeout=5)
        return report


def test_concurrent_processing_applies_one_sanction():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _RacingStore(tmpdir)
        engine = ModerationEngine(
            config=EngineConfig(home_dir=tmpdir),
            store=store,
            notifier=RecordingNotifier(),
            clock=FixedClock(),
        )
        engine.register_content("post", "post-1", author_id="author-1")
        report_id = engine.submit_report(request())

        store.barrier = threading.Barrier(2)
        outcomes = []

        def moderate(moderator):
            try:
                engine.process_report(report_id, "warning", moderator)
                outcomes.append("ok")
            except ConcurrentModificationError as e:
                assert e.retryable
                outcomes.append("conflict")

        threads = [threading.Thread(target=moderate, args=(m,)) for m in ("mod-1", "mod-2")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        store.barrier = None

        assert sorted(outcomes) == ["conflict", "ok"]
        assert len(engine.list_actions(report_id)) == 1
        assert engine.get_user_state("author-1").warning_count == 1
        assert engine.get_report(report_id).version == 1


def _moderate_in_child(home, report_id, moderator, barrier, results):
    store = _RacingStore(EngineConfig(home_dir=home).store_dir)
    store.barrier = barrier
    engine = ModerationEngine(
        config=EngineConfig(home_dir=home), store=store, notifier=RecordingNotifier(), clock=FixedClock()
    )
    try:
        engine.process_report(report_id, "warning", moderator)
        results.put("ok")
    except ConcurrentModificationError:
        results.put("conflict")


@pytest.mark.skipif(not hasattr(os, "fork"), reason="needs fork")
def test_processes_sharing_a_store_apply_one_sanction():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = _engine_with_post(tmpdir)
        report_id = engine.submit_report(request())

        ctx = multiprocessing.get_context("fork")
        barrier = ctx.Barrier(2)
        results = ctx.Queue()
        procs = [
            ctx.Process(target=_moderate_in_child, args=(tmpdir, report_id, m, barrier, results))
            for m in ("mod-1", "mod-2")
        ]
        for p in procs:
            p.start()
        outcomes = sorted(results.get(timeout=30) for _ in procs)
        for p in procs:
            p.join(timeout=30)

        assert outcomes == ["conflict", "ok"]
        assert len(engine.list_actions(report_id)) == 1
        assert engine.get_user_state("author-1").warning_count == 1
        assert engine.get_report(report_id).version == 1


class _BlockingNotifier(RecordingNotifier):
    """Holds every delivery until released."""

    def __init__(self) -> None:
        super().__init__()
        self.release = threading.Event()

    def notify(self, event, payload):
        self.release.wait(timeout=10)
        super().notify(event, payload)


def test_slow_channel_does_not_hold_up_processing():
    with tempfile.TemporaryDirectory() as tmpdir:
        notifier = _BlockingNotifier()
        engine = _engine_with_post(tmpdir, notifier)
        report_id = engine.submit_report(request())

        engine.process_report(report_id, "warning", "mod-1")

        # Returned while both deliveries are still parked
        assert notifier.sent == []
        assert engine.get_report(report_id).status == ReportStatus.RESOLVED

        notifier.release.set()
        assert engine.notifier.flush()
        assert [e for e, _ in notifier.sent] == ["report.resolved", "user.sanctioned"]
        engine.close()


def _ban(engine, user_id, action, reporter="reporter-1"):
    report_id = engine.submit_report(
        request(reporter_id=reporter, reported_content_type="user", reported_content_id=user_id)
    )
    engine.process_report(report_id, action, "mod-1")


def test_expired_temporary_ban_reads_as_lifted():
    with tempfile.TemporaryDirectory() as tmpdir:
        clock = FixedClock()
        engine = make_engine(tmpdir, clock=clock)
        _ban(engine, "user-9", "temporary_ban")

        clock.advance(days=6)
        assert engine.get_user_state("user-9").is_banned

        clock.advance(days=1)
        state = engine.get_user_state("user-9")
        assert not state.is_banned
        assert state.ban_until is None
        assert state.ban_lifted_at == (T0 + timedelta(days=7)).isoformat()


def test_sweep_lifts_only_expired_temporary_bans():
    with tempfile.TemporaryDirectory() as tmpdir:
        clock = FixedClock()
        notifier = RecordingNotifier()
        engine = make_engine(tmpdir, notifier=notifier, clock=clock)
        _ban(engine, "user-temp", "temporary_ban")
        _ban(engine, "user-perm", "permanent_ban")

        assert engine.lift_expired_bans() == []

        clock.advance(days=30)
        assert engine.lift_expired_bans() == ["user-temp"]
        assert engine.lift_expired_bans() == []

        assert engine.get_user_state("user-perm").is_banned
        assert engine.get_user_state("user-perm").is_permanent_ban
        assert not engine.get_user_state("user-temp").is_banned

        assert engine.notifier.flush()
        (payload,) = notifier.of("user.ban_lifted")
        assert payload["user_id"] == "user-temp"
