"""Tests for report intake: validation, sanitization, priority, deadline."""

import tempfile
import threading
from datetime import timedelta

import pytest

from fakes import T0, FailingNotifier, FixedClock, RecordingNotifier, make_engine, request
from modengine.config import DEFAULT_HIGH_PRIORITY_KEYWORDS, EngineConfig
from modengine.engine import ModerationEngine
from modengine.moderation.errors import DuplicateReportError, RateLimitedError, ValidationError
from modengine.moderation.intake import determine_priority
from modengine.moderation.models import Priority, ReportCategory, ReportStatus
from modengine.moderation.ratelimit import SlidingWindowRateLimiter
from modengine.moderation.store import JsonReportStore


def test_submit_creates_pending_report_with_deadline():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(tmpdir)
        report_id = engine.submit_report(request(reason="도배 글입니다"))

        report = engine.get_report(report_id)
        assert report.status == ReportStatus.PENDING
        assert report.priority == Priority.LOW
        assert report.reason == "도배 글입니다"
        assert report.created_at == T0.isoformat()
        assert report.response_deadline == (T0 + timedelta(hours=24)).isoformat()
        assert report.version == 0


def test_reason_and_description_are_sanitized():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(tmpdir)
        report_id = engine.submit_report(
            request(reason="광고 글입니다", description="병신 같은 글, 연락처 010-1234-5678")
        )
        report = engine.get_report(report_id)
        assert report.reason == "** 글입니다"
        assert "병신" not in report.description
        assert "010-1234-5678" not in report.description
        assert "[차단된 내용]" in report.description


def test_urgent_category_notifies_once():
    with tempfile.TemporaryDirectory() as tmpdir:
        notifier = RecordingNotifier()
        engine = make_engine(tmpdir, notifier=notifier)
        report_id = engine.submit_report(request(category="harassment"))

        assert engine.get_report(report_id).priority == Priority.URGENT
        urgent = notifier.of("report.urgent")
        assert len(urgent) == 1
        assert urgent[0]["report_id"] == report_id


def test_non_urgent_report_sends_nothing():
    with tempfile.TemporaryDirectory() as tmpdir:
        notifier = RecordingNotifier()
        engine = make_engine(tmpdir, notifier=notifier)
        engine.submit_report(request(category="spam"))
        assert notifier.sent == []


def test_priority_from_description_keywords():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(tmpdir)
        report_id = engine.submit_report(request(description="개인정보 유출 게시물"))
        assert engine.get_report(report_id).priority == Priority.HIGH

        report_id = engine.submit_report(
            request(reported_content_id="post-2", category="inappropriate_content")
        )
        assert engine.get_report(report_id).priority == Priority.MEDIUM


def test_priority_uses_filtered_description():
    # "죽이" is also on the denylist, so it is masked before the keyword check
    assert (
        determine_priority(ReportCategory.OTHER, "** 겠다", DEFAULT_HIGH_PRIORITY_KEYWORDS)
        == Priority.LOW
    )


def test_determine_priority_is_deterministic():
    cases = [
        (ReportCategory.VIOLENCE, "", Priority.URGENT),
        (ReportCategory.HATE_SPEECH, "위협", Priority.URGENT),
        (ReportCategory.SPAM, "위협 메시지", Priority.HIGH),
        (ReportCategory.PRIVACY_VIOLATION, "", Priority.MEDIUM),
        (ReportCategory.PRIVACY_VIOLATION, "사생활 노출", Priority.HIGH),
        (ReportCategory.OTHER, "그냥", Priority.LOW),
    ]
    for category, description, expected in cases:
        for _ in range(3):
            assert determine_priority(category, description, DEFAULT_HIGH_PRIORITY_KEYWORDS) == expected


def test_user_reports_target_the_user():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(tmpdir)
        report_id = engine.submit_report(
            request(reported_content_type="user", reported_content_id="user-9")
        )
        assert engine.get_report(report_id).reported_user_id == "user-9"


@pytest.mark.parametrize(
    "overrides",
    [
        {"reporter_id": ""},
        {"reported_content_id": "  "},
        {"reason": ""},
        {"category": "rudeness"},
        {"reported_content_type": "video"},
        {"reason": "x" * 201},
        {"description": "x" * 2001},
    ],
)
def test_invalid_requests_are_rejected(overrides):
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(tmpdir)
        with pytest.raises(ValidationError):
            engine.submit_report(request(**overrides))
        assert engine.list_reports() == []


def test_validation_lists_every_problem():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(tmpdir)
        with pytest.raises(ValidationError) as exc_info:
            engine.submit_report(request(reporter_id="", category="rudeness"))
        assert "reporter_id" in str(exc_info.value)
        assert "category" in str(exc_info.value)


def test_duplicate_open_report_is_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(tmpdir)
        first = engine.submit_report(request())
        with pytest.raises(DuplicateReportError):
            engine.submit_report(request())

        # Another reporter may report the same content
        engine.submit_report(request(reporter_id="reporter-2"))

        # Once closed, the same reporter may report it again
        engine.process_report(first, "dismiss", "mod-1")
        engine.submit_report(request())


def test_rate_limit_per_reporter():
    with tempfile.TemporaryDirectory() as tmpdir:
        clock = FixedClock()
        engine = make_engine(tmpdir, clock=clock, rate_limit_max_reports=2)
        engine.submit_report(request(reported_content_id="p1"))
        engine.submit_report(request(reported_content_id="p2"))
        with pytest.raises(RateLimitedError) as exc_info:
            engine.submit_report(request(reported_content_id="p3"))
        assert exc_info.value.retry_after_seconds == 3600

        # Other reporters are unaffected
        engine.submit_report(request(reporter_id="reporter-2", reported_content_id="p3"))

        clock.advance(minutes=61)
        engine.submit_report(request(reported_content_id="p3"))


def test_notification_failure_does_not_fail_submission():
    with tempfile.TemporaryDirectory() as tmpdir:
        notifier = FailingNotifier()
        engine = make_engine(tmpdir, notifier=notifier)
        report_id = engine.submit_report(request(category="violence"))

        assert engine.get_report(report_id).priority == Priority.URGENT
        assert notifier.calls == 1
        assert engine.notifier.failures == 1


class _RacingStore(JsonReportStore):
    """Holds submitters at a barrier after the early duplicate check."""

    barrier = None

    def find_open_report(self, reporter_id, content_type, content_id):
        found = super().find_open_report(reporter_id, content_type, content_id)
        if self.barrier is not None:
            self.barrier.wait(timeout=5)
        return found


def test_concurrent_duplicate_submissions_store_one_report():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _RacingStore(tmpdir)
        engine = ModerationEngine(
            config=EngineConfig(home_dir=tmpdir),
            store=store,
            notifier=RecordingNotifier(),
            clock=FixedClock(),
        )
        store.barrier = threading.Barrier(2)
        outcomes = []

        def submit():
            try:
                engine.submit_report(request())
                outcomes.append("created")
            except DuplicateReportError:
                outcomes.append("duplicate")

        threads = [threading.Thread(target=submit) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        store.barrier = None

        assert sorted(outcomes) == ["created", "duplicate"]
        assert len(engine.list_by_reporter("reporter-1")) == 1


def test_rate_limiter_forgets_idle_reporters():
    limiter = SlidingWindowRateLimiter(max_reports=2, window=timedelta(hours=1))
    for n in range(50):
        assert limiter.acquire(f"reporter-{n}", T0)
    assert len(limiter) == 50

    later = T0 + timedelta(hours=2)
    assert limiter.acquire("reporter-new", later)
    assert len(limiter) == 1
    assert limiter.retry_after("reporter-0", later) == 0
    assert len(limiter) == 1
