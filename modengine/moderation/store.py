"""Report storage.

``ReportStore`` is the narrow interface the engine depends on.
``JsonReportStore`` implements it on a single JSON document under
``~/.modengine/store/`` holding reports, audit actions, content records and
user sanction state, so that one transaction commits all of them with a
single atomic file replace.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Optional

from filelock import FileLock, Timeout

from modengine.moderation.errors import (
    ConcurrentModificationError,
    DuplicateReportError,
    NotFoundError,
    PersistenceError,
)
from modengine.moderation.models import (
    OPEN_STATUSES,
    ContentRecord,
    ContentType,
    ModerationAction,
    Priority,
    Report,
    ReportCategory,
    ReportStatus,
    UserSanctionState,
)


# ------------------------------------------------------------------
# Transaction
# ------------------------------------------------------------------


class StoreTransaction:
    """Mutable view over one loaded store document.

    Changes become visible to other callers only when the enclosing
    ``transaction()`` block exits without an exception.
    """

    def __init__(self, doc: dict[str, Any]) -> None:
        self._doc = doc
        self.dirty = False

    # -- reports -------------------------------------------------------------

    def get_report(self, report_id: str) -> Optional[Report]:
        d = self._doc["reports"].get(report_id)
        return Report.from_dict(d) if d else None

    def put_report(self, report: Report) -> None:
        self._doc["reports"][report.id] = report.to_dict()
        self.dirty = True

    # -- audit ---------------------------------------------------------------

    def append_action(self, action: ModerationAction) -> None:
        self._doc["actions"].append(action.to_dict())
        self.dirty = True

    def actions_for(self, report_id: str) -> list[ModerationAction]:
        return [
            ModerationAction.from_dict(a) for a in self._doc["actions"] if a["report_id"] == report_id
        ]

    # -- content -------------------------------------------------------------

    def get_content(self, content_type: ContentType, content_id: str) -> Optional[ContentRecord]:
        d = self._doc["contents"].get(_content_key(content_type, content_id))
        return ContentRecord(**d) if d else None

    def put_content(self, record: ContentRecord) -> None:
        self._doc["contents"][_content_key(record.content_type, record.content_id)] = record.to_dict()
        self.dirty = True

    def soft_delete_content(
        self, content_type: ContentType, content_id: str, reason: str, now: datetime
    ) -> bool:
        """Mark content deleted. Returns False if it already was."""
        record = self.get_content(content_type, content_id)
        if record is None:
            raise NotFoundError(f"{content_type.value} {content_id} not found")
        if record.is_deleted:
            return False
        record.is_deleted = True
        record.deleted_at = now.isoformat()
        record.deleted_reason = reason
        self.put_content(record)
        return True

    # -- users ---------------------------------------------------------------

    def get_user(self, user_id: str) -> UserSanctionState:
        d = self._doc["users"].get(user_id)
        return UserSanctionState.from_dict(d) if d else UserSanctionState(user_id=user_id)

    def put_user(self, state: UserSanctionState) -> None:
        self._doc["users"][state.user_id] = state.to_dict()
        self.dirty = True

    def increment_warning(self, user_id: str, reason: str, now: datetime) -> int:
        """Increment the warning counter inside this transaction. Returns the new count."""
        state = self.get_user(user_id)
        state.warning_count += 1
        state.last_warning_at = now.isoformat()
        state.last_warning_reason = reason
        self.put_user(state)
        return state.warning_count

    def apply_temporary_ban(self, user_id: str, reason: str, now: datetime, until: datetime) -> bool:
        """Ban until *until*, resetting any running temporary ban.

        A permanent ban supersedes: returns False and changes nothing.
        """
        state = self.get_user(user_id)
        if state.is_permanent_ban:
            return False
        state.is_banned = True
        state.ban_reason = reason
        state.banned_at = now.isoformat()
        state.ban_until = until.isoformat()
        self.put_user(state)
        return True

    def apply_permanent_ban(self, user_id: str, reason: str, now: datetime) -> bool:
        """Ban permanently. Returns False if the user already was."""
        state = self.get_user(user_id)
        if state.is_permanent_ban:
            return False
        state.is_banned = True
        state.is_permanent_ban = True
        state.ban_reason = reason
        state.banned_at = now.isoformat()
        state.ban_until = None
        self.put_user(state)
        return True

    def lift_expired_ban(self, user_id: str, now: datetime) -> bool:
        """Clear a temporary ban whose ``ban_until`` has passed."""
        state = self.get_user(user_id)
        if not state.ban_expired(now):
            return False
        state.is_banned = False
        state.ban_until = None
        state.ban_lifted_at = now.isoformat()
        self.put_user(state)
        return True

    def lift_expired_bans(self, now: datetime) -> list[str]:
        """Lift every expired temporary ban. Returns the affected user ids."""
        return [uid for uid in list(self._doc["users"]) if self.lift_expired_ban(uid, now)]


# ------------------------------------------------------------------
# Interface
# ------------------------------------------------------------------


class ReportStore(ABC):
    """What the engine needs from persistence."""

    @abstractmethod
    def transaction(self) -> Any:
        """Context manager yielding a ``StoreTransaction`` committed atomically on success."""

    @abstractmethod
    def create(self, report: Report) -> Report: ...

    @abstractmethod
    def create_unless_open(self, report: Report) -> Report:
        """Insert *report* unless its reporter already has an open report on the same content.

        The check and the insert happen under one lock; a loser gets
        ``DuplicateReportError``.
        """

    @abstractmethod
    def get_by_id(self, report_id: str) -> Optional[Report]: ...

    @abstractmethod
    def update_conditional(self, report_id: str, expected_version: int, **changes: Any) -> Report:
        """Apply *changes* only if the stored version still equals *expected_version*."""

    @abstractmethod
    def query_by_filter(
        self,
        *,
        status: Optional[ReportStatus] = None,
        priority: Optional[Priority] = None,
        category: Optional[ReportCategory] = None,
        reporter_id: Optional[str] = None,
        reported_user_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        newest_first: bool = True,
    ) -> list[Report]: ...

    @abstractmethod
    def query_overdue(self, now: datetime) -> list[Report]: ...

    @abstractmethod
    def find_open_report(
        self, reporter_id: str, content_type: ContentType, content_id: str
    ) -> Optional[Report]: ...

    @abstractmethod
    def list_actions(self, report_id: Optional[str] = None) -> list[ModerationAction]: ...


# ------------------------------------------------------------------
# File-backed implementation
# ------------------------------------------------------------------


class JsonReportStore(ReportStore):
    """File-based JSON store.

    Storage path: ``~/.modengine/store/`` with:
    - ``moderation.json`` -- reports, actions, contents and users

    - ``moderation.json.lock`` -- held for the whole of every transaction

    Threads of one process queue on an ``RLock``; processes sharing the
    directory (CLI, server workers) queue on the lock file. Each commit
    writes a temporary file and renames it over the old one.
    """

    def __init__(self, base_dir: Optional[str | Path] = None, lock_timeout: float = 30.0) -> None:
        if base_dir is None:
            self._base = Path.home() / ".modengine" / "store"
        else:
            self._base = Path(base_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._path = self._base / "moderation.json"
        self._lock = threading.RLock()
        self._file_lock = FileLock(str(self._base / "moderation.json.lock"), timeout=lock_timeout)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"reports": {}, "actions": [], "contents": {}, "users": {}}
        if not self._path.exists():
            return doc
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            raise PersistenceError(f"Cannot read store {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise PersistenceError(f"Store {self._path} is not a JSON object")
        doc.update(data)
        return doc

    def _save(self, doc: dict[str, Any]) -> None:
        try:
            fd, tmp = tempfile.mkstemp(dir=self._base, prefix=".moderation-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(doc, fh, indent=2, ensure_ascii=False)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self._path)
        except OSError as exc:
            raise PersistenceError(f"Cannot write store {self._path}: {exc}") from exc

    def _reports(self) -> list[Report]:
        with self._lock:
            doc = self._load()
        return [Report.from_dict(d) for d in doc["reports"].values()]

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        with self._lock:
            try:
                self._file_lock.acquire()
            except Timeout as exc:
                raise ConcurrentModificationError(
                    f"Store {self._path} is locked by another process; retry"
                ) from exc
            try:
                yield
            finally:
                self._file_lock.release()

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        with self._exclusive():
            tx = StoreTransaction(self._load())
            yield tx
            if tx.dirty:
                self._save(tx._doc)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def create(self, report: Report) -> Report:
        with self.transaction() as tx:
            if tx.get_report(report.id) is not None:
                raise ValueError(f"Report {report.id} already exists")
            tx.put_report(report)
        return report

    def create_unless_open(self, report: Report) -> Report:
        with self.transaction() as tx:
            for d in tx._doc["reports"].values():
                other = Report.from_dict(d)
                if (
                    other.reporter_id == report.reporter_id
                    and other.reported_content_type == report.reported_content_type
                    and other.reported_content_id == report.reported_content_id
                    and other.status in OPEN_STATUSES
                ):
                    raise DuplicateReportError(
                        f"Reporter {report.reporter_id} already has an open report on "
                        f"{report.reported_content_type.value} {report.reported_content_id}"
                    )
            tx.put_report(report)
        return report

    def get_by_id(self, report_id: str) -> Optional[Report]:
        with self.transaction() as tx:
            return tx.get_report(report_id)

    def update_conditional(self, report_id: str, expected_version: int, **changes: Any) -> Report:
        with self.transaction() as tx:
            current = tx.get_report(report_id)
            if current is None:
                raise NotFoundError(f"Report {report_id} not found")
            if current.version != expected_version:
                raise ConcurrentModificationError(
                    f"Report {report_id} was modified concurrently "
                    f"(expected version {expected_version}, found {current.version})"
                )
            updated = replace(current, version=current.version + 1, **changes)
            tx.put_report(updated)
        return updated

    def query_by_filter(
        self,
        *,
        status: Optional[ReportStatus] = None,
        priority: Optional[Priority] = None,
        category: Optional[ReportCategory] = None,
        reporter_id: Optional[str] = None,
        reported_user_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        newest_first: bool = True,
    ) -> list[Report]:
        reports = self._reports()
        if status:
            reports = [r for r in reports if r.status == status]
        if priority:
            reports = [r for r in reports if r.priority == priority]
        if category:
            reports = [r for r in reports if r.category == category]
        if reporter_id:
            reports = [r for r in reports if r.reporter_id == reporter_id]
        if reported_user_id:
            reports = [r for r in reports if r.reported_user_id == reported_user_id]

        reports.sort(key=lambda r: (r.created_at, r.id), reverse=newest_first)
        end = None if limit is None else offset + limit
        return reports[offset:end]

    def query_overdue(self, now: datetime) -> list[Report]:
        overdue = [r for r in self._reports() if r.is_overdue(now)]
        overdue.sort(key=lambda r: r.response_deadline)
        return overdue

    def find_open_report(
        self, reporter_id: str, content_type: ContentType, content_id: str
    ) -> Optional[Report]:
        for r in self._reports():
            if (
                r.reporter_id == reporter_id
                and r.reported_content_type == content_type
                and r.reported_content_id == content_id
                and r.status in OPEN_STATUSES
            ):
                return r
        return None

    def list_actions(self, report_id: Optional[str] = None) -> list[ModerationAction]:
        with self._lock:
            doc = self._load()
        actions = [ModerationAction.from_dict(a) for a in doc["actions"]]
        if report_id:
            actions = [a for a in actions if a.report_id == report_id]
        actions.sort(key=lambda a: a.created_at, reverse=True)
        return actions

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def increment_warning(self, user_id: str, reason: str, now: datetime) -> int:
        """Atomically increment a user's warning counter."""
        with self.transaction() as tx:
            return tx.increment_warning(user_id, reason, now)


def _content_key(content_type: ContentType, content_id: str) -> str:
    return f"{content_type.value}:{content_id}"
