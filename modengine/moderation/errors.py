"""Exception taxonomy for the moderation engine."""

from __future__ import annotations


class ModerationError(Exception):
    """Base class for every engine error."""

    retryable = False


class ValidationError(ModerationError):
    """A report request is malformed or missing required fields."""


class DuplicateReportError(ValidationError):
    """The reporter already has an open report on the same content."""


class RateLimitedError(ModerationError):
    """The reporter exceeded the submission budget."""

    def __init__(self, reporter_id: str, retry_after_seconds: int = 0) -> None:
        super().__init__(f"Reporter {reporter_id} exceeded the report submission limit")
        self.reporter_id = reporter_id
        self.retry_after_seconds = retry_after_seconds


class NotFoundError(ModerationError):
    """A referenced report, content item or user does not exist."""


class AlreadyResolvedError(ModerationError):
    """An action was attempted on a report in a terminal state."""


class ConcurrentModificationError(ModerationError):
    """The report changed between read and conditional write; retry."""

    retryable = True


class NotificationDeliveryError(ModerationError):
    """A notification could not be delivered. Never surfaced to callers."""


class PersistenceError(ModerationError):
    """The store could not be read or written; needs operator attention."""
