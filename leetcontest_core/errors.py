"""Error taxonomy for the sync path.

Every error carries a machine-checkable ``kind`` plus an HTTP-ish
``status_code`` so the parent API can map it without inspecting messages.
``retryable`` separates "try again later" conditions from hard failures.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class ValidationError:
    """Represents a rejected precondition (pure core, no transport)."""

    kind: str
    message: str | None = None
    status_code: int | None = None
    retry_after: int | None = None
    retryable: bool | None = None
    details: Dict[str, Any] = field(default_factory=dict)


class ContestSyncError(Exception):
    """Base class for errors surfaced to callers of the sync core."""

    kind = "error"
    status_code = 500
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        kind: str | None = None,
        status_code: int | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        if status_code is not None:
            self.status_code = status_code
        if retryable is not None:
            self.retryable = retryable
        self.retry_after = retry_after
        self.details = dict(details or {})

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.kind,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            payload["retry_after"] = self.retry_after
        if self.details:
            payload.update(self.details)
        return payload


class SubmissionFetchError(ContestSyncError):
    """Judge feed could not be fetched (retries exhausted or malformed data)."""

    kind = "submission_fetch_failed"
    status_code = 502
    retryable = True


class AccountNotFoundError(ContestSyncError):
    """Judge account does not exist or its submissions are private."""

    kind = "account_not_found"
    status_code = 400
    retryable = False


class NotFoundError(ContestSyncError):
    kind = "not_found"
    status_code = 404


class InvalidContestError(ContestSyncError):
    kind = "invalid_contest"
    status_code = 400


class ContestFinalizedError(ContestSyncError):
    """Write attempted against a participation of a finalized contest."""

    kind = "contest_finalized"
    status_code = 400


class SyncRejectedError(ContestSyncError):
    """A sync precondition failed before any external call was made."""

    kind = "sync_rejected"
    status_code = 400

    def __init__(self, error: ValidationError) -> None:
        retryable = error.retryable
        if retryable is None:
            retryable = error.retry_after is not None
        super().__init__(
            error.message or error.kind,
            kind=error.kind,
            status_code=error.status_code,
            retryable=retryable,
            retry_after=error.retry_after,
            details=error.details,
        )
        self.error = error


__all__ = [
    "AccountNotFoundError",
    "ContestFinalizedError",
    "ContestSyncError",
    "InvalidContestError",
    "NotFoundError",
    "SubmissionFetchError",
    "SyncRejectedError",
    "ValidationError",
]
