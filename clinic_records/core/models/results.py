"""
Typed results returned by the uniqueness validator and the lifecycle manager.

Callers branch on these instead of catching exceptions, so a form can
render field-level or form-level messages without unwinding.
"""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel

from .persisted_record import PersistedRecord
from .record_draft import RecordDraft, RecordState
from .validation_result import ValidationResult


class ErrorKind(str, Enum):
    """Error categories surfaced to callers."""

    VALIDATION_FAILED = "validation_failed"
    UNIQUENESS_CONFLICT = "uniqueness_conflict"
    UNREACHABLE = "unreachable"
    SEQUENCE_UNAVAILABLE = "sequence_unavailable"
    PERSISTENCE_FAILED = "persistence_failed"
    SUBMISSION_IN_PROGRESS = "submission_in_progress"


class UniquenessResult(BaseModel):
    """
    Outcome of a business-key uniqueness check.

    Attributes:
        status: "valid", "conflict", "missing" (empty key) or "unknown" (no snapshot)
        candidate_key: The key as supplied by the caller
        reason: Human-readable explanation for anything but "valid"
        conflicting_record_id: Identity of the record already holding the key
        snapshot_fetched_at: Timestamp of the snapshot the decision used
        stale: True when the snapshot was older than the configured maximum age
    """

    status: Literal["valid", "conflict", "missing", "unknown"]
    candidate_key: str = ""
    reason: str | None = None
    conflicting_record_id: str | None = None
    snapshot_fetched_at: datetime | None = None
    stale: bool = False

    @property
    def valid(self) -> bool | None:
        """True/False when decided, None when the outcome is unknown."""
        if self.status == "unknown":
            return None
        return self.status == "valid"

    class Config:
        frozen = True


class LookupResult(BaseModel):
    """
    Outcome of looking up a linked record by key.

    Attributes:
        status: "found", "not_found", "cleared" (blank key) or "unavailable" (store error)
        key: The key that was looked up
        values: Field values to write into the draft; empty when nothing should change
    """

    status: Literal["found", "not_found", "cleared", "unavailable"]
    key: str = ""
    values: dict[str, str] = {}

    class Config:
        frozen = True


class SubmitResult(BaseModel):
    """
    Result of submitting, updating or changing the status of a record.

    Attributes:
        ok: True when the store accepted the write
        state: Draft state after the call
        record: The persisted record on success
        error: Error category on failure
        message: Text suitable for the notification sink
        validation: Rule evaluation performed at submit time
        uniqueness: Uniqueness decision performed at submit time
    """

    ok: bool
    state: RecordState
    record: PersistedRecord | None = None
    error: ErrorKind | None = None
    message: str = ""
    validation: ValidationResult | None = None
    uniqueness: UniquenessResult | None = None


class RenewalOutcome(BaseModel):
    """
    Result of deriving a renewal draft from a persisted record.

    Attributes:
        ok: True when a renewal draft was produced
        draft: The renewal draft on success
        error: ``validation_failed`` when the new start date or duration is invalid
        message: Explanation on failure
        validation: Rule evaluation of the renewal draft
    """

    ok: bool
    draft: RecordDraft | None = None
    error: ErrorKind | None = None
    message: str = ""
    validation: ValidationResult | None = None
