"""
Core data models for the clinic record engine.

All models use Pydantic for runtime validation and type safety.
"""

from .persisted_record import INITIAL_STATUS, PersistedRecord, RecordStatus
from .record_draft import RecordDraft, RecordState, new_draft_id
from .results import ErrorKind, LookupResult, RenewalOutcome, SubmitResult, UniquenessResult
from .section_state import SectionStateEntry
from .snapshot import ExternalRecordSnapshot, SnapshotEntry
from .validation_result import ValidationResult

__all__ = [
    "RecordDraft",
    "RecordState",
    "new_draft_id",
    "PersistedRecord",
    "RecordStatus",
    "INITIAL_STATUS",
    "ValidationResult",
    "ExternalRecordSnapshot",
    "SnapshotEntry",
    "ErrorKind",
    "UniquenessResult",
    "LookupResult",
    "SubmitResult",
    "RenewalOutcome",
    "SectionStateEntry",
]
