"""
RecordDraft model representing an in-progress record owned by a UI session.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from .validation_result import ValidationResult


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_draft_id() -> str:
    return f"draft_{uuid4().hex}"


class RecordState(str, Enum):
    """Lifecycle states of a draft."""

    DRAFT = "draft"
    VALIDATING = "validating"
    SUBMITTED = "submitted"
    PERSISTED = "persisted"
    REJECTED = "rejected"
    FAILED = "failed"


class RecordDraft(BaseModel):
    """
    An in-progress record.

    The draft is mutable until it reaches ``persisted``. Field values are
    kept as entered; rule evaluation never clears them.

    Attributes:
        draft_id: Identity of this draft instance
        rule_set: Name of the rule set governing the draft
        discriminator: Selected discriminator value, if the rule set has one
        data: Field name -> raw value (string or number)
        reserved_key: System-generated business key reserved for this draft
        state: Current lifecycle state
        renewed_from: Identity of the persisted record this draft renews
        validation: Most recent rule evaluation for the draft
        created_at: When the draft was created
    """

    draft_id: str = Field(default_factory=new_draft_id)
    rule_set: str = Field(..., min_length=1)
    discriminator: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    reserved_key: str | None = None
    state: RecordState = RecordState.DRAFT
    renewed_from: str | None = None
    validation: ValidationResult | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    def get(self, field_name: str, default: Any = None) -> Any:
        return self.data.get(field_name, default)

    @property
    def is_closed(self) -> bool:
        return self.state == RecordState.PERSISTED

    class Config:
        json_schema_extra = {
            "example": {
                "draft_id": "draft_5f0c0e4b8c1d4f7a9e3a2b1c0d9e8f7a",
                "rule_set": "diet_request",
                "discriminator": None,
                "data": {
                    "iyc_number": "IYC123",
                    "patient_name": "Asha",
                    "duration": 7,
                    "start_date": "2024-01-02",
                    "end_date": "2024-01-08",
                },
                "state": "draft",
            }
        }
