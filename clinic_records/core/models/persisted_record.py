"""
PersistedRecord model representing a record accepted by the external store.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class RecordStatus(str, Enum):
    """Closed status set of persisted records."""

    ACTIVE = "Active"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


INITIAL_STATUS = RecordStatus.ACTIVE


class PersistedRecord(BaseModel):
    """
    A record that the external store has accepted.

    Attributes:
        record_id: Opaque identity assigned by the store (row equivalent)
        rule_set: Name of the rule set the record was validated with
        discriminator: Discriminator value at submission time
        data: Field name -> value as stored
        business_key: Normalized business key, if the rule set has one
        status: Current status from the closed status set
        persisted_at: When the store accepted the record
    """

    record_id: str = Field(..., min_length=1)
    rule_set: str
    discriminator: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    business_key: str | None = None
    status: RecordStatus = INITIAL_STATUS
    persisted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "record_id": "P1",
                "rule_set": "diet_request",
                "data": {
                    "patient_name": "Asha",
                    "duration": 7,
                    "start_date": "2024-01-02",
                    "end_date": "2024-01-08",
                    "status": "Completed",
                },
                "status": "Completed",
            }
        }
