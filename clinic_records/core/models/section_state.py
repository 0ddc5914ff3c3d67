"""
SectionStateEntry model: an in-progress draft parked while the user navigates away.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from .record_draft import RecordDraft


class SectionStateEntry(BaseModel):
    """
    Cached draft for one logical form section.

    Attributes:
        section_key: Logical section identity (e.g. "register/new-patient")
        draft: Copy of the draft at the moment the section was left
        touched: Whether the user interacted with the form before leaving
        saved_at: When the entry was last written
    """

    section_key: str = Field(..., min_length=1)
    draft: RecordDraft
    touched: bool = False
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
