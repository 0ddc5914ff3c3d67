"""
ExternalRecordSnapshot model: an immutable copy of business keys from the store.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class SnapshotEntry(BaseModel):
    """One stored record's identity and business key."""

    record_id: str
    key: str

    class Config:
        frozen = True


class ExternalRecordSnapshot(BaseModel):
    """
    Timestamped, read-only copy of business keys used for uniqueness checks.

    Snapshots may be shared between validators without synchronization.
    Staleness is tolerated but reported through :meth:`is_stale`.

    Attributes:
        key_domain: Which record family the keys belong to (rule set name)
        entries: Identity/key pairs fetched from the store
        fetched_at: When the snapshot was taken
    """

    key_domain: str
    entries: tuple[SnapshotEntry, ...] = ()
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def age_seconds(self, now: datetime | None = None) -> float:
        now = now or datetime.now(timezone.utc)
        return max(0.0, (now - self.fetched_at).total_seconds())

    def is_stale(self, max_age_seconds: float, now: datetime | None = None) -> bool:
        return self.age_seconds(now) > max_age_seconds

    def keys(self) -> list[str]:
        return [entry.key for entry in self.entries]

    class Config:
        frozen = True
