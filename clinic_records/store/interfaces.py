"""
Collaborator interfaces consumed by the engine.

The engine only talks to the outside world through these protocols:
a record store, a sequence generator for auto-generated business keys,
and a notification sink for user-facing messages. Records cross the
boundary as JSON-shaped mappings keyed by field name.
"""

from typing import Any, Protocol

from clinic_records.core.models import ExternalRecordSnapshot


class RecordStore(Protocol):
    """
    Remote record store.

    Implementations raise StoreUnavailableError when they cannot be
    reached and PersistenceError when a write is rejected.
    """

    async def fetch_all(self, key_domain: str) -> ExternalRecordSnapshot:
        """Snapshot of identities and business keys for one record family."""
        ...

    async def find_by_key(self, key_domain: str, business_key: str) -> dict[str, Any] | None:
        """Fields of the record holding ``business_key`` (case-insensitive), or None."""
        ...

    async def create(self, key_domain: str, fields: dict[str, Any], business_key: str | None = None) -> str:
        """Store a new record and return its opaque identity."""
        ...

    async def update(self, record_id: str, fields: dict[str, Any], business_key: str | None = None) -> None:
        """Replace the fields of an existing record."""
        ...


class SequenceGenerator(Protocol):
    """Source of system-generated business keys."""

    async def next(self) -> str:
        """
        Reserve the next identifier.

        Raises:
            SequenceUnavailableError: If the backing store cannot be reached
        """
        ...


class NotificationSink(Protocol):
    """Receives success/error/info messages for the user."""

    def notify(self, level: str, message: str, **context: Any) -> None:
        ...
