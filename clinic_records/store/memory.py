"""
In-process record store.

Keeps records in dictionaries. Useful as the default store for local
runs and as a controllable collaborator in tests: it can be switched
offline or made to reject writes.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from clinic_records.core.errors import PersistenceError, StoreUnavailableError
from clinic_records.core.models import ExternalRecordSnapshot, SnapshotEntry


class InMemoryRecordStore:
    """
    Dictionary-backed RecordStore.

    Attributes:
        available: When False every call raises StoreUnavailableError
        reject_writes: When True create/update raise PersistenceError
        latency: Seconds each call sleeps before answering
    """

    def __init__(self, latency: float = 0.0):
        self.records: dict[str, dict[str, Any]] = {}
        self.available = True
        self.reject_writes = False
        self.latency = latency
        self.calls: list[str] = []

    def seed(self, key_domain: str, fields: dict[str, Any], business_key: str | None = None,
             record_id: str | None = None) -> str:
        """Insert a record synchronously (test and fixture helper)."""
        record_id = record_id or f"rec_{uuid4().hex[:12]}"
        self.records[record_id] = {
            "record_id": record_id,
            "key_domain": key_domain,
            "business_key": business_key,
            "fields": dict(fields),
            "updated_at": datetime.now(timezone.utc),
        }
        return record_id

    def get(self, record_id: str) -> dict[str, Any] | None:
        return self.records.get(record_id)

    async def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        if self.latency:
            await asyncio.sleep(self.latency)
        if not self.available:
            raise StoreUnavailableError(operation, "store is offline")

    async def fetch_all(self, key_domain: str) -> ExternalRecordSnapshot:
        await self._enter("fetch_all")
        entries = tuple(
            SnapshotEntry(record_id=rid, key=rec["business_key"])
            for rid, rec in self.records.items()
            if rec["key_domain"] == key_domain and rec["business_key"]
        )
        return ExternalRecordSnapshot(key_domain=key_domain, entries=entries)

    async def find_by_key(self, key_domain: str, business_key: str) -> dict[str, Any] | None:
        await self._enter("find_by_key")
        wanted = str(business_key).strip().lower()
        for rec in self.records.values():
            key = rec["business_key"]
            if rec["key_domain"] == key_domain and key and key.strip().lower() == wanted:
                return dict(rec["fields"])
        return None

    async def create(self, key_domain: str, fields: dict[str, Any], business_key: str | None = None) -> str:
        await self._enter("create")
        if self.reject_writes:
            raise PersistenceError("create", "write rejected by store")
        return self.seed(key_domain, fields, business_key)

    async def update(self, record_id: str, fields: dict[str, Any], business_key: str | None = None) -> None:
        await self._enter("update")
        if self.reject_writes:
            raise PersistenceError("update", "write rejected by store")
        record = self.records.get(record_id)
        if record is None:
            raise PersistenceError("update", f"record {record_id} not found")
        record["fields"] = dict(fields)
        record["business_key"] = business_key
        record["updated_at"] = datetime.now(timezone.utc)
