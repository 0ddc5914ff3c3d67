"""
PostgreSQL-backed record store and sequence generator.

Records are kept in a single table with a JSONB payload; the business
key gets its own column so uniqueness snapshots are a cheap projection.
psycopg calls are synchronous, so each one runs in a worker thread
behind the async collaborator interface.
"""

import asyncio
import json
from typing import Any
from uuid import uuid4

from psycopg import Error as PsycopgError
from psycopg import OperationalError

from clinic_records.core.errors import (
    PersistenceError,
    SequenceUnavailableError,
    StoreUnavailableError,
)
from clinic_records.core.models import ExternalRecordSnapshot, SnapshotEntry
from clinic_records.observability.logger import get_logger

from .connection import DatabaseConnectionPool, PoolClosedError
from .sequence import format_identifier

logger = get_logger(__name__)

SCHEMA_DDL = """
    CREATE TABLE IF NOT EXISTS clinic_record (
        record_id    TEXT PRIMARY KEY,
        key_domain   TEXT NOT NULL,
        business_key TEXT,
        fields       JSONB NOT NULL,
        created_at   TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at   TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    CREATE INDEX IF NOT EXISTS clinic_record_key_idx
        ON clinic_record (key_domain, lower(business_key));
    CREATE TABLE IF NOT EXISTS clinic_sequence (
        name  TEXT PRIMARY KEY,
        value BIGINT NOT NULL
    );
"""


class PostgresRecordStore:
    """
    RecordStore on top of a DatabaseConnectionPool.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Initialize the store.

        Args:
            pool: Open database connection pool
        """
        self.pool = pool

    def ensure_schema(self) -> None:
        """Create the record and sequence tables if they do not exist."""
        self.pool.execute_command(SCHEMA_DDL)

    async def fetch_all(self, key_domain: str) -> ExternalRecordSnapshot:
        query = """
            SELECT record_id, business_key
            FROM clinic_record
            WHERE key_domain = %s AND business_key IS NOT NULL AND business_key <> ''
            ORDER BY created_at
        """
        try:
            rows = await asyncio.to_thread(self.pool.execute_query, query, (key_domain,))
        except (PsycopgError, PoolClosedError) as e:
            raise StoreUnavailableError("fetch_all", str(e)) from e

        entries = tuple(SnapshotEntry(record_id=row["record_id"], key=row["business_key"]) for row in rows)
        return ExternalRecordSnapshot(key_domain=key_domain, entries=entries)

    async def find_by_key(self, key_domain: str, business_key: str) -> dict[str, Any] | None:
        query = """
            SELECT fields
            FROM clinic_record
            WHERE key_domain = %s AND lower(business_key) = lower(%s)
            ORDER BY created_at
            LIMIT 1
        """
        try:
            rows = await asyncio.to_thread(self.pool.execute_query, query, (key_domain, business_key.strip()))
        except (PsycopgError, PoolClosedError) as e:
            raise StoreUnavailableError("find_by_key", str(e)) from e
        return dict(rows[0]["fields"]) if rows else None

    async def create(self, key_domain: str, fields: dict[str, Any], business_key: str | None = None) -> str:
        record_id = f"rec_{uuid4().hex[:12]}"
        command = """
            INSERT INTO clinic_record (record_id, key_domain, business_key, fields)
            VALUES (%s, %s, %s, %s)
        """
        await self._write("create", command, (record_id, key_domain, business_key, json.dumps(fields, default=str)))
        return record_id

    async def update(self, record_id: str, fields: dict[str, Any], business_key: str | None = None) -> None:
        command = """
            UPDATE clinic_record
            SET fields = %s, business_key = %s, updated_at = now()
            WHERE record_id = %s
        """
        rowcount = await self._write("update", command, (json.dumps(fields, default=str), business_key, record_id))
        if rowcount == 0:
            raise PersistenceError("update", f"record {record_id} not found")

    async def get(self, record_id: str) -> dict[str, Any] | None:
        """Fetch one stored row (record_id, key_domain, business_key, fields)."""
        query = "SELECT record_id, key_domain, business_key, fields FROM clinic_record WHERE record_id = %s"
        try:
            rows = await asyncio.to_thread(self.pool.execute_query, query, (record_id,))
        except (PsycopgError, PoolClosedError) as e:
            raise StoreUnavailableError("get", str(e)) from e
        return rows[0] if rows else None

    async def _write(self, operation: str, command: str, params: tuple) -> int:
        try:
            return await asyncio.to_thread(self.pool.execute_command, command, params)
        except (OperationalError, PoolClosedError) as e:
            raise StoreUnavailableError(operation, str(e)) from e
        except PsycopgError as e:
            logger.error("Record store rejected write", extra={"operation": operation, "error_message": str(e)})
            raise PersistenceError(operation, str(e)) from e


class PostgresSequenceGenerator:
    """
    SequenceGenerator backed by an atomically incremented counter row.
    """

    def __init__(self, pool: DatabaseConnectionPool, name: str, prefix: str = "ID", width: int = 3):
        self.pool = pool
        self.name = name
        self.prefix = prefix
        self.width = width

    async def next(self) -> str:
        command = """
            INSERT INTO clinic_sequence (name, value) VALUES (%s, 1)
            ON CONFLICT (name) DO UPDATE SET value = clinic_sequence.value + 1
            RETURNING value
        """
        try:
            rows = await asyncio.to_thread(self.pool.execute_query, command, (self.name,))
        except (PsycopgError, PoolClosedError) as e:
            raise SequenceUnavailableError(f"Sequence '{self.name}' unavailable: {e}") from e
        return format_identifier(self.prefix, int(rows[0]["value"]), self.width)
