"""
Unit tests for how the PostgreSQL store maps driver errors.

A stand-in pool raises psycopg errors directly, so no database is needed.
"""

import asyncio

import pytest
from psycopg import OperationalError
from psycopg.errors import UndefinedTable, UniqueViolation

from clinic_records.core.errors import PersistenceError, SequenceUnavailableError, StoreUnavailableError
from clinic_records.store.connection import PoolClosedError
from clinic_records.store.postgres import PostgresRecordStore, PostgresSequenceGenerator


class FailingPool:
    """Pool whose every statement raises the given error"""

    def __init__(self, error):
        self.error = error

    def execute_query(self, query, params=None):
        raise self.error

    def execute_command(self, command, params=None):
        raise self.error


MISSING_TABLE = UndefinedTable('relation "clinic_record" does not exist')


@pytest.mark.unit
class TestReadErrors:
    """Every driver error on a read means the store is unavailable"""

    @pytest.mark.parametrize("error", [MISSING_TABLE, OperationalError("server closed the connection"),
                                       PoolClosedError("Database pool is closed")])
    def test_fetch_all(self, error):
        store = PostgresRecordStore(FailingPool(error))

        with pytest.raises(StoreUnavailableError) as exc_info:
            asyncio.run(store.fetch_all("patient_registration"))

        assert exc_info.value.operation == "fetch_all"

    def test_get(self):
        store = PostgresRecordStore(FailingPool(MISSING_TABLE))

        with pytest.raises(StoreUnavailableError, match="does not exist"):
            asyncio.run(store.get("rec_1"))

    def test_find_by_key(self):
        store = PostgresRecordStore(FailingPool(MISSING_TABLE))

        with pytest.raises(StoreUnavailableError):
            asyncio.run(store.find_by_key("patient_registration", "IYC1"))

    def test_sequence(self):
        sequence = PostgresSequenceGenerator(FailingPool(MISSING_TABLE), "patient_registration")

        with pytest.raises(SequenceUnavailableError):
            asyncio.run(sequence.next())


@pytest.mark.unit
class TestWriteErrors:
    """Connection trouble on a write is unavailability; anything else is a rejected write"""

    def test_lost_connection(self):
        store = PostgresRecordStore(FailingPool(OperationalError("server closed the connection")))

        with pytest.raises(StoreUnavailableError):
            asyncio.run(store.create("patient_registration", {"name": "Asha"}, business_key="IYC1"))

    def test_constraint_violation(self):
        store = PostgresRecordStore(FailingPool(UniqueViolation("duplicate key value")))

        with pytest.raises(PersistenceError):
            asyncio.run(store.update("rec_1", {"name": "Asha"}))
