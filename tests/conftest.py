"""
Pytest configuration and fixtures for clinic-records tests

This module provides shared fixtures for unit and integration tests.
"""
from datetime import date
from pathlib import Path
from typing import Generator

import pytest
from dotenv import dotenv_values
from hypothesis import HealthCheck, settings as hypothesis_settings
from testcontainers.postgres import PostgresContainer

from clinic_records.core.lifecycle import RecordLifecycleManager
from clinic_records.core.models import PersistedRecord, RecordStatus
from clinic_records.core.rules import default_registry
from clinic_records.core.settings import EngineSettings
from clinic_records.store.memory import InMemoryRecordStore
from clinic_records.store.notifications import CollectingNotificationSink
from clinic_records.store.sequence import PrefixedSequenceGenerator


# Timing-only checks trip on a cold Hypothesis cache (first run in a clean tree)
hypothesis_settings.register_profile(
    "clinic", suppress_health_check=[HealthCheck.too_slow], deadline=None
)
hypothesis_settings.load_profile("clinic")


# =======================
# ENGINE FIXTURES
# =======================

FIXED_TODAY = date(2024, 1, 15)


@pytest.fixture
def registry():
    """Registry with the built-in rule sets"""
    return default_registry()


@pytest.fixture
def store() -> InMemoryRecordStore:
    """Empty in-memory record store"""
    return InMemoryRecordStore()


@pytest.fixture
def sink() -> CollectingNotificationSink:
    """Notification sink that records every message"""
    return CollectingNotificationSink()


@pytest.fixture
def settings() -> EngineSettings:
    """Settings without debounce delay"""
    return EngineSettings(debounce_seconds=0.0)


@pytest.fixture
def manager(store, registry, sink, settings) -> RecordLifecycleManager:
    """
    Lifecycle manager wired to in-memory collaborators

    The clock is pinned to 2024-01-15 so requested dates are deterministic.
    """
    return RecordLifecycleManager(
        store,
        registry=registry,
        sequence=PrefixedSequenceGenerator(store, "patient_registration"),
        notifier=sink,
        settings=settings,
        today=lambda: FIXED_TODAY,
    )


@pytest.fixture
def completed_diet_request() -> PersistedRecord:
    """A completed diet request for patient Asha (record P1)"""
    return PersistedRecord(
        record_id="P1",
        rule_set="diet_request",
        data={
            "id": "P1",
            "iyc_number": "IYC123",
            "patient_name": "Asha",
            "anchor": "Ravi",
            "others": "No onion",
            "duration": 7,
            "start_date": "2024-01-02",
            "end_date": "2024-01-08",
            "date_requested": "2024-01-01",
            "status": "Completed",
        },
        status=RecordStatus.COMPLETED,
    )


@pytest.fixture
def poornanga_data() -> dict:
    """Field values that pass every poornanga registration rule"""
    return {
        "name": "Asha",
        "email": "asha@example.org",
        "phone": "9876543210",
        "category": "FTV",
        "age": "34",
        "department": "Kitchen",
        "iyc": "iyc123",
    }


@pytest.fixture
def diet_data() -> dict:
    """Field values that pass every diet request rule"""
    return {
        "iyc_number": "IYC123",
        "patient_name": "Asha",
        "anchor": "Ravi",
        "others": "No onion",
        "duration": "7",
        "start_date": "2024-01-02",
    }


# =======================
# POSTGRES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """One PostgreSQL 16 container shared by every integration test"""
    container = PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_clinic",
        password="test_password",
        dbname="test_clinic",
    )
    with container:
        yield container


# =======================
# ENVIRONMENT
# =======================

@pytest.fixture
def test_env_vars(monkeypatch):
    """Apply config/test.env for the duration of one test"""
    env_file = Path(__file__).resolve().parent.parent / "config" / "test.env"
    for name, value in dotenv_values(env_file).items():
        if value is not None:
            monkeypatch.setenv(name, value)
