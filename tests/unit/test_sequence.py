"""
Unit tests for identifier sequences and notification sinks.
"""

import asyncio
import logging

import pytest

from clinic_records.core.errors import SequenceUnavailableError
from clinic_records.store.memory import InMemoryRecordStore
from clinic_records.store.notifications import CollectingNotificationSink, LoggingNotificationSink
from clinic_records.store.sequence import PrefixedSequenceGenerator, format_identifier, highest_number


@pytest.mark.unit
class TestIdentifierHelpers:
    """Tests for format_identifier and highest_number"""

    def test_format_identifier(self):
        assert format_identifier("ID", 1, 3) == "ID001"
        assert format_identifier("ID", 1234, 3) == "ID1234"

    def test_highest_number_ignores_other_keys(self):
        keys = ["ID004", "IYC120", "id010", " ID002 ", "IDX", "ID"]

        assert highest_number(keys, "ID") == 10

    def test_highest_number_empty(self):
        assert highest_number([], "ID") == 0


@pytest.mark.unit
class TestPrefixedSequenceGenerator:
    """Tests for PrefixedSequenceGenerator"""

    def test_first_identifier(self):
        sequence = PrefixedSequenceGenerator(InMemoryRecordStore(), "patient_registration")

        assert asyncio.run(sequence.next()) == "ID001"

    def test_continues_after_highest(self):
        store = InMemoryRecordStore()
        store.seed("patient_registration", {}, business_key="ID041")
        store.seed("patient_registration", {}, business_key="ID009")
        store.seed("diet_request", {}, business_key="ID900")

        sequence = PrefixedSequenceGenerator(store, "patient_registration")

        assert asyncio.run(sequence.next()) == "ID042"

    def test_never_repeats_unpersisted_identifier(self):
        sequence = PrefixedSequenceGenerator(InMemoryRecordStore(), "patient_registration")

        async def run():
            return [await sequence.next() for _ in range(3)]

        assert asyncio.run(run()) == ["ID001", "ID002", "ID003"]

    def test_unreachable_store_raises(self):
        store = InMemoryRecordStore()
        store.available = False
        sequence = PrefixedSequenceGenerator(store, "patient_registration")

        with pytest.raises(SequenceUnavailableError, match="Cannot reach"):
            asyncio.run(sequence.next())

    def test_unexpected_listing_error_raises_typed_error(self):
        class BrokenListingStore(InMemoryRecordStore):
            async def fetch_all(self, key_domain):
                raise RuntimeError('relation "clinic_record" does not exist')

        sequence = PrefixedSequenceGenerator(BrokenListingStore(), "patient_registration")

        with pytest.raises(SequenceUnavailableError, match="does not exist"):
            asyncio.run(sequence.next())


@pytest.mark.unit
class TestNotificationSinks:
    """Tests for notification sinks"""

    def test_collecting_sink(self):
        sink = CollectingNotificationSink()

        assert sink.last() is None
        sink.notify("error", "Failed", draft_id="d1")
        sink.notify("success", "Saved")

        assert sink.levels() == ["error", "success"]
        assert sink.last() == ("success", "Saved")
        assert sink.messages[0][2] == {"draft_id": "d1"}

    def test_logging_sink(self, caplog):
        sink = LoggingNotificationSink(logging.getLogger("tests.notifications"))

        with caplog.at_level("INFO", logger="tests.notifications"):
            sink.notify("warning", "Check the form", draft_id="d1")

        assert "Check the form" in caplog.text
