"""
Unit tests for field validators.

Includes property-based testing with hypothesis for validators.
"""

import re

import pytest
from hypothesis import given
from hypothesis import strategies as st

from clinic_records.core.validators import (
    AllowedValuesValidator,
    RangeValidator,
    RegexValidator,
    RequiredFieldValidator,
    ValidationError,
    is_blank,
)


@pytest.mark.unit
class TestRequiredFieldValidator:
    """Tests for RequiredFieldValidator"""

    def test_valid_required_field(self):
        """Test validation passes for present field"""
        validator = RequiredFieldValidator("name")
        record = {"name": "Asha"}
        validator.validate(record["name"], record)  # Should not raise

    def test_missing_field_raises_error(self):
        validator = RequiredFieldValidator("name")
        record = {"age": 30}

        with pytest.raises(ValidationError) as exc_info:
            validator.validate(None, record)

        assert "required" in str(exc_info.value).lower()
        assert exc_info.value.field_name == "name"
        assert exc_info.value.rule_name == "required"

    def test_null_field_raises_error(self):
        validator = RequiredFieldValidator("name")

        with pytest.raises(ValidationError) as exc_info:
            validator.validate(None, {"name": None})

        assert "null" in str(exc_info.value).lower()

    def test_whitespace_only_raises_error(self):
        validator = RequiredFieldValidator("name")

        with pytest.raises(ValidationError):
            validator.validate("   ", {"name": "   "})

    def test_zero_is_a_value(self):
        validator = RequiredFieldValidator("age")
        validator.validate(0, {"age": 0})

    def test_rule_type(self):
        assert RequiredFieldValidator("name").rule_type == "required"


@pytest.mark.unit
class TestAllowedValuesValidator:
    """Tests for AllowedValuesValidator"""

    def test_allowed_value_passes(self):
        validator = AllowedValuesValidator("category", {"values": ["FTV", "STV"]})
        validator.validate("STV", {"category": "STV"})

    def test_value_is_trimmed(self):
        validator = AllowedValuesValidator("category", {"values": ["FTV"]})
        validator.validate(" FTV ", {})

    def test_disallowed_value_fails(self):
        validator = AllowedValuesValidator("category", {"values": ["STV", "LTV"]})

        with pytest.raises(ValidationError) as exc_info:
            validator.validate("FTV", {"category": "FTV"})

        assert exc_info.value.rule_name == "allowed_values"
        assert "STV, LTV" in exc_info.value.message

    def test_blank_value_is_skipped(self):
        validator = AllowedValuesValidator("category", {"values": ["FTV"]})
        validator.validate("", {"category": ""})
        validator.validate(None, {})

    def test_requires_values(self):
        with pytest.raises(ValueError):
            AllowedValuesValidator("category", {"values": []})


@pytest.mark.unit
class TestRegexValidator:
    """Tests for RegexValidator"""

    def test_matching_email(self):
        validator = RegexValidator("email", {"pattern": r"[^@\s]+@[^@\s]+\.[^@\s]+"})
        validator.validate("asha@example.org", {})

    def test_requires_full_match(self):
        validator = RegexValidator("code", {"pattern": r"\d{3}"})

        with pytest.raises(ValidationError) as exc_info:
            validator.validate("1234", {})

        assert exc_info.value.rule_name == "pattern"

    def test_compiled_pattern_with_flags(self):
        validator = RegexValidator("code", {"pattern": re.compile(r"id\d+", re.IGNORECASE)})
        validator.validate("ID001", {})

    def test_invalid_pattern_raises_value_error(self):
        with pytest.raises(ValueError, match="Invalid regex"):
            RegexValidator("code", {"pattern": "[unclosed"})

    def test_missing_pattern_raises_value_error(self):
        with pytest.raises(ValueError):
            RegexValidator("code", {})

    def test_blank_value_is_skipped(self):
        RegexValidator("code", {"pattern": r"\d+"}).validate("  ", {})


@pytest.mark.unit
class TestRangeValidator:
    """Tests for RangeValidator"""

    def test_within_range(self):
        validator = RangeValidator("age", {"min": 0, "max": 120})
        validator.validate(34, {})
        validator.validate("34", {})

    def test_bounds_are_inclusive(self):
        validator = RangeValidator("duration", {"min": 1, "max": 365})
        validator.validate(1, {})
        validator.validate(365, {})

    def test_below_minimum(self):
        validator = RangeValidator("duration", {"min": 1})

        with pytest.raises(ValidationError) as exc_info:
            validator.validate("0", {})

        assert "minimum" in exc_info.value.message

    def test_above_maximum(self):
        validator = RangeValidator("age", {"max": 120})

        with pytest.raises(ValidationError) as exc_info:
            validator.validate(121, {})

        assert "maximum" in exc_info.value.message

    def test_non_numeric_fails(self):
        validator = RangeValidator("age", {"min": 0})

        with pytest.raises(ValidationError, match="numeric"):
            validator.validate("thirty", {})

    def test_bool_is_not_numeric(self):
        with pytest.raises(ValidationError):
            RangeValidator("age", {"min": 0}).validate(True, {})

    def test_requires_a_bound(self):
        with pytest.raises(ValueError):
            RangeValidator("age", {})

    @given(st.integers(min_value=0, max_value=120))
    def test_every_value_in_range_passes(self, age):
        """Property: all values within [min, max] pass"""
        RangeValidator("age", {"min": 0, "max": 120}).validate(str(age), {})

    @given(st.integers().filter(lambda n: n < 0 or n > 120))
    def test_every_value_outside_range_fails(self, age):
        """Property: all values outside [min, max] fail"""
        with pytest.raises(ValidationError):
            RangeValidator("age", {"min": 0, "max": 120}).validate(age, {})


@pytest.mark.unit
class TestIsBlank:
    """Tests for is_blank"""

    @pytest.mark.parametrize("value", [None, "", "   ", "\t\n"])
    def test_blank_values(self, value):
        assert is_blank(value) is True

    @pytest.mark.parametrize("value", ["x", 0, False, " a "])
    def test_non_blank_values(self, value):
        assert is_blank(value) is False
