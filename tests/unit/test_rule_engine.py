"""
Unit tests for the field rule engine, rule configuration and predicates.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from clinic_records.core.models import RecordDraft
from clinic_records.core.rules import (
    DIET_REQUEST,
    PATIENT_REGISTRATION,
    FieldRuleEngine,
    RuleSetBuilder,
    RuleSetLoader,
    all_of,
    any_of,
    discriminator_in,
    evaluate,
    field_equals,
    field_present,
    negate,
    parse_predicate,
    parse_rule_set,
)
from clinic_records.core.rules.catalog import NON_POORNANGA_CATEGORIES, PATIENT_CATEGORIES


@pytest.fixture
def registration_engine():
    return FieldRuleEngine(PATIENT_REGISTRATION)


@pytest.mark.unit
class TestFieldRuleEngine:
    """Tests for FieldRuleEngine"""

    def test_valid_poornanga_registration(self, registration_engine, poornanga_data):
        result = registration_engine.evaluate(poornanga_data, "poornanga")

        assert result.is_valid is True
        assert result.invalid_fields == {}
        assert "iyc" in result.valid_fields
        assert result.rule_set == "patient_registration"
        assert result.discriminator == "poornanga"

    def test_conditional_requirement_for_poornanga(self, registration_engine, poornanga_data):
        """iyc is required for poornanga and optional for non-poornanga"""
        poornanga_data["iyc"] = ""
        poornanga_data["category"] = "STV"

        under_a = registration_engine.evaluate(poornanga_data, "poornanga")
        under_b = registration_engine.evaluate(poornanga_data, "non-poornanga")

        assert under_a.is_valid is False
        assert under_a.reason_for("iyc") == "IYC number is required"
        assert under_a.is_required("iyc") is True

        assert under_b.is_valid is True
        assert under_b.is_required("iyc") is False

    def test_missing_discriminator_is_reported(self, registration_engine, poornanga_data):
        result = registration_engine.evaluate(poornanga_data, None)

        assert result.is_valid is False
        assert result.reason_for("patient_type") == "A type must be selected"

    def test_unknown_discriminator_is_reported(self, registration_engine, poornanga_data):
        result = registration_engine.evaluate(poornanga_data, "visitor")

        assert "patient_type" in result.invalid_fields

    def test_allowed_values_follow_discriminator(self, registration_engine, poornanga_data):
        result_a = registration_engine.evaluate(poornanga_data, "poornanga")
        result_b = registration_engine.evaluate(poornanga_data, "non-poornanga")

        assert result_a.allowed_values["category"] == tuple(PATIENT_CATEGORIES)
        assert result_b.allowed_values["category"] == tuple(NON_POORNANGA_CATEGORIES)
        assert "FTV" not in result_b.allowed_values["category"]

    def test_ftv_is_rejected_for_non_poornanga(self, registration_engine, poornanga_data):
        result = registration_engine.evaluate(poornanga_data, "non-poornanga")

        assert result.is_valid is False
        assert "FTV" in result.reason_for("category")

    def test_format_rules_apply_to_present_values(self, registration_engine, poornanga_data):
        poornanga_data.update({"email": "not-an-email", "age": "130"})

        result = registration_engine.evaluate(poornanga_data, "poornanga")

        assert result.reason_for("email") == "Enter a valid email address"
        assert "maximum" in result.reason_for("age")

    def test_multiple_reasons_are_sorted_and_joined(self):
        rule_set = (
            RuleSetBuilder("multi")
            .pattern("code", r"[A-Z]+", message="b: letters only")
            .range("code", min_value=10)
            .build()
        )

        result = FieldRuleEngine(rule_set).evaluate({"code": "5"})

        reasons = result.reason_for("code").split("; ")
        assert reasons == sorted(reasons)
        assert len(reasons) == 2

    def test_evaluate_accepts_draft(self, registration_engine, poornanga_data):
        draft = RecordDraft(rule_set="patient_registration", discriminator="poornanga", data=poornanga_data)

        assert registration_engine.evaluate(draft).is_valid is True

    def test_evaluate_does_not_mutate_draft(self, registration_engine, poornanga_data):
        draft = RecordDraft(rule_set="patient_registration", discriminator="poornanga", data=dict(poornanga_data))
        before = draft.model_dump()

        registration_engine.evaluate(draft)

        assert draft.model_dump() == before

    def test_toggle_discriminator_restores_state(self, registration_engine, poornanga_data):
        """Evaluating A, then B, then A yields the same result for A"""
        poornanga_data["iyc"] = ""

        first = registration_engine.evaluate(poornanga_data, "poornanga")
        registration_engine.evaluate(poornanga_data, "non-poornanga")
        again = registration_engine.evaluate(poornanga_data, "poornanga")

        assert first == again
        assert poornanga_data["iyc"] == ""

    def test_rule_set_without_discriminator(self, diet_data):
        result = FieldRuleEngine(DIET_REQUEST).evaluate(diet_data)

        assert result.is_valid is True
        assert result.discriminator is None

    def test_diet_request_duration_bounds(self, diet_data):
        diet_data["duration"] = "0"

        result = FieldRuleEngine(DIET_REQUEST).evaluate(diet_data)

        assert "duration" in result.invalid_fields

    def test_module_level_evaluate(self, poornanga_data):
        assert evaluate(poornanga_data, "poornanga", PATIENT_REGISTRATION).is_valid is True

    def test_bad_regex_fails_at_construction(self):
        rule_set = RuleSetBuilder("broken").pattern("code", "[unclosed").build()

        with pytest.raises(ValueError, match="code"):
            FieldRuleEngine(rule_set)

    @settings(max_examples=50)
    @given(
        values=st.dictionaries(
            st.sampled_from(["name", "email", "phone", "category", "age", "department", "iyc"]),
            st.one_of(st.none(), st.text(max_size=12), st.integers(min_value=-5, max_value=200)),
        ),
        discriminator=st.sampled_from([None, "poornanga", "non-poornanga", "other"]),
    )
    def test_evaluation_is_idempotent(self, values, discriminator):
        """Property: identical input gives identical output and never raises"""
        engine = FieldRuleEngine(PATIENT_REGISTRATION)

        first = engine.evaluate(values, discriminator)
        second = engine.evaluate(values, discriminator)

        assert first == second
        assert first.is_valid == (not first.invalid_fields)
        assert first.valid_fields.isdisjoint(first.invalid_fields)

    def test_get_rule_summary(self, registration_engine):
        summary = registration_engine.get_rule_summary()

        assert summary["rule_set"] == "patient_registration"
        assert summary["base_required"] == 6
        assert summary["total_rules"] == 5
        assert summary["rules_by_type"]["conditional_required"] == 1
        assert summary["rules_by_type"]["allowed_values"] == 2
        assert summary["rules_by_type"]["pattern"] == 1
        assert summary["rules_by_type"]["range"] == 1
        assert summary["autofills"] == 2


@pytest.mark.unit
class TestPredicates:
    """Tests for tagged predicates"""

    def test_field_equals_is_case_insensitive(self):
        assert field_equals("category", "Samskriti").holds(None, {"category": " samskriti "})

    def test_field_present(self):
        predicate = field_present("iyc")
        assert predicate.holds(None, {"iyc": "X"})
        assert not predicate.holds(None, {"iyc": "  "})

    def test_combinators(self):
        predicate = all_of(discriminator_in("a"), negate(field_present("x")))
        assert predicate.holds("a", {})
        assert not predicate.holds("a", {"x": "1"})
        assert any_of(discriminator_in("a"), discriminator_in("b")).holds("b", {})

    def test_parse_predicate(self):
        predicate = parse_predicate({"kind": "discriminator_in", "values": ["poornanga"]})
        assert predicate.holds("poornanga", {})

    def test_parse_nested_predicate(self):
        predicate = parse_predicate({
            "kind": "not",
            "predicate": {"kind": "field_equals", "field": "category", "value": "Guest"},
        })
        assert predicate.holds(None, {"category": "Staff"})

    def test_parse_unknown_kind_raises(self):
        with pytest.raises(ValueError, match="Invalid predicate"):
            parse_predicate({"kind": "eval", "code": "1 == 1"})


@pytest.mark.unit
class TestRuleSetLoader:
    """Tests for RuleSetLoader"""

    def test_load_from_yaml(self, tmp_path):
        config_file = tmp_path / "rules.yaml"
        config_file.write_text(
            """
name: visitor_pass
discriminator:
  field: visitor_type
  values: [day, overnight]
required: [name]
key:
  field: pass_no
  transform: upper
fields:
  room:
    - required_when: {kind: discriminator_in, values: [overnight]}
      message: Room is required for overnight stays
  gate:
    - allowed_values: [north, south]
      when: {kind: discriminator_in, values: [day]}
autofill:
  - when: {kind: discriminator_in, values: [overnight]}
    values: {gate: north}
"""
        )

        rule_set = RuleSetLoader(config_file).load()
        engine = FieldRuleEngine(rule_set)

        assert rule_set.name == "visitor_pass"
        assert rule_set.key_transform == "upper"
        result = engine.evaluate({"name": "Ravi"}, "overnight")
        assert result.reason_for("room") == "Room is required for overnight stays"
        assert engine.evaluate({"name": "Ravi", "gate": "east"}, "day").reason_for("gate") is not None

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            RuleSetLoader(tmp_path / "nope.yaml")

    def test_missing_name_raises(self, tmp_path):
        config_file = tmp_path / "rules.yaml"
        config_file.write_text("required: [name]\n")

        with pytest.raises(ValueError, match="name"):
            RuleSetLoader(config_file).load()

    def test_unknown_rule_key_raises(self):
        with pytest.raises(ValueError, match="Unknown keys"):
            parse_rule_set({"name": "x", "fields": {"a": [{"requird": True}]}})

    def test_discriminator_without_values_raises(self):
        with pytest.raises(ValueError):
            parse_rule_set({"name": "x", "discriminator": {"field": "kind"}})

    def test_auto_key_requires_key_field(self):
        with pytest.raises(ValueError):
            parse_rule_set({
                "name": "x",
                "discriminator": {"field": "kind", "values": ["a"], "auto_key": ["a"]},
            })


@pytest.mark.unit
class TestRuleSetBuilder:
    """Tests for RuleSetBuilder"""

    def test_builder_chain(self):
        rule_set = (
            RuleSetBuilder("leave", "Leave requests")
            .discriminator("leave_type", ["sick", "annual"])
            .require("name")
            .require_for("certificate", "sick")
            .dates(start="from", duration="days", end="to")
            .build()
        )

        assert rule_set.discriminator_values == ("sick", "annual")
        assert rule_set.governed_fields() == {"name", "certificate", "leave_type"}
        assert rule_set.date_fields.names() == {"from", "days", "to"}

    def test_normalize_key(self):
        assert PATIENT_REGISTRATION.normalize_key("  iyc42 ") == "IYC42"
        assert DIET_REQUEST.normalize_key(None) == ""

    def test_uses_auto_key(self):
        assert PATIENT_REGISTRATION.uses_auto_key("non-poornanga") is True
        assert PATIENT_REGISTRATION.uses_auto_key("poornanga") is False
        assert PATIENT_REGISTRATION.uses_auto_key(None) is False
