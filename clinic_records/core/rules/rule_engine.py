"""
Rule engine evaluating conditional field rules against record drafts.

The engine resolves which rules are active for the draft's discriminator
and raw values, runs the matching validators, and produces a
ValidationResult. Evaluation is pure: it never mutates the draft, never
raises for bad input and gives identical results for identical input.
"""

from collections import defaultdict
from typing import Any, Mapping

from clinic_records.core.models import RecordDraft, ValidationResult
from clinic_records.core.validators import (
    AllowedValuesValidator,
    BaseValidator,
    RangeValidator,
    RegexValidator,
    RequiredFieldValidator,
    ValidationError,
    is_blank,
)

from .rule_set import FieldRule, RuleSet


class _CompiledRule:
    """A FieldRule with its validators built once."""

    def __init__(self, rule: FieldRule):
        self.rule = rule
        self.required = RequiredFieldValidator(rule.field)
        self.allowed = (
            AllowedValuesValidator(rule.field, {"values": rule.allowed_values})
            if rule.allowed_values
            else None
        )
        self.format_validators: list[BaseValidator] = []
        if rule.pattern:
            self.format_validators.append(RegexValidator(rule.field, {"pattern": rule.pattern}))
        if rule.min_value is not None or rule.max_value is not None:
            self.format_validators.append(
                RangeValidator(rule.field, {"min": rule.min_value, "max": rule.max_value})
            )


class FieldRuleEngine:
    """
    Evaluates one rule set.

    Instances hold only compiled, immutable rule data, so a single engine
    can be shared by every draft of its rule set.
    """

    def __init__(self, rule_set: RuleSet):
        """
        Initialize the engine.

        Args:
            rule_set: Rule table to evaluate

        Raises:
            ValueError: If a rule cannot be compiled (e.g. a bad regex)
        """
        self.rule_set = rule_set
        self._base_validators = [RequiredFieldValidator(name) for name in rule_set.base_required]
        self._compiled: list[_CompiledRule] = []
        for rule in rule_set.rules:
            try:
                self._compiled.append(_CompiledRule(rule))
            except ValueError as e:
                raise ValueError(f"Failed to compile rule for field '{rule.field}' in '{rule_set.name}': {e}")

    def evaluate(self, draft: RecordDraft | Mapping[str, Any], discriminator: str | None = None) -> ValidationResult:
        """
        Evaluate a draft against the rule set.

        Args:
            draft: A RecordDraft or a plain field mapping
            discriminator: Discriminator value; taken from the draft when omitted

        Returns:
            ValidationResult with per-field reasons and the active
            requiredness/allowed-value state
        """
        if isinstance(draft, RecordDraft):
            data: Mapping[str, Any] = draft.data
            if discriminator is None:
                discriminator = draft.discriminator
        else:
            data = draft

        reasons: dict[str, set[str]] = defaultdict(set)
        required: set[str] = set(self.rule_set.base_required)
        allowed: dict[str, tuple[str, ...]] = {}

        self._check_discriminator(discriminator, reasons)

        for validator in self._base_validators:
            self._run(validator, data, reasons, None)

        for compiled in self._compiled:
            rule = compiled.rule

            if rule.required_when.holds(discriminator, data):
                required.add(rule.field)
                self._run(compiled.required, data, reasons, rule.message)

            if compiled.allowed is not None and rule.values_when.holds(discriminator, data):
                allowed[rule.field] = self._merge_allowed(allowed.get(rule.field), compiled.allowed.values)
                self._run(compiled.allowed, data, reasons, rule.message)

            for validator in compiled.format_validators:
                self._run(validator, data, reasons, rule.message)

        invalid = {name: "; ".join(sorted(messages)) for name, messages in reasons.items()}
        governed = self.rule_set.governed_fields()

        return ValidationResult(
            rule_set=self.rule_set.name,
            discriminator=discriminator,
            is_valid=not invalid,
            valid_fields=frozenset(governed - invalid.keys()),
            invalid_fields=dict(sorted(invalid.items())),
            required_fields=frozenset(required),
            allowed_values=dict(sorted(allowed.items())),
        )

    def _check_discriminator(self, discriminator: str | None, reasons: dict[str, set[str]]) -> None:
        field = self.rule_set.discriminator_field
        if not field:
            return
        if is_blank(discriminator):
            reasons[field].add("A type must be selected")
        elif discriminator not in self.rule_set.discriminator_values:
            reasons[field].add(
                f"Value '{discriminator}' is not one of: {', '.join(self.rule_set.discriminator_values)}"
            )

    @staticmethod
    def _run(
        validator: BaseValidator,
        data: Mapping[str, Any],
        reasons: dict[str, set[str]],
        message: str | None,
    ) -> None:
        try:
            validator.validate(data.get(validator.field_name), data)
        except ValidationError as e:
            reasons[e.field_name].add(message or e.message)

    @staticmethod
    def _merge_allowed(current: tuple[str, ...] | None, values: tuple[str, ...]) -> tuple[str, ...]:
        # Several active value rules on one field narrow each other
        if current is None:
            return values
        return tuple(v for v in current if v in values)

    def get_rule_summary(self) -> dict[str, Any]:
        """
        Get summary of loaded rules.

        Returns:
            Dictionary with rule counts by kind
        """
        return {
            "rule_set": self.rule_set.name,
            "base_required": len(self.rule_set.base_required),
            "total_rules": len(self._compiled),
            "rules_by_type": self._count_by_type(),
            "autofills": len(self.rule_set.autofills),
            "discriminator_values": list(self.rule_set.discriminator_values),
        }

    def _count_by_type(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for compiled in self._compiled:
            kinds = []
            if compiled.rule.required_when.kind != "never":
                kinds.append("conditional_required")
            if compiled.allowed is not None:
                kinds.append("allowed_values")
            kinds.extend(v.rule_type for v in compiled.format_validators)
            for kind in kinds:
                counts[kind] = counts.get(kind, 0) + 1
        return counts


def evaluate(draft: RecordDraft | Mapping[str, Any], discriminator: str | None, rule_set: RuleSet) -> ValidationResult:
    """Evaluate ``draft`` under ``discriminator`` with a throwaway engine for ``rule_set``."""
    return FieldRuleEngine(rule_set).evaluate(draft, discriminator)
