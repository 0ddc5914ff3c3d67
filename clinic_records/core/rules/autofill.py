"""
Automatic field values driven by the discriminator and other fields.

Used for category-specific contact details and per-type defaults. The
function is pure and returns a new mapping; the input is not modified.
"""

from typing import Any, Mapping

from clinic_records.core.validators import is_blank

from .rule_set import RuleSet


def apply_autofill(data: Mapping[str, Any], discriminator: str | None, rule_set: RuleSet) -> dict[str, Any]:
    """
    Apply a rule set's autofill rules to a field mapping.

    Conditions are evaluated against the incoming values so the outcome
    does not depend on rule order. Clearing happens before filling, which
    lets one rule take over a field another rule released.

    Args:
        data: Current field values
        discriminator: Current discriminator value
        rule_set: Rule set providing the autofill rules

    Returns:
        New field mapping with autofilled values applied
    """
    result = dict(data)
    active = [rule for rule in rule_set.autofills if rule.when.holds(discriminator, data)]
    inactive = [rule for rule in rule_set.autofills if rule not in active]

    for rule in inactive:
        if not rule.overwrite:
            continue
        for field_name, value in rule.values.items():
            if result.get(field_name) == value:
                result[field_name] = ""

    for rule in active:
        for field_name, value in rule.values.items():
            if rule.overwrite or is_blank(result.get(field_name)):
                result[field_name] = value

    return result


def locked_fields(data: Mapping[str, Any], discriminator: str | None, rule_set: RuleSet) -> set[str]:
    """Fields currently controlled by an overwriting autofill (read-only on the form)."""
    locked: set[str] = set()
    for rule in rule_set.autofills:
        if rule.overwrite and rule.when.holds(discriminator, data):
            locked.update(rule.values)
    return locked
