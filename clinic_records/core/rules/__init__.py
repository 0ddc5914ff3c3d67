"""
Field rule engine, rule set configuration and the built-in catalog.
"""

from .autofill import apply_autofill, locked_fields
from .catalog import DIET_REQUEST, PATIENT_REGISTRATION, RuleSetRegistry, default_registry
from .predicates import (
    all_of,
    always,
    any_of,
    discriminator_in,
    field_equals,
    field_present,
    negate,
    never,
    parse_predicate,
)
from .rule_config import RuleSetBuilder, RuleSetLoader, parse_rule_set
from .rule_engine import FieldRuleEngine, evaluate
from .rule_set import AutofillRule, DateFields, FieldRule, LookupRule, RuleSet

__all__ = [
    "FieldRuleEngine",
    "evaluate",
    "RuleSet",
    "FieldRule",
    "AutofillRule",
    "DateFields",
    "LookupRule",
    "RuleSetLoader",
    "RuleSetBuilder",
    "parse_rule_set",
    "RuleSetRegistry",
    "default_registry",
    "PATIENT_REGISTRATION",
    "DIET_REQUEST",
    "apply_autofill",
    "locked_fields",
    "always",
    "never",
    "discriminator_in",
    "field_equals",
    "field_present",
    "all_of",
    "any_of",
    "negate",
    "parse_predicate",
]
