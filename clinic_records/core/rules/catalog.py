"""
Built-in rule sets for the clinic's record families, and a registry
mapping rule set names to shared engines.
"""

from .predicates import discriminator_in, field_equals
from .rule_config import RuleSetBuilder
from .rule_engine import FieldRuleEngine
from .rule_set import RuleSet

POORNANGA = "poornanga"
NON_POORNANGA = "non-poornanga"

PATIENT_CATEGORIES = [
    "FTV", "STV", "LTV", "Staff", "Sevadar", "Samskriti",
    "Guest", "SPD", "HYTT", "C-card", "IHS", "PP",
]
# FTV is reserved for Poornanga patients
NON_POORNANGA_CATEGORIES = [c for c in PATIENT_CATEGORIES if c != "FTV"]

SAMSKRITI_CONTACT = {
    "email": "samaskriti.office@ishafoundation.com",
    "phone": "8870871357",
    "department": "Samskriti",
}

# Diet request field -> patient registration field
PATIENT_CONTACT_FIELDS = {"patient_name": "name", "email": "email", "phone": "phone"}

EMAIL_PATTERN = r"[^@\s]+@[^@\s]+\.[^@\s]+"
DATE_PATTERN = r"\d{4}-\d{2}-\d{2}"


def build_patient_registration() -> RuleSet:
    return (
        RuleSetBuilder("patient_registration", "New patient registration")
        .discriminator("patient_type", [POORNANGA, NON_POORNANGA], auto_key=[NON_POORNANGA])
        .require("name", "email", "phone", "category", "age", "department")
        .require_when("iyc", discriminator_in(POORNANGA), message="IYC number is required")
        .allowed_values("category", PATIENT_CATEGORIES, when=discriminator_in(POORNANGA))
        .allowed_values("category", NON_POORNANGA_CATEGORIES, when=discriminator_in(NON_POORNANGA))
        .pattern("email", EMAIL_PATTERN, message="Enter a valid email address")
        .range("age", min_value=0, max_value=120)
        .autofill(field_equals("category", "Samskriti"), SAMSKRITI_CONTACT, overwrite=True)
        .autofill(discriminator_in(POORNANGA), {"category": "FTV"})
        .key("iyc", transform="upper")
        .build()
    )


def build_diet_request() -> RuleSet:
    return (
        RuleSetBuilder("diet_request", "Diet request for a registered patient")
        .require("iyc_number", "patient_name", "anchor", "others", "duration", "start_date")
        .range("duration", min_value=1, max_value=365)
        .pattern("email", EMAIL_PATTERN, message="Enter a valid email address")
        .pattern("start_date", DATE_PATTERN, message="Enter a date as YYYY-MM-DD")
        .identity_fields("id")
        .status_field("status")
        .dates(start="start_date", duration="duration", end="end_date", requested="date_requested")
        .lookup("iyc_number", source="patient_registration", fill=PATIENT_CONTACT_FIELDS)
        .build()
    )


PATIENT_REGISTRATION = build_patient_registration()
DIET_REQUEST = build_diet_request()


class RuleSetRegistry:
    """
    Rule sets by name, each with one shared FieldRuleEngine.
    """

    def __init__(self, rule_sets: list[RuleSet] | None = None):
        self._rule_sets: dict[str, RuleSet] = {}
        self._engines: dict[str, FieldRuleEngine] = {}
        for rule_set in rule_sets or []:
            self.register(rule_set)

    def register(self, rule_set: RuleSet) -> FieldRuleEngine:
        """Register (or replace) a rule set and return its engine."""
        engine = FieldRuleEngine(rule_set)
        self._rule_sets[rule_set.name] = rule_set
        self._engines[rule_set.name] = engine
        return engine

    def get(self, name: str) -> RuleSet:
        """
        Raises:
            KeyError: If no rule set with that name is registered
        """
        if name not in self._rule_sets:
            raise KeyError(f"Unknown rule set: {name}")
        return self._rule_sets[name]

    def engine(self, name: str) -> FieldRuleEngine:
        self.get(name)
        return self._engines[name]

    def names(self) -> list[str]:
        return sorted(self._rule_sets)

    def __contains__(self, name: object) -> bool:
        return name in self._rule_sets


def default_registry() -> RuleSetRegistry:
    """Registry holding the built-in patient registration and diet request rule sets."""
    return RuleSetRegistry([PATIENT_REGISTRATION, DIET_REQUEST])
