"""
Rule set configuration management.

Loads rule sets from YAML files and provides a fluent builder for
defining them in code.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as ModelValidationError

from .predicates import Always, discriminator_in, parse_predicate
from .rule_set import AutofillRule, DateFields, FieldRule, LookupRule, RuleSet

_FIELD_RULE_KEYS = {"required", "required_when", "allowed_values", "when", "pattern", "range", "message"}


class RuleSetLoader:
    """
    Loads rule sets from YAML configuration files.

    Expected YAML format:
    ```yaml
    name: patient_registration
    discriminator:
      field: patient_type
      values: [poornanga, non-poornanga]
      auto_key: [non-poornanga]
    required: [name, email, phone]
    key:
      field: iyc
      transform: upper
    fields:
      iyc:
        - required_when: {kind: discriminator_in, values: [poornanga]}
      category:
        - allowed_values: [FTV, STV]
          when: {kind: discriminator_in, values: [poornanga]}
      age:
        - range: {min: 0, max: 120}
    autofill:
      - when: {kind: field_equals, field: category, value: Samskriti}
        values: {department: Samskriti}
        overwrite: true
    dates: {start: start_date, duration: duration, end: end_date}
    status_field: status
    lookup:
      field: iyc_number
      source: patient_registration
      fill: {patient_name: name, email: email}
    ```
    """

    def __init__(self, config_path: str | Path):
        """
        Initialize the loader.

        Args:
            config_path: Path to the YAML configuration file
        """
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise FileNotFoundError(f"Rule set configuration file not found: {config_path}")

    def load(self) -> RuleSet:
        """
        Load and parse the rule set.

        Returns:
            RuleSet

        Raises:
            ValueError: If YAML is invalid or a rule definition is malformed
        """
        with open(self.config_path) as f:
            config = yaml.safe_load(f)

        if not isinstance(config, dict) or "name" not in config:
            raise ValueError("Configuration file must define a rule set 'name'")

        return parse_rule_set(config)


def parse_rule_set(config: dict[str, Any]) -> RuleSet:
    """Build a RuleSet from its mapping form (see RuleSetLoader)."""
    name = config["name"]
    discriminator = config.get("discriminator") or {}
    key = config.get("key") or {}

    rules: list[FieldRule] = []
    for field_name, field_rules in (config.get("fields") or {}).items():
        if not isinstance(field_rules, list):
            raise ValueError(f"Rules for field '{field_name}' must be a list")
        for rule_def in field_rules:
            rules.append(_parse_field_rule(name, field_name, rule_def))

    autofills = []
    for idx, autofill_def in enumerate(config.get("autofill") or []):
        if "when" not in autofill_def or "values" not in autofill_def:
            raise ValueError(f"Autofill #{idx} in '{name}' needs 'when' and 'values'")
        autofills.append(
            AutofillRule(
                when=parse_predicate(autofill_def["when"]),
                values={k: str(v) for k, v in autofill_def["values"].items()},
                overwrite=bool(autofill_def.get("overwrite", False)),
            )
        )

    try:
        return RuleSet(
            name=name,
            description=config.get("description", ""),
            discriminator_field=discriminator.get("field"),
            discriminator_values=tuple(discriminator.get("values") or ()),
            auto_key_discriminators=frozenset(discriminator.get("auto_key") or ()),
            base_required=tuple(config.get("required") or ()),
            rules=tuple(rules),
            autofills=tuple(autofills),
            key_field=key.get("field"),
            key_transform=key.get("transform", "none"),
            identity_fields=tuple(config.get("identity_fields") or ()),
            status_field=config.get("status_field"),
            date_fields=DateFields(**config["dates"]) if config.get("dates") else None,
            lookup=_parse_lookup(name, config["lookup"]) if config.get("lookup") else None,
        )
    except ModelValidationError as e:
        raise ValueError(f"Invalid rule set '{name}': {e}") from e


def _parse_lookup(rule_set_name: str, lookup_def: dict[str, Any]) -> LookupRule:
    if not isinstance(lookup_def, dict) or not {"field", "source", "fill"} <= set(lookup_def):
        raise ValueError(f"Lookup in '{rule_set_name}' needs 'field', 'source' and 'fill'")
    return LookupRule(
        key_field=lookup_def["field"],
        source=lookup_def["source"],
        fill={str(k): str(v) for k, v in (lookup_def["fill"] or {}).items()},
    )


def _parse_field_rule(rule_set_name: str, field_name: str, rule_def: dict[str, Any]) -> FieldRule:
    if not isinstance(rule_def, dict):
        raise ValueError(f"Rule for field '{field_name}' in '{rule_set_name}' must be a mapping")

    unknown = set(rule_def) - _FIELD_RULE_KEYS
    if unknown:
        raise ValueError(f"Unknown keys {sorted(unknown)} in rule for field '{field_name}'")

    params: dict[str, Any] = {"field": field_name, "message": rule_def.get("message")}

    if rule_def.get("required"):
        params["required_when"] = Always()
    elif "required_when" in rule_def:
        params["required_when"] = parse_predicate(rule_def["required_when"])

    if "allowed_values" in rule_def:
        params["allowed_values"] = tuple(str(v) for v in rule_def["allowed_values"])
        if "when" in rule_def:
            params["values_when"] = parse_predicate(rule_def["when"])

    if "pattern" in rule_def:
        params["pattern"] = rule_def["pattern"]

    if "range" in rule_def:
        bounds = rule_def["range"] or {}
        params["min_value"] = bounds.get("min")
        params["max_value"] = bounds.get("max")

    try:
        return FieldRule(**params)
    except ModelValidationError as e:
        raise ValueError(f"Invalid rule for field '{field_name}' in '{rule_set_name}': {e}") from e


class RuleSetBuilder:
    """
    Programmatically build rule sets (for the built-in catalog and tests).
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self._discriminator_field: str | None = None
        self._discriminator_values: tuple[str, ...] = ()
        self._auto_key: frozenset[str] = frozenset()
        self._base_required: list[str] = []
        self._rules: list[FieldRule] = []
        self._autofills: list[AutofillRule] = []
        self._key_field: str | None = None
        self._key_transform = "none"
        self._identity_fields: tuple[str, ...] = ()
        self._status_field: str | None = None
        self._date_fields: DateFields | None = None
        self._lookup: LookupRule | None = None

    def discriminator(self, field_name: str, values: list[str], auto_key: list[str] | None = None) -> "RuleSetBuilder":
        """Declare the discriminator and which values get a generated key."""
        self._discriminator_field = field_name
        self._discriminator_values = tuple(values)
        self._auto_key = frozenset(auto_key or ())
        return self

    def require(self, *field_names: str) -> "RuleSetBuilder":
        """Add always-required fields."""
        self._base_required.extend(field_names)
        return self

    def require_when(self, field_name: str, predicate, message: str | None = None) -> "RuleSetBuilder":
        """Make a field required while ``predicate`` holds."""
        self._rules.append(FieldRule(field=field_name, required_when=predicate, message=message))
        return self

    def require_for(self, field_name: str, *discriminator_values: str) -> "RuleSetBuilder":
        """Make a field required for the given discriminator values."""
        return self.require_when(field_name, discriminator_in(*discriminator_values))

    def allowed_values(self, field_name: str, values: list[str], when=None) -> "RuleSetBuilder":
        """Restrict a field to ``values`` (optionally only while ``when`` holds)."""
        self._rules.append(
            FieldRule(field=field_name, allowed_values=tuple(values), values_when=when or Always())
        )
        return self

    def pattern(self, field_name: str, pattern: str, message: str | None = None) -> "RuleSetBuilder":
        self._rules.append(FieldRule(field=field_name, pattern=pattern, message=message))
        return self

    def range(
        self,
        field_name: str,
        min_value: float | None = None,
        max_value: float | None = None,
    ) -> "RuleSetBuilder":
        self._rules.append(FieldRule(field=field_name, min_value=min_value, max_value=max_value))
        return self

    def autofill(self, when, values: dict[str, str], overwrite: bool = False) -> "RuleSetBuilder":
        self._autofills.append(AutofillRule(when=when, values=values, overwrite=overwrite))
        return self

    def key(self, field_name: str, transform: str = "none") -> "RuleSetBuilder":
        """Declare the business key that must stay unique."""
        self._key_field = field_name
        self._key_transform = transform
        return self

    def identity_fields(self, *field_names: str) -> "RuleSetBuilder":
        self._identity_fields = tuple(field_names)
        return self

    def status_field(self, field_name: str) -> "RuleSetBuilder":
        self._status_field = field_name
        return self

    def dates(self, start: str, duration: str, end: str, requested: str | None = None) -> "RuleSetBuilder":
        self._date_fields = DateFields(start=start, duration=duration, end=end, requested=requested)
        return self

    def lookup(self, key_field: str, source: str, fill: dict[str, str]) -> "RuleSetBuilder":
        """Fill fields from the ``source`` record whose business key is in ``key_field``."""
        self._lookup = LookupRule(key_field=key_field, source=source, fill=fill)
        return self

    def build(self) -> RuleSet:
        """Build and return the rule set."""
        return RuleSet(
            name=self.name,
            description=self.description,
            discriminator_field=self._discriminator_field,
            discriminator_values=self._discriminator_values,
            auto_key_discriminators=self._auto_key,
            base_required=tuple(self._base_required),
            rules=tuple(self._rules),
            autofills=tuple(self._autofills),
            key_field=self._key_field,
            key_transform=self._key_transform,
            identity_fields=self._identity_fields,
            status_field=self._status_field,
            date_fields=self._date_fields,
            lookup=self._lookup,
        )
