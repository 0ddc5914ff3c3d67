"""
Declarative rule set definitions.

A RuleSet describes one record family (patient registration, diet
request): which fields are always required, which become required or
restricted under a discriminator value, which values are filled in
automatically, and which fields carry identity, dates and status.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from .predicates import Always, Never, Predicate


class FieldRule(BaseModel):
    """
    Rule attached to a single field.

    Attributes:
        field: Field the rule governs
        required_when: Condition under which the field becomes required
        allowed_values: Closed set of permitted values, if any
        values_when: Condition under which ``allowed_values`` applies
        pattern: Regular expression a non-blank value must fully match
        min_value: Inclusive lower bound for numeric values
        max_value: Inclusive upper bound for numeric values
        message: Reason reported instead of the validator's own message
    """

    field: str = Field(..., min_length=1)
    required_when: Predicate = Field(default_factory=Never)
    allowed_values: tuple[str, ...] | None = None
    values_when: Predicate = Field(default_factory=Always)
    pattern: str | None = None
    min_value: float | None = None
    max_value: float | None = None
    message: str | None = None

    class Config:
        frozen = True


class AutofillRule(BaseModel):
    """
    Values written into a draft while a condition holds.

    With ``overwrite`` the values replace whatever is there, and are cleared
    again (only where still equal to the filled value) once the condition
    stops holding. Without it they only fill blank fields and are never
    cleared.
    """

    when: Predicate
    values: dict[str, str] = Field(..., min_length=1)
    overwrite: bool = False

    class Config:
        frozen = True


class LookupRule(BaseModel):
    """
    Fields copied from a record of another family, found by its business key.

    Attributes:
        key_field: Field of this record that holds the key to look up
        source: Rule set (key domain) whose records are searched
        fill: Target field in this record -> field of the found record
    """

    key_field: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1)
    fill: dict[str, str] = Field(..., min_length=1)

    class Config:
        frozen = True


class DateFields(BaseModel):
    """Names of the date-bearing fields of a record family."""

    start: str
    duration: str
    end: str
    requested: str | None = None

    def names(self) -> set[str]:
        names = {self.start, self.duration, self.end}
        if self.requested:
            names.add(self.requested)
        return names

    class Config:
        frozen = True


class RuleSet(BaseModel):
    """
    Complete rule table for one record family.

    Attributes:
        name: Unique rule set name, also the key domain for uniqueness checks
        description: Free text
        discriminator_field: Name under which the discriminator is stored
        discriminator_values: Closed set of discriminator values
        base_required: Fields required regardless of the discriminator
        rules: Conditional and format rules
        autofills: Automatic values
        key_field: Business key that must be unique across records
        key_transform: Normalization applied to the key before storage
        auto_key_discriminators: Discriminator values whose key is system-generated
        identity_fields: Fields holding store identity (never copied on renewal)
        status_field: Field mirroring the record status
        date_fields: Start/duration/end/requested field names
        lookup: Fields filled from a linked record of another family
    """

    name: str = Field(..., min_length=1)
    description: str = ""
    discriminator_field: str | None = None
    discriminator_values: tuple[str, ...] = ()
    base_required: tuple[str, ...] = ()
    rules: tuple[FieldRule, ...] = ()
    autofills: tuple[AutofillRule, ...] = ()
    key_field: str | None = None
    key_transform: Literal["none", "upper"] = "none"
    auto_key_discriminators: frozenset[str] = frozenset()
    identity_fields: tuple[str, ...] = ()
    status_field: str | None = None
    date_fields: DateFields | None = None
    lookup: LookupRule | None = None

    @model_validator(mode="after")
    def check_discriminator(self) -> "RuleSet":
        if self.discriminator_field and not self.discriminator_values:
            raise ValueError(f"Rule set '{self.name}' declares a discriminator without values")
        if self.discriminator_values and not self.discriminator_field:
            raise ValueError(f"Rule set '{self.name}' lists discriminator values without a field")
        unknown = self.auto_key_discriminators - set(self.discriminator_values)
        if unknown:
            raise ValueError(f"Rule set '{self.name}': unknown auto-key discriminators {sorted(unknown)}")
        if self.auto_key_discriminators and not self.key_field:
            raise ValueError(f"Rule set '{self.name}': auto-generated keys need a key_field")
        if self.lookup and self.lookup.key_field in self.lookup.fill:
            raise ValueError(f"Rule set '{self.name}': lookup cannot fill its own key field")
        return self

    def governed_fields(self) -> set[str]:
        """All field names this rule set says anything about."""
        fields = set(self.base_required)
        fields.update(rule.field for rule in self.rules)
        if self.discriminator_field:
            fields.add(self.discriminator_field)
        if self.lookup:
            fields.add(self.lookup.key_field)
            fields.update(self.lookup.fill)
        return fields

    def uses_auto_key(self, discriminator: str | None) -> bool:
        return discriminator is not None and discriminator in self.auto_key_discriminators

    def normalize_key(self, value: Any) -> str:
        """Trim and, where configured, upper-case a business key."""
        key = "" if value is None else str(value).strip()
        if self.key_transform == "upper":
            key = key.upper()
        return key

    class Config:
        frozen = True
