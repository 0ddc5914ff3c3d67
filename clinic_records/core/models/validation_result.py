"""
ValidationResult model representing the outcome of evaluating a draft (ephemeral).
"""

from pydantic import BaseModel, Field, field_validator


class ValidationResult(BaseModel):
    """
    Outcome of evaluating a draft against a rule set.

    Besides pass/fail per field, the result carries the requiredness and
    allowed-value state derived for the active discriminator, which is what
    a form needs to mark fields as mandatory or restrict a dropdown.

    Attributes:
        rule_set: Name of the rule set that was applied
        discriminator: Discriminator value the rules were resolved for
        is_valid: True when no field failed
        valid_fields: Governed fields that passed every active rule
        invalid_fields: Field name -> reason for every failing field
        required_fields: Fields that are required under the active discriminator
        allowed_values: Field name -> permitted values under the active discriminator
    """

    rule_set: str
    discriminator: str | None = None
    is_valid: bool
    valid_fields: frozenset[str] = Field(default_factory=frozenset)
    invalid_fields: dict[str, str] = Field(default_factory=dict)
    required_fields: frozenset[str] = Field(default_factory=frozenset)
    allowed_values: dict[str, tuple[str, ...]] = Field(default_factory=dict)

    @field_validator("invalid_fields")
    @classmethod
    def check_valid_consistency(cls, v, info):
        """Validate that is_valid=True implies invalid_fields is empty."""
        if info.data.get("is_valid") and len(v) > 0:
            raise ValueError("is_valid=True but invalid_fields is not empty")
        return v

    def is_required(self, field_name: str) -> bool:
        return field_name in self.required_fields

    def reason_for(self, field_name: str) -> str | None:
        return self.invalid_fields.get(field_name)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "rule_set": "patient_registration",
                "discriminator": "poornanga",
                "is_valid": False,
                "valid_fields": ["name", "email", "phone"],
                "invalid_fields": {"iyc": "Field value is blank"},
                "required_fields": ["name", "email", "phone", "iyc"],
                "allowed_values": {"category": ["FTV", "STV"]},
            }
        }
