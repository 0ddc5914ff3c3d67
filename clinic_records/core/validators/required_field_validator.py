"""
RequiredFieldValidator - a field must hold a non-blank value.
"""

from typing import Any

from .base_validator import BaseValidator


class RequiredFieldValidator(BaseValidator):
    """
    Fails when the field is absent, None, or whitespace only.

    Falsy non-string values such as 0 or False count as present.
    """

    rule_type = "required"

    def validate(self, value: Any, record: dict[str, Any]) -> None:
        if self.field_name not in record:
            self.fail("Field is required")
        if value is None:
            self.fail("Field value is null")
        if isinstance(value, str) and not value.strip():
            self.fail("Field value is blank")
