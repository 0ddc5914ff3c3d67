"""
AllowedValuesValidator - restricts a field to a closed set of options.
"""

from typing import Any

from .base_validator import BaseValidator, is_blank


class AllowedValuesValidator(BaseValidator):
    """
    Parameters:
    - values: permitted options, compared with the trimmed value as strings
    """

    rule_type = "allowed_values"

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)
        self.values = tuple(str(option) for option in self.parameters.get("values") or ())
        if not self.values:
            raise ValueError(f"{field_name}: allowed_values needs at least one option")

    def validate(self, value: Any, record: dict[str, Any]) -> None:
        if is_blank(value) or str(value).strip() in self.values:
            return
        self.fail(f"'{value}' is not one of: {', '.join(self.values)}")
