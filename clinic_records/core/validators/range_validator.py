"""
RangeValidator - inclusive numeric bounds.
"""

from typing import Any

from .base_validator import BaseValidator, is_blank


def as_number(value: Any) -> float | None:
    """Numeric value of ints, floats and numeric strings; None for anything else."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


class RangeValidator(BaseValidator):
    """
    Form inputs arrive as strings, so "34" is checked as 34.

    Parameters:
    - min: lowest accepted value
    - max: highest accepted value
    """

    rule_type = "range"

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)
        self.min_value = self.parameters.get("min")
        self.max_value = self.parameters.get("max")
        if self.min_value is None and self.max_value is None:
            raise ValueError(f"{field_name}: range rule needs min, max or both")

    def validate(self, value: Any, record: dict[str, Any]) -> None:
        if is_blank(value):
            return
        number = as_number(value)
        if number is None:
            self.fail(f"'{value}' is not numeric")
        if self.min_value is not None and number < self.min_value:
            self.fail(f"{value} is below the minimum of {self.min_value}")
        if self.max_value is not None and number > self.max_value:
            self.fail(f"{value} is above the maximum of {self.max_value}")
