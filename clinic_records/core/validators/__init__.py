"""
Field validator implementations.

Provides validators for required fields, allowed values, regex patterns
and numeric ranges.
"""

from .allowed_values_validator import AllowedValuesValidator
from .base_validator import BaseValidator, ValidationError, is_blank
from .range_validator import RangeValidator
from .regex_validator import RegexValidator
from .required_field_validator import RequiredFieldValidator

__all__ = [
    "BaseValidator",
    "ValidationError",
    "is_blank",
    "RequiredFieldValidator",
    "AllowedValuesValidator",
    "RegexValidator",
    "RangeValidator",
]
