"""
Base validator interface for field rules.

Every validator checks one field of a draft and raises ValidationError
when the value is unacceptable. The rule engine catches the error and
turns it into a per-field reason.
"""

from abc import ABC, abstractmethod
from typing import Any, NoReturn


class ValidationError(Exception):
    """A field value broke one rule"""

    def __init__(self, rule_name: str, field_name: str, message: str):
        super().__init__(f"[{rule_name}] {field_name}: {message}")
        self.rule_name = rule_name
        self.field_name = field_name
        self.message = message


def is_blank(value: Any) -> bool:
    """True for None and for strings that are empty after trimming."""
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


class BaseValidator(ABC):
    """
    One rule applied to one field.

    Subclasses set ``rule_type`` and implement validate(); a failing
    check calls fail() with a human-readable reason.
    """

    rule_type: str = ""

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        self.field_name = field_name
        self.parameters = dict(parameters or {})

    @abstractmethod
    def validate(self, value: Any, record: dict[str, Any]) -> None:
        """
        Check ``value`` (the current value of this field in ``record``).

        Raises:
            ValidationError: If the value is unacceptable
        """

    def fail(self, message: str) -> NoReturn:
        raise ValidationError(rule_name=self.rule_type, field_name=self.field_name, message=message)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.field_name} {self.parameters}>"
