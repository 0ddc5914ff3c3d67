"""
RegexValidator - the trimmed value must fully match a pattern.
"""

import re
from typing import Any

from .base_validator import BaseValidator, is_blank


def compile_pattern(pattern: str | re.Pattern, flags: int = 0) -> re.Pattern:
    """Compile ``pattern`` unless it already is one; bad syntax becomes ValueError."""
    if isinstance(pattern, re.Pattern):
        return pattern
    if not isinstance(pattern, str):
        raise ValueError(f"Expected a regex string, got {type(pattern).__name__}")
    try:
        return re.compile(pattern, flags)
    except re.error as e:
        raise ValueError(f"Invalid regex {pattern!r}: {e}") from e


class RegexValidator(BaseValidator):
    """
    Parameters:
    - pattern: regex string or compiled pattern
    - flags: re flags applied when compiling a string pattern
    """

    rule_type = "pattern"

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)
        if not self.parameters.get("pattern"):
            raise ValueError(f"{field_name}: pattern rule has no 'pattern'")
        self.pattern = compile_pattern(self.parameters["pattern"], self.parameters.get("flags", 0))

    def validate(self, value: Any, record: dict[str, Any]) -> None:
        if is_blank(value):
            return
        text = str(value).strip()
        if self.pattern.fullmatch(text) is None:
            self.fail(f"'{text}' does not match pattern '{self.pattern.pattern}'")
