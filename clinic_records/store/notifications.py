"""
Notification sinks for user-facing messages.
"""

import logging
from typing import Any

from clinic_records.observability.logger import get_logger

_LEVELS = {
    "success": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class LoggingNotificationSink:
    """Writes notifications to the structured log."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or get_logger("clinic-records.notifications")

    def notify(self, level: str, message: str, **context: Any) -> None:
        self.logger.log(_LEVELS.get(level, logging.INFO), message, extra={"notification_level": level, **context})


class CollectingNotificationSink:
    """Keeps notifications in memory, newest last."""

    def __init__(self):
        self.messages: list[tuple[str, str, dict[str, Any]]] = []

    def notify(self, level: str, message: str, **context: Any) -> None:
        self.messages.append((level, message, context))

    def levels(self) -> list[str]:
        return [level for level, _, _ in self.messages]

    def last(self) -> tuple[str, str] | None:
        if not self.messages:
            return None
        level, message, _ = self.messages[-1]
        return level, message
