"""
Prefixed identifier sequence.

Generated business keys look like ``ID001``: a prefix followed by a
zero-padded number one above the highest number already in use.
"""

import re

from clinic_records.core.errors import SequenceUnavailableError, StoreUnavailableError
from clinic_records.observability.logger import get_logger

from .interfaces import RecordStore

logger = get_logger(__name__)


def format_identifier(prefix: str, number: int, width: int) -> str:
    return f"{prefix}{number:0{width}d}"


def highest_number(keys: list[str], prefix: str) -> int:
    """Largest numeric suffix among keys starting with ``prefix`` (0 if none)."""
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$", re.IGNORECASE)
    highest = 0
    for key in keys:
        match = pattern.match(key.strip())
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


class PrefixedSequenceGenerator:
    """
    SequenceGenerator deriving the next identifier from the store's keys.

    Identifiers handed out by this instance are remembered so that two
    drafts opened before either is persisted do not receive the same key.
    """

    def __init__(self, store: RecordStore, key_domain: str, prefix: str = "ID", width: int = 3):
        self.store = store
        self.key_domain = key_domain
        self.prefix = prefix
        self.width = width
        self._last_issued = 0

    async def next(self) -> str:
        try:
            snapshot = await self.store.fetch_all(self.key_domain)
        except StoreUnavailableError as e:
            logger.error(
                "Could not reserve identifier",
                extra={"key_domain": self.key_domain, "error_message": str(e)},
            )
            raise SequenceUnavailableError(f"Cannot reach record store: {e.message}") from e
        except Exception as e:
            logger.error(
                "Could not reserve identifier",
                extra={"key_domain": self.key_domain, "error_type": type(e).__name__, "error_message": str(e)},
            )
            raise SequenceUnavailableError(f"Cannot list existing identifiers: {e}") from e

        number = max(highest_number(snapshot.keys(), self.prefix), self._last_issued) + 1
        self._last_issued = number
        identifier = format_identifier(self.prefix, number, self.width)
        logger.info("Reserved identifier", extra={"key_domain": self.key_domain, "identifier": identifier})
        return identifier
