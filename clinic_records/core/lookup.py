"""
Linked-record lookups (e.g. filling a diet request from the patient's registration).

``lookup_values`` turns a found record into the values to write. The
``LinkedRecordLookup`` runs lookups on behalf of drafts with the same
generation scheme as the debounced uniqueness checker: every request
for a draft bumps its generation, and a result whose generation is no
longer the latest is dropped.
"""

import asyncio
from typing import Any, Mapping

from clinic_records.core.models import LookupResult
from clinic_records.core.rules import LookupRule
from clinic_records.observability import metrics
from clinic_records.observability.logger import get_logger

logger = get_logger(__name__)


def lookup_values(rule: LookupRule, found: Mapping[str, Any] | None) -> dict[str, str]:
    """
    Values for the rule's target fields.

    A missing record, or a missing source field, yields an empty string
    so stale values from an earlier lookup are cleared.
    """
    values = {}
    for target, source in rule.fill.items():
        value = None if found is None else found.get(source)
        values[target] = "" if value is None else str(value)
    return values


class LinkedRecordLookup:
    """
    Debounced, generation-guarded lookups keyed by draft.
    """

    def __init__(self, store, debounce_seconds: float = 0.25):
        self.store = store
        self.debounce_seconds = debounce_seconds
        self._generations: dict[str, int] = {}

    def generation(self, owner: str) -> int:
        return self._generations.get(owner, 0)

    def supersede(self, owner: str) -> int:
        """Invalidate any lookup in flight for ``owner``; returns the new generation."""
        generation = self._generations.get(owner, 0) + 1
        self._generations[owner] = generation
        return generation

    def forget(self, owner: str) -> None:
        self._generations.pop(owner, None)

    async def lookup(self, owner: str, rule: LookupRule, key: Any) -> LookupResult | None:
        """
        Look up ``key`` in the rule's source domain.

        Returns:
            LookupResult, or None if a newer request for ``owner`` superseded this one
        """
        generation = self.supersede(owner)
        wanted = "" if key is None else str(key).strip()

        if not wanted:
            metrics.increment_counter(metrics.linked_lookups_total, outcome="cleared")
            return LookupResult(status="cleared", values=lookup_values(rule, None))

        if self.debounce_seconds > 0:
            await asyncio.sleep(self.debounce_seconds)
        if self._generations.get(owner) != generation:
            return None

        try:
            found = await self.store.find_by_key(rule.source, wanted)
        except Exception as e:
            metrics.increment_counter(metrics.store_errors_total, operation="find_by_key")
            logger.warning(
                "Linked record lookup failed",
                extra={"source": rule.source, "key": wanted, "error_type": type(e).__name__, "error_message": str(e)},
            )
            result = LookupResult(status="unavailable", key=wanted)
        else:
            status = "found" if found is not None else "not_found"
            result = LookupResult(status=status, key=wanted, values=lookup_values(rule, found))

        if self._generations.get(owner) != generation:
            metrics.increment_counter(metrics.linked_lookups_total, outcome="discarded")
            logger.debug("Discarded superseded lookup result", extra={"owner": owner, "generation": generation})
            return None

        metrics.increment_counter(metrics.linked_lookups_total, outcome=result.status)
        return result
