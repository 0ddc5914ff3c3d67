"""
Parking space for in-progress drafts while the user navigates between sections.

Entries have no expiry. They are removed only by an explicit clear: a
successful submission, a form reset, or session teardown.
"""

from clinic_records.core.models import RecordDraft, SectionStateEntry
from clinic_records.core.rules import RuleSetRegistry
from clinic_records.observability.logger import get_logger

logger = get_logger(__name__)


class SectionStateCache:
    """
    Drafts keyed by logical section.

    Drafts are copied on save and on restore, so later edits on either side
    never leak into the cached entry. Restoring re-runs the rule engine for
    the draft's discriminator: the returned draft carries requiredness and
    allowed-value state that matches its values, never a stale evaluation.
    """

    def __init__(self, registry: RuleSetRegistry):
        self.registry = registry
        self._entries: dict[str, SectionStateEntry] = {}

    def save(self, section_key: str, draft: RecordDraft, touched: bool | None = None) -> SectionStateEntry:
        """
        Store a copy of ``draft`` under ``section_key``, replacing any previous entry.

        Args:
            section_key: Logical section identity
            draft: Draft to park
            touched: Whether the user interacted with the form; keeps the
                previous flag when omitted
        """
        previous = self._entries.get(section_key)
        if touched is None:
            touched = previous.touched if previous is not None else False

        entry = SectionStateEntry(
            section_key=section_key,
            draft=draft.model_copy(deep=True),
            touched=touched,
        )
        self._entries[section_key] = entry
        logger.debug(
            "Section state saved",
            extra={"section_key": section_key, "draft_id": draft.draft_id, "touched": touched},
        )
        return entry

    def restore(self, section_key: str) -> RecordDraft | None:
        """
        Copy of the parked draft with its rule state re-derived, or None.
        """
        entry = self._entries.get(section_key)
        if entry is None:
            return None

        draft = entry.draft.model_copy(deep=True)
        if draft.rule_set in self.registry:
            draft.validation = self.registry.engine(draft.rule_set).evaluate(draft)
        else:
            draft.validation = None
            logger.warning(
                "Restored draft has no registered rule set",
                extra={"section_key": section_key, "rule_set": draft.rule_set},
            )
        return draft

    def entry(self, section_key: str) -> SectionStateEntry | None:
        return self._entries.get(section_key)

    def is_touched(self, section_key: str) -> bool:
        entry = self._entries.get(section_key)
        return entry.touched if entry is not None else False

    def clear(self, section_key: str) -> None:
        if self._entries.pop(section_key, None) is not None:
            logger.debug("Section state cleared", extra={"section_key": section_key})

    def clear_all(self) -> None:
        """Drop every entry (logout or session teardown)."""
        self._entries.clear()

    def __contains__(self, section_key: object) -> bool:
        return section_key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
