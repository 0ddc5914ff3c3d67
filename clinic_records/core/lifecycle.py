"""
Record lifecycle: drafting, submission, update in place, status changes and renewal.

A draft moves ``draft -> validating -> submitted -> persisted``; it lands
in ``rejected`` when the final validation gate refuses it and in
``failed`` when a collaborator lets it down. Neither side state loses
data: the caller fixes the input (rejected) or simply retries (failed).

All public operations return typed results. Collaborator exceptions are
caught here and never reach the caller.
"""

from datetime import date
from typing import Any, Callable, Mapping

from clinic_records.core.dates import compute_end_date, format_date, parse_date, parse_duration
from clinic_records.core.errors import (
    DraftClosedError,
    InvalidTransitionError,
    PersistenceError,
    SequenceUnavailableError,
    StoreUnavailableError,
)
from clinic_records.core.lookup import LinkedRecordLookup, lookup_values
from clinic_records.core.models import (
    INITIAL_STATUS,
    ErrorKind,
    LookupResult,
    PersistedRecord,
    RecordDraft,
    RecordState,
    RecordStatus,
    RenewalOutcome,
    SubmitResult,
    UniquenessResult,
    ValidationResult,
)
from clinic_records.core.rules import RuleSet, RuleSetRegistry, apply_autofill, default_registry
from clinic_records.core.section_cache import SectionStateCache
from clinic_records.core.settings import EngineSettings
from clinic_records.core.uniqueness import (
    DebouncedUniquenessChecker,
    ResultCallback,
    SnapshotProvider,
    UniquenessValidator,
)
from clinic_records.core.validators import is_blank
from clinic_records.observability import metrics
from clinic_records.observability.logger import get_logger, log_operation
from clinic_records.store.interfaces import NotificationSink, RecordStore, SequenceGenerator
from clinic_records.store.notifications import LoggingNotificationSink

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: dict[RecordState, set[RecordState]] = {
    RecordState.DRAFT: {RecordState.VALIDATING},
    RecordState.VALIDATING: {RecordState.SUBMITTED, RecordState.REJECTED, RecordState.FAILED},
    RecordState.SUBMITTED: {RecordState.PERSISTED, RecordState.FAILED},
    RecordState.REJECTED: {RecordState.DRAFT, RecordState.VALIDATING},
    RecordState.FAILED: {RecordState.DRAFT, RecordState.VALIDATING},
    RecordState.PERSISTED: set(),
}

STATUS_TRANSITIONS: dict[RecordStatus, set[RecordStatus]] = {
    RecordStatus.ACTIVE: {RecordStatus.COMPLETED, RecordStatus.CANCELLED},
    RecordStatus.COMPLETED: set(),
    RecordStatus.CANCELLED: set(),
}


class RecordLifecycleManager:
    """
    Owns drafts from creation to persistence.

    One manager serves a UI session. Submission is serialized per draft
    (a second submit while the first is in flight is a no-op); different
    drafts may submit concurrently.
    """

    def __init__(
        self,
        store: RecordStore,
        registry: RuleSetRegistry | None = None,
        sequence: SequenceGenerator | None = None,
        notifier: NotificationSink | None = None,
        section_cache: SectionStateCache | None = None,
        settings: EngineSettings | None = None,
        today: Callable[[], date] = date.today,
    ):
        """
        Initialize the manager.

        Args:
            store: Record store collaborator
            registry: Rule sets by name (defaults to the built-in catalog)
            sequence: Generator for system-assigned business keys
            notifier: Sink for user-facing messages (defaults to the log)
            section_cache: Cache for parked drafts (created if omitted)
            settings: Engine settings
            today: Clock used for requested-date fields
        """
        self.store = store
        self.registry = registry or default_registry()
        self.sequence = sequence
        self.notifier = notifier or LoggingNotificationSink()
        self.section_cache = section_cache or SectionStateCache(self.registry)
        self.settings = settings or EngineSettings()
        self.today = today
        self._providers: dict[str, SnapshotProvider] = {}
        self._in_flight: set[str] = set()
        self._lookups = LinkedRecordLookup(store, debounce_seconds=self.settings.debounce_seconds)

    # ------------------------------------------------------------------
    # Collaborator wiring
    # ------------------------------------------------------------------

    def snapshot_provider(self, rule_set_name: str) -> SnapshotProvider:
        """Shared snapshot cache for a rule set's key domain."""
        provider = self._providers.get(rule_set_name)
        if provider is None:
            provider = SnapshotProvider(self.store, rule_set_name, self.settings.snapshot_max_age_seconds)
            self._providers[rule_set_name] = provider
        return provider

    def uniqueness_validator(self, rule_set_name: str) -> UniquenessValidator:
        return UniquenessValidator(self.snapshot_provider(rule_set_name))

    def debounced_checker(
        self,
        rule_set_name: str,
        on_result: ResultCallback | None = None,
    ) -> DebouncedUniquenessChecker:
        """Keystroke-driven checker sharing this manager's snapshot cache."""
        return DebouncedUniquenessChecker(
            self.uniqueness_validator(rule_set_name),
            debounce_seconds=self.settings.debounce_seconds,
            on_result=on_result,
        )

    def is_in_flight(self, draft: RecordDraft) -> bool:
        return draft.draft_id in self._in_flight

    # ------------------------------------------------------------------
    # Drafting
    # ------------------------------------------------------------------

    async def create_draft(
        self,
        rule_set_name: str,
        discriminator: str | None = None,
        data: Mapping[str, Any] | None = None,
    ) -> RecordDraft:
        """
        Start a new draft with discriminator-appropriate defaults.

        Discriminator values with system-generated keys reserve one from the
        sequence generator. If that fails the draft is still returned,
        without a key and with an error notification; submission will try
        to reserve again.
        """
        rule_set = self.registry.get(rule_set_name)
        draft = RecordDraft(rule_set=rule_set_name, discriminator=discriminator, data=dict(data or {}))
        dates = rule_set.date_fields
        if dates is not None and dates.requested and is_blank(draft.data.get(dates.requested)):
            draft.data[dates.requested] = self.today().isoformat()
        self._refresh_derived(draft, rule_set)

        if rule_set.uses_auto_key(discriminator):
            await self._reserve_key(draft, rule_set)

        self.evaluate(draft)
        logger.info(
            "Draft created",
            extra={"draft_id": draft.draft_id, "rule_set": rule_set_name, "discriminator": discriminator},
        )
        return draft

    def evaluate(self, draft: RecordDraft) -> ValidationResult:
        """Re-run the rule engine and store the result on the draft."""
        result = self.registry.engine(draft.rule_set).evaluate(draft)
        draft.validation = result
        return result

    def update_fields(self, draft: RecordDraft, changes: Mapping[str, Any]) -> ValidationResult:
        """
        Apply user edits, recompute derived fields and re-evaluate.

        Editing the lookup key field drops any lookup still in flight for
        the draft; blanking it also clears the looked-up fields.

        Raises:
            DraftClosedError: If the draft is already persisted
        """
        self._ensure_open(draft)
        rule_set = self.registry.get(draft.rule_set)

        lookup = rule_set.lookup
        if lookup is not None and lookup.key_field in changes:
            self._lookups.supersede(draft.draft_id)
            if is_blank(changes[lookup.key_field]):
                changes = {**lookup_values(lookup, None), **changes}

        draft.data.update(changes)
        self._refresh_derived(draft, rule_set)

        if draft.state in (RecordState.REJECTED, RecordState.FAILED):
            self._transition(draft, RecordState.DRAFT)

        return self.evaluate(draft)

    async def lookup_patient(self, draft: RecordDraft) -> LookupResult | None:
        """
        Fill a draft from the registered patient named by its lookup key field.

        A found patient overwrites the mapped fields; an unknown or blank key
        clears them. When the store cannot be reached the fields are left as
        entered so they can be typed in by hand.

        Returns:
            The applied LookupResult, or None when the rule set has no lookup,
            a newer edit or lookup superseded this one, or the draft went into
            submission meanwhile

        Raises:
            DraftClosedError: If the draft is already persisted
        """
        self._ensure_open(draft)
        lookup = self.registry.get(draft.rule_set).lookup
        if lookup is None:
            return None

        result = await self._lookups.lookup(draft.draft_id, lookup, draft.data.get(lookup.key_field))
        if result is None or draft.is_closed or draft.draft_id in self._in_flight:
            return None

        if result.status == "unavailable":
            self.notifier.notify("error", "Patient lookup failed. Please enter details manually.",
                                 draft_id=draft.draft_id)
            return result

        if result.status == "not_found":
            self.notifier.notify("info", f"No registered patient found for '{result.key}'", draft_id=draft.draft_id)
        self.update_fields(draft, result.values)
        logger.debug(
            "Lookup applied",
            extra={"draft_id": draft.draft_id, "status": result.status, "key": result.key},
        )
        return result

    async def select_discriminator(self, draft: RecordDraft, discriminator: str | None) -> ValidationResult:
        """
        Change the draft's discriminator and re-derive its rule state.

        Field values are kept as entered; only requiredness and allowed
        values follow the new discriminator. A generated key is reserved the
        first time an auto-key discriminator is selected.

        Raises:
            DraftClosedError: If the draft is already persisted
        """
        self._ensure_open(draft)
        rule_set = self.registry.get(draft.rule_set)

        draft.discriminator = discriminator
        self._refresh_derived(draft, rule_set)

        if rule_set.uses_auto_key(discriminator) and not draft.reserved_key:
            await self._reserve_key(draft, rule_set)

        if draft.state in (RecordState.REJECTED, RecordState.FAILED):
            self._transition(draft, RecordState.DRAFT)

        return self.evaluate(draft)

    def business_key(self, draft: RecordDraft) -> str | None:
        """The key the draft would be stored under, or None if the rule set has none."""
        rule_set = self.registry.get(draft.rule_set)
        if not rule_set.key_field:
            return None
        if rule_set.uses_auto_key(draft.discriminator):
            return draft.reserved_key or ""
        return rule_set.normalize_key(draft.data.get(rule_set.key_field))

    def build_payload(self, draft: RecordDraft) -> dict[str, Any]:
        """JSON-shaped record handed to the store on create."""
        rule_set = self.registry.get(draft.rule_set)
        payload = dict(draft.data)
        if rule_set.discriminator_field:
            payload[rule_set.discriminator_field] = draft.discriminator
        if rule_set.key_field:
            payload[rule_set.key_field] = self.business_key(draft)
        if rule_set.status_field:
            payload[rule_set.status_field] = INITIAL_STATUS.value
        return payload

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, draft: RecordDraft, section_key: str | None = None) -> SubmitResult:
        """
        Validate once more and hand the draft to the record store.

        Field rules and, when the rule set has a business key, uniqueness are
        re-checked right before the write because UI-time checks may be
        stale. While one submission of a draft is in flight, further calls
        return ``submission_in_progress`` without touching the draft.

        Args:
            draft: Draft to persist
            section_key: Section whose cached entry is cleared on success

        Raises:
            DraftClosedError: If the draft is already persisted
        """
        self._ensure_open(draft)

        if draft.draft_id in self._in_flight:
            logger.info("Submission already in progress, ignoring", extra={"draft_id": draft.draft_id})
            return SubmitResult(
                ok=False,
                state=draft.state,
                error=ErrorKind.SUBMISSION_IN_PROGRESS,
                message="Submission already in progress",
            )

        self._in_flight.add(draft.draft_id)
        try:
            with metrics.track_duration(metrics.submission_duration_seconds, rule_set=draft.rule_set):
                result = await self._submit(draft, section_key)
        except Exception as e:
            if draft.state not in (RecordState.VALIDATING, RecordState.SUBMITTED):
                raise
            logger.error(
                "Unexpected error during submission",
                extra={"draft_id": draft.draft_id, "error_type": type(e).__name__, "error_message": str(e)},
                exc_info=True,
            )
            result = self._fail(draft, ErrorKind.PERSISTENCE_FAILED, "Failed to save record. Please try again.")
        finally:
            self._in_flight.discard(draft.draft_id)

        outcome = "persisted" if result.ok else result.error.value
        metrics.increment_counter(metrics.submissions_total, rule_set=draft.rule_set, outcome=outcome)
        return result

    async def _submit(self, draft: RecordDraft, section_key: str | None) -> SubmitResult:
        rule_set = self.registry.get(draft.rule_set)
        self._transition(draft, RecordState.VALIDATING)
        self._refresh_derived(draft, rule_set)

        validation = self.evaluate(draft)
        if not validation.is_valid:
            for field_name in validation.invalid_fields:
                metrics.increment_counter(
                    metrics.field_validation_failures_total, rule_set=rule_set.name, field_name=field_name
                )
            return self._reject(
                draft,
                ErrorKind.VALIDATION_FAILED,
                "Please fill in all required fields correctly",
                validation=validation,
            )

        if rule_set.uses_auto_key(draft.discriminator) and not draft.reserved_key:
            if not await self._reserve_key(draft, rule_set):
                return self._fail(
                    draft,
                    ErrorKind.SEQUENCE_UNAVAILABLE,
                    "Failed to generate an identifier. Please try again.",
                    validation=validation,
                )

        uniqueness = None
        key = self.business_key(draft)
        if key:
            validator = self.uniqueness_validator(rule_set.name)
            uniqueness = await validator.check(key, force_refresh=True)
            if uniqueness.status == "conflict" and rule_set.uses_auto_key(draft.discriminator):
                # Generated key taken by another session: reserve a replacement once
                logger.warning(
                    "Reserved identifier already in use",
                    extra={"draft_id": draft.draft_id, "identifier": key},
                )
                draft.reserved_key = None
                if not await self._reserve_key(draft, rule_set):
                    return self._fail(
                        draft,
                        ErrorKind.SEQUENCE_UNAVAILABLE,
                        "Failed to generate an identifier. Please try again.",
                        validation=validation,
                    )
                key = self.business_key(draft)
                uniqueness = await validator.check(key)
                if uniqueness.status == "conflict":
                    draft.reserved_key = None
            blocked = self._uniqueness_block(draft, uniqueness, validation)
            if blocked is not None:
                return blocked

        self._transition(draft, RecordState.SUBMITTED)
        payload = self.build_payload(draft)

        try:
            with log_operation("Persisting draft", logger=logger, draft_id=draft.draft_id, rule_set=rule_set.name):
                record_id = await self.store.create(rule_set.name, payload, business_key=key or None)
        except StoreUnavailableError as e:
            metrics.increment_counter(metrics.store_errors_total, operation="create")
            return self._fail(draft, ErrorKind.UNREACHABLE, f"Record store unavailable: {e.message}",
                              validation=validation, uniqueness=uniqueness)
        except PersistenceError as e:
            metrics.increment_counter(metrics.store_errors_total, operation="create")
            return self._fail(draft, ErrorKind.PERSISTENCE_FAILED, f"Failed to save record: {e.message}",
                              validation=validation, uniqueness=uniqueness)

        self._transition(draft, RecordState.PERSISTED)
        record = PersistedRecord(
            record_id=record_id,
            rule_set=rule_set.name,
            discriminator=draft.discriminator,
            data=payload,
            business_key=key or None,
            status=INITIAL_STATUS,
        )

        if section_key:
            self.section_cache.clear(section_key)
        self._lookups.forget(draft.draft_id)
        self.snapshot_provider(rule_set.name).invalidate()
        self.notifier.notify("success", "Record saved successfully", draft_id=draft.draft_id, record_id=record_id)
        logger.info(
            "Draft persisted",
            extra={"draft_id": draft.draft_id, "record_id": record_id, "rule_set": rule_set.name},
        )
        return SubmitResult(
            ok=True,
            state=draft.state,
            record=record,
            validation=validation,
            uniqueness=uniqueness,
        )

    def _uniqueness_block(
        self,
        draft: RecordDraft,
        uniqueness: UniquenessResult,
        validation: ValidationResult,
    ) -> SubmitResult | None:
        if uniqueness.status == "conflict":
            return self._reject(draft, ErrorKind.UNIQUENESS_CONFLICT, uniqueness.reason or "Key already exists",
                                validation=validation, uniqueness=uniqueness)
        if uniqueness.status == "unknown":
            if self.settings.block_submit_on_unknown:
                return self._fail(draft, ErrorKind.UNREACHABLE, uniqueness.reason or "Uniqueness unknown",
                                  validation=validation, uniqueness=uniqueness)
            logger.warning(
                "Submitting without a uniqueness decision",
                extra={"draft_id": draft.draft_id, "rule_set": draft.rule_set},
            )
        return None

    # ------------------------------------------------------------------
    # Persisted records
    # ------------------------------------------------------------------

    async def update(self, persisted: PersistedRecord, changes: Mapping[str, Any]) -> SubmitResult:
        """
        Update a persisted record in place.

        The record's own key never counts as a conflict, so saving it with
        an unchanged key succeeds.
        """
        rule_set = self.registry.get(persisted.rule_set)
        guard = f"record:{persisted.record_id}"
        if guard in self._in_flight:
            return SubmitResult(
                ok=False,
                state=RecordState.PERSISTED,
                record=persisted,
                error=ErrorKind.SUBMISSION_IN_PROGRESS,
                message="Update already in progress",
            )

        self._in_flight.add(guard)
        try:
            return await self._update(persisted, rule_set, changes)
        finally:
            self._in_flight.discard(guard)

    async def _update(self, persisted: PersistedRecord, rule_set: RuleSet, changes: Mapping[str, Any]) -> SubmitResult:
        discriminator = persisted.discriminator
        if rule_set.discriminator_field and rule_set.discriminator_field in changes:
            discriminator = changes[rule_set.discriminator_field]

        data = {**persisted.data, **changes}
        data = self._derived_data(data, discriminator, rule_set)

        validation = self.registry.engine(rule_set.name).evaluate(data, discriminator)
        if not validation.is_valid:
            return SubmitResult(ok=False, state=RecordState.REJECTED, record=persisted,
                                error=ErrorKind.VALIDATION_FAILED,
                                message="Please fill in all required fields correctly", validation=validation)

        key = rule_set.normalize_key(data.get(rule_set.key_field)) if rule_set.key_field else ""
        uniqueness = None
        if key:
            uniqueness = await self.uniqueness_validator(rule_set.name).check(
                key, exclude_record_id=persisted.record_id, force_refresh=True
            )
            if uniqueness.status == "conflict":
                return SubmitResult(ok=False, state=RecordState.REJECTED, record=persisted,
                                    error=ErrorKind.UNIQUENESS_CONFLICT, message=uniqueness.reason or "",
                                    validation=validation, uniqueness=uniqueness)
            if uniqueness.status == "unknown" and self.settings.block_submit_on_unknown:
                return SubmitResult(ok=False, state=RecordState.FAILED, record=persisted,
                                    error=ErrorKind.UNREACHABLE, message=uniqueness.reason or "",
                                    validation=validation, uniqueness=uniqueness)

        if rule_set.discriminator_field:
            data[rule_set.discriminator_field] = discriminator
        if rule_set.key_field:
            data[rule_set.key_field] = key

        written = await self._write_update(persisted, data, key or None)
        if isinstance(written, SubmitResult):
            return written.model_copy(update={"validation": validation, "uniqueness": uniqueness})

        record = persisted.model_copy(update={"data": data, "discriminator": discriminator, "business_key": key or None})
        self.snapshot_provider(rule_set.name).invalidate()
        self.notifier.notify("success", "Record updated successfully", record_id=persisted.record_id)
        return SubmitResult(ok=True, state=RecordState.PERSISTED, record=record,
                            validation=validation, uniqueness=uniqueness)

    async def change_status(self, persisted: PersistedRecord, status: RecordStatus | str) -> SubmitResult:
        """
        Move a persisted record to another status of the closed status set.

        Active records may become Completed or Cancelled; both are final.
        """
        try:
            target = RecordStatus(status)
        except ValueError:
            return SubmitResult(ok=False, state=RecordState.PERSISTED, record=persisted,
                                error=ErrorKind.VALIDATION_FAILED, message=f"Unknown status: {status}")

        if target == persisted.status:
            return SubmitResult(ok=True, state=RecordState.PERSISTED, record=persisted)

        if target not in STATUS_TRANSITIONS[persisted.status]:
            return SubmitResult(
                ok=False, state=RecordState.PERSISTED, record=persisted,
                error=ErrorKind.VALIDATION_FAILED,
                message=f"Cannot change status from {persisted.status.value} to {target.value}",
            )

        rule_set = self.registry.get(persisted.rule_set)
        data = dict(persisted.data)
        if rule_set.status_field:
            data[rule_set.status_field] = target.value

        written = await self._write_update(persisted, data, persisted.business_key)
        if isinstance(written, SubmitResult):
            return written

        record = persisted.model_copy(update={"data": data, "status": target})
        self.notifier.notify("success", f"Status changed to {target.value}", record_id=persisted.record_id)
        return SubmitResult(ok=True, state=RecordState.PERSISTED, record=record)

    async def _write_update(self, persisted: PersistedRecord, data: dict[str, Any], key: str | None) -> SubmitResult | None:
        try:
            await self.store.update(persisted.record_id, data, business_key=key)
        except StoreUnavailableError as e:
            metrics.increment_counter(metrics.store_errors_total, operation="update")
            self.notifier.notify("error", "Record store unavailable. Please try again.", record_id=persisted.record_id)
            return SubmitResult(ok=False, state=RecordState.FAILED, record=persisted,
                                error=ErrorKind.UNREACHABLE, message=e.message)
        except PersistenceError as e:
            metrics.increment_counter(metrics.store_errors_total, operation="update")
            self.notifier.notify("error", "Failed to update record. Please try again.", record_id=persisted.record_id)
            return SubmitResult(ok=False, state=RecordState.FAILED, record=persisted,
                                error=ErrorKind.PERSISTENCE_FAILED, message=e.message)
        return None

    # ------------------------------------------------------------------
    # Renewal
    # ------------------------------------------------------------------

    def renew(
        self,
        persisted: PersistedRecord,
        new_start_date: Any,
        new_duration: Any,
        overrides: Mapping[str, Any] | None = None,
        section_key: str | None = None,
    ) -> RenewalOutcome:
        """
        Derive a new draft from a persisted record.

        Every field is copied except identity, date and status fields.
        ``overrides`` replace copied fields; they cannot touch identity,
        dates or status. Dates are recomputed from the new start date and
        duration, the status starts over as Active, and the draft gets a
        fresh identity. The draft is parked in the section cache when
        ``section_key`` is given.
        """
        rule_set = self.registry.get(persisted.rule_set)
        dates = rule_set.date_fields
        if dates is None:
            return self._renewal_failed(rule_set, f"Records of type '{rule_set.name}' cannot be renewed")

        start = parse_date(new_start_date)
        duration = parse_duration(new_duration)
        end = compute_end_date(start, duration)
        if start is None:
            return self._renewal_failed(rule_set, "Start date must be a valid date")
        if end is None:
            return self._renewal_failed(rule_set, "Duration must be at least 1 day")

        protected = set(rule_set.identity_fields) | dates.names()
        if rule_set.status_field:
            protected.add(rule_set.status_field)

        data = {name: value for name, value in persisted.data.items() if name not in protected}
        for name, value in (overrides or {}).items():
            if name in protected:
                logger.warning(
                    "Ignoring renewal override of protected field",
                    extra={"field_name": name, "source_record_id": persisted.record_id},
                )
                continue
            data[name] = value

        data[dates.start] = start.isoformat()
        data[dates.duration] = duration
        data[dates.end] = end.isoformat()
        if dates.requested:
            data[dates.requested] = self.today().isoformat()
        if rule_set.status_field:
            data[rule_set.status_field] = INITIAL_STATUS.value

        draft = RecordDraft(
            rule_set=rule_set.name,
            discriminator=persisted.discriminator,
            data=data,
            renewed_from=persisted.record_id,
        )
        validation = self.evaluate(draft)

        if section_key:
            self.section_cache.save(section_key, draft, touched=True)

        metrics.increment_counter(metrics.renewals_total, rule_set=rule_set.name, outcome="derived")
        logger.info(
            "Renewal draft derived",
            extra={"draft_id": draft.draft_id, "source_record_id": persisted.record_id},
        )
        return RenewalOutcome(ok=True, draft=draft, validation=validation)

    async def renew_and_submit(
        self,
        persisted: PersistedRecord,
        new_start_date: Any,
        new_duration: Any,
        overrides: Mapping[str, Any] | None = None,
        section_key: str | None = None,
    ) -> tuple[RenewalOutcome, SubmitResult | None]:
        """Derive a renewal and submit it; the submit result is None when derivation failed."""
        outcome = self.renew(persisted, new_start_date, new_duration, overrides, section_key)
        if not outcome.ok or outcome.draft is None:
            return outcome, None
        return outcome, await self.submit(outcome.draft, section_key=section_key)

    def _renewal_failed(self, rule_set: RuleSet, message: str) -> RenewalOutcome:
        metrics.increment_counter(metrics.renewals_total, rule_set=rule_set.name, outcome="rejected")
        self.notifier.notify("error", message)
        return RenewalOutcome(ok=False, error=ErrorKind.VALIDATION_FAILED, message=message)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _derived_data(self, data: Mapping[str, Any], discriminator: str | None, rule_set: RuleSet) -> dict[str, Any]:
        result = apply_autofill(data, discriminator, rule_set)
        if rule_set.key_field and rule_set.key_field in result and result[rule_set.key_field] is not None:
            result[rule_set.key_field] = rule_set.normalize_key(result[rule_set.key_field])
        dates = rule_set.date_fields
        if dates is not None:
            end = compute_end_date(result.get(dates.start), result.get(dates.duration))
            result[dates.end] = format_date(end)
        return result

    def _refresh_derived(self, draft: RecordDraft, rule_set: RuleSet) -> None:
        draft.data = self._derived_data(draft.data, draft.discriminator, rule_set)

    async def _reserve_key(self, draft: RecordDraft, rule_set: RuleSet) -> bool:
        if self.sequence is None:
            logger.error("No sequence generator configured", extra={"rule_set": rule_set.name})
            return False
        try:
            draft.reserved_key = await self.sequence.next()
        except SequenceUnavailableError as e:
            metrics.increment_counter(metrics.sequence_failures_total, rule_set=rule_set.name)
            logger.error(
                "Identifier reservation failed",
                extra={"draft_id": draft.draft_id, "rule_set": rule_set.name, "error_message": str(e)},
            )
            self.notifier.notify("error", "Failed to generate an identifier. Please try again.",
                                 draft_id=draft.draft_id)
            return False
        return True

    def _transition(self, draft: RecordDraft, target: RecordState) -> None:
        if target not in ALLOWED_TRANSITIONS[draft.state]:
            raise InvalidTransitionError(draft.draft_id, draft.state.value, target.value)
        logger.debug(
            "Draft state change",
            extra={"draft_id": draft.draft_id, "from_state": draft.state.value, "to_state": target.value},
        )
        draft.state = target

    def _ensure_open(self, draft: RecordDraft) -> None:
        if draft.is_closed:
            raise DraftClosedError(f"Draft {draft.draft_id} is already persisted")

    def _reject(self, draft: RecordDraft, error: ErrorKind, message: str, **details) -> SubmitResult:
        self._transition(draft, RecordState.REJECTED)
        self.notifier.notify("error", message, draft_id=draft.draft_id)
        return SubmitResult(ok=False, state=draft.state, error=error, message=message, **details)

    def _fail(self, draft: RecordDraft, error: ErrorKind, message: str, **details) -> SubmitResult:
        self._transition(draft, RecordState.FAILED)
        self.notifier.notify("error", message, draft_id=draft.draft_id)
        logger.warning(
            "Submission failed",
            extra={"draft_id": draft.draft_id, "error_kind": error.value, "error_message": message},
        )
        return SubmitResult(ok=False, state=draft.state, error=error, message=message, **details)
