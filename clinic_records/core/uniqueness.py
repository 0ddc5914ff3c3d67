"""
Business-key uniqueness checks.

``check_unique`` is the pure decision against a snapshot. The
``SnapshotProvider`` caches store snapshots and reports "unknown" when the
store cannot be reached. ``DebouncedUniquenessChecker`` drives checks from
keystrokes: each request for a field bumps that field's generation
counter, and a result is applied only if its generation is still the
latest when it completes.
"""

import asyncio
from typing import Callable

from clinic_records.core.models import ExternalRecordSnapshot, UniquenessResult
from clinic_records.observability import metrics
from clinic_records.observability.logger import get_logger

logger = get_logger(__name__)

ResultCallback = Callable[[str, UniquenessResult], None]


def normalize_key(value: object) -> str:
    """Comparison form of a business key: trimmed and case-folded."""
    if value is None:
        return ""
    return str(value).strip().lower()


def check_unique(
    candidate_key: object,
    snapshot: ExternalRecordSnapshot | None,
    exclude_record_id: str | None = None,
    max_age_seconds: float | None = None,
) -> UniquenessResult:
    """
    Decide whether ``candidate_key`` is free in ``snapshot``.

    Args:
        candidate_key: Key entered by the user
        snapshot: Store snapshot, or None when it could not be obtained
        exclude_record_id: Identity of the record being edited; its own entry never conflicts
        max_age_seconds: When given, results carry ``stale=True`` for older snapshots

    Returns:
        UniquenessResult with status valid, conflict, missing or unknown
    """
    raw = "" if candidate_key is None else str(candidate_key)
    wanted = normalize_key(raw)

    if not wanted:
        return UniquenessResult(status="missing", candidate_key=raw, reason="Business key is required")

    if snapshot is None:
        return UniquenessResult(
            status="unknown",
            candidate_key=raw,
            reason="Existing records could not be loaded; uniqueness is unknown",
        )

    stale = max_age_seconds is not None and snapshot.is_stale(max_age_seconds)

    for entry in snapshot.entries:
        if exclude_record_id is not None and entry.record_id == exclude_record_id:
            continue
        if normalize_key(entry.key) == wanted:
            return UniquenessResult(
                status="conflict",
                candidate_key=raw,
                reason=f"'{raw.strip()}' already exists. Please use a different value.",
                conflicting_record_id=entry.record_id,
                snapshot_fetched_at=snapshot.fetched_at,
                stale=stale,
            )

    return UniquenessResult(
        status="valid",
        candidate_key=raw,
        snapshot_fetched_at=snapshot.fetched_at,
        stale=stale,
    )


class SnapshotProvider:
    """
    Caches the store snapshot for one key domain.

    A cached snapshot younger than ``max_age_seconds`` is served as is. An
    older one is refreshed; if the refresh fails the old snapshot is still
    served (its staleness shows up on results). A forced refresh that fails
    yields None, as does a failed fetch with nothing cached.
    """

    def __init__(self, store, key_domain: str, max_age_seconds: float = 300.0):
        self.store = store
        self.key_domain = key_domain
        self.max_age_seconds = max_age_seconds
        self._snapshot: ExternalRecordSnapshot | None = None
        self._refresh: asyncio.Future | None = None

    @property
    def cached(self) -> ExternalRecordSnapshot | None:
        return self._snapshot

    def invalidate(self) -> None:
        """Force the next call to refetch (e.g. after this session persisted a record)."""
        self._snapshot = None

    async def get_snapshot(self, force_refresh: bool = False) -> ExternalRecordSnapshot | None:
        """
        Current snapshot, refreshing when missing, stale or forced.

        Concurrent callers share one in-flight fetch; a caller being
        cancelled does not cancel the fetch for the others.
        """
        current = self._snapshot
        if current is not None and not force_refresh and not current.is_stale(self.max_age_seconds):
            return current

        if self._refresh is None or self._refresh.done():
            self._refresh = asyncio.ensure_future(self._fetch())
        snapshot = await asyncio.shield(self._refresh)
        if snapshot is None and not force_refresh:
            return current
        return snapshot

    async def _fetch(self) -> ExternalRecordSnapshot | None:
        try:
            snapshot = await self.store.fetch_all(self.key_domain)
        except Exception as e:
            metrics.increment_counter(metrics.store_errors_total, operation="fetch_all")
            logger.warning(
                "Snapshot refresh failed",
                extra={
                    "key_domain": self.key_domain,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
            )
            return None

        self._snapshot = snapshot
        logger.debug(
            "Snapshot refreshed",
            extra={"key_domain": self.key_domain, "entries": len(snapshot.entries)},
        )
        return snapshot


class UniquenessValidator:
    """
    Checks business keys against the provider's snapshot.
    """

    def __init__(self, provider: SnapshotProvider):
        self.provider = provider

    async def check(
        self,
        candidate_key: object,
        exclude_record_id: str | None = None,
        force_refresh: bool = False,
    ) -> UniquenessResult:
        if not normalize_key(candidate_key):
            return check_unique(candidate_key, None)
        snapshot = await self.provider.get_snapshot(force_refresh=force_refresh)
        result = check_unique(candidate_key, snapshot, exclude_record_id, self.provider.max_age_seconds)
        metrics.increment_counter(metrics.uniqueness_checks_total, outcome=result.status)
        return result


class DebouncedUniquenessChecker:
    """
    Keystroke-driven uniqueness checks with at most one winning result per field.

    Every request increments the field's generation. The request waits for
    the quiet period, performs the lookup, and then applies its result only
    if no newer request was issued meanwhile. ``schedule`` additionally
    cancels the still-pending task of the previous request.
    """

    def __init__(
        self,
        validator: UniquenessValidator,
        debounce_seconds: float = 0.25,
        on_result: ResultCallback | None = None,
    ):
        self.validator = validator
        self.debounce_seconds = debounce_seconds
        self.on_result = on_result
        self._generations: dict[str, int] = {}
        self._pending: dict[str, asyncio.Task] = {}
        self._latest: dict[str, UniquenessResult] = {}

    def generation(self, field_name: str) -> int:
        return self._generations.get(field_name, 0)

    def latest(self, field_name: str) -> UniquenessResult | None:
        """The applied result for a field, if any."""
        return self._latest.get(field_name)

    def _next_generation(self, field_name: str) -> int:
        generation = self._generations.get(field_name, 0) + 1
        self._generations[field_name] = generation
        return generation

    async def check(
        self,
        field_name: str,
        candidate_key: object,
        exclude_record_id: str | None = None,
    ) -> UniquenessResult | None:
        """
        Run one debounced check.

        Returns:
            The result if it was applied, None if a newer request superseded it
        """
        generation = self._next_generation(field_name)
        return await self._run(field_name, generation, candidate_key, exclude_record_id)

    def schedule(
        self,
        field_name: str,
        candidate_key: object,
        exclude_record_id: str | None = None,
    ) -> asyncio.Task:
        """
        Start a debounced check in the background, cancelling the field's pending one.

        Must be called from a running event loop.
        """
        generation = self._next_generation(field_name)
        self._cancel_pending(field_name)
        task = asyncio.create_task(self._run(field_name, generation, candidate_key, exclude_record_id))
        self._pending[field_name] = task
        return task

    def clear(self, field_name: str) -> None:
        """Field was emptied: discard any in-flight check and the applied result."""
        self._next_generation(field_name)
        self._cancel_pending(field_name)
        self._latest.pop(field_name, None)

    def _cancel_pending(self, field_name: str) -> None:
        pending = self._pending.pop(field_name, None)
        if pending is not None and not pending.done():
            pending.cancel()

    async def _run(
        self,
        field_name: str,
        generation: int,
        candidate_key: object,
        exclude_record_id: str | None,
    ) -> UniquenessResult | None:
        try:
            if self.debounce_seconds > 0:
                await asyncio.sleep(self.debounce_seconds)
            if self._generations.get(field_name) != generation:
                return None
            result = await self.validator.check(candidate_key, exclude_record_id)
        except asyncio.CancelledError:
            # Superseded while waiting; the newer request owns the field
            return None

        if self._generations.get(field_name) != generation:
            metrics.increment_counter(metrics.uniqueness_results_discarded_total, field_name=field_name)
            logger.debug(
                "Discarded superseded uniqueness result",
                extra={"field_name": field_name, "generation": generation},
            )
            return None

        self._latest[field_name] = result
        if self.on_result is not None:
            self.on_result(field_name, result)
        return result

    async def drain(self) -> None:
        """Wait for every pending check (used on teardown and in tests)."""
        pending = [task for task in self._pending.values() if not task.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
