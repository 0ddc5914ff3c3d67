"""
Prometheus metrics for the record validation and lifecycle engine

Counters and histograms live on a private registry so that importing
the engine never pollutes the process-wide default registry.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()


# =======================
# LIFECYCLE METRICS
# =======================

submissions_total = Counter(
    name="clinic_record_submissions_total",
    documentation="Total number of draft submissions by outcome",
    labelnames=["rule_set", "outcome"],  # outcome: persisted or an ErrorKind value
    registry=REGISTRY,
)

submission_duration_seconds = Histogram(
    name="clinic_record_submission_duration_seconds",
    documentation="Time from submit call to final result in seconds",
    labelnames=["rule_set"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY,
)

renewals_total = Counter(
    name="clinic_record_renewals_total",
    documentation="Total number of renewal drafts derived from persisted records",
    labelnames=["rule_set", "outcome"],
    registry=REGISTRY,
)

# =======================
# VALIDATION METRICS
# =======================

field_validation_failures_total = Counter(
    name="clinic_record_field_validation_failures_total",
    documentation="Field-level validation failures observed at submit time",
    labelnames=["rule_set", "field_name"],
    registry=REGISTRY,
)

uniqueness_checks_total = Counter(
    name="clinic_record_uniqueness_checks_total",
    documentation="Business-key uniqueness checks by outcome",
    labelnames=["outcome"],  # valid, conflict, unknown
    registry=REGISTRY,
)

uniqueness_results_discarded_total = Counter(
    name="clinic_record_uniqueness_results_discarded_total",
    documentation="Uniqueness results dropped because a newer check superseded them",
    labelnames=["field_name"],
    registry=REGISTRY,
)

linked_lookups_total = Counter(
    name="clinic_record_linked_lookups_total",
    documentation="Linked-record lookups by outcome",
    labelnames=["outcome"],  # found, not_found, cleared, unavailable, discarded
    registry=REGISTRY,
)

# =======================
# COLLABORATOR METRICS
# =======================

sequence_failures_total = Counter(
    name="clinic_record_sequence_failures_total",
    documentation="Failed attempts to reserve an auto-generated identifier",
    labelnames=["rule_set"],
    registry=REGISTRY,
)

store_errors_total = Counter(
    name="clinic_record_store_errors_total",
    documentation="Record store failures by operation",
    labelnames=["operation"],  # fetch_all, find_by_key, create, update
    registry=REGISTRY,
)


# =======================
# HELPERS
# =======================

def generate_metrics() -> bytes:
    """Everything on REGISTRY in the Prometheus text exposition format"""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def track_duration(histogram: Histogram, **labels):
    """
    Time a block into ``histogram``.

    Usage:
        with track_duration(submission_duration_seconds, rule_set="patient_registration"):
            ...
    """
    return (histogram.labels(**labels) if labels else histogram).time()


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    (counter.labels(**labels) if labels else counter).inc(value)


def get_counter_value(counter: Counter, **labels) -> float:
    """Current value of one counter sample, 0.0 if that label set was never incremented."""
    return REGISTRY.get_sample_value(f"{counter._name}_total", labels) or 0.0
