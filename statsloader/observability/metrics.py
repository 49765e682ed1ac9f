"""Prometheus metrics definitions."""

from prometheus_client import Counter, Gauge, Histogram

# Item metrics
ITEMS_PROCESSED = Counter(
    "statsloader_items_processed_total",
    "Total number of chunk items processed",
    ["status"],
)

ITEM_ERRORS = Counter(
    "statsloader_item_errors_total",
    "Total number of failed items by classification",
    ["error_kind", "error_type"],
)

ITEM_LATENCY = Histogram(
    "statsloader_item_latency_seconds",
    "Item pipeline latency in seconds",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# Chunk metrics
CHUNKS_PROCESSED = Counter(
    "statsloader_chunks_processed_total",
    "Total number of chunks processed",
    ["outcome"],
)

CHUNK_LATENCY = Histogram(
    "statsloader_chunk_latency_seconds",
    "Chunk processing latency in seconds",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

ITEMS_IN_FLIGHT = Gauge(
    "statsloader_items_in_flight",
    "Item pipelines currently running",
)

# Resilience metrics
RETRY_ATTEMPTS = Counter(
    "statsloader_retry_attempts_total",
    "Total number of retries scheduled",
    ["operation"],
)

VERSION_CONFLICTS = Counter(
    "statsloader_version_conflicts_total",
    "Total number of optimistic update conflicts",
)

CIRCUIT_STATE = Gauge(
    "statsloader_circuit_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["circuit"],
)

CIRCUIT_REJECTIONS = Counter(
    "statsloader_circuit_rejections_total",
    "Total number of calls rejected by an open circuit",
    ["circuit"],
)

# Error handling metrics
ERRORS_HANDLED = Counter(
    "statsloader_errors_handled_total",
    "Total number of errors passed through error handling",
    ["error_kind", "severity"],
)

ESCALATIONS = Counter(
    "statsloader_escalations_total",
    "Total number of escalation alerts raised",
    ["error_kind"],
)

# Queue metrics
CHUNK_QUEUE_LENGTH = Gauge(
    "statsloader_chunk_queue_length",
    "Number of chunks waiting in the work queue",
)
