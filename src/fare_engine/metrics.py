"""Prometheus metrics for fare lookups, fetches and reconciliation."""

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

# Use a separate registry to avoid default Python metrics
REGISTRY = CollectorRegistry()

fare_cache_lookups = Counter(
    "fare_cache_lookups_total",
    "Fare schedule lookups by the source that resolved them",
    ["trip_kind", "source"],
    registry=REGISTRY,
)

fare_fetches = Counter(
    "fare_fetch_total",
    "Fare API requests by outcome",
    ["trip_kind", "outcome"],
    registry=REGISTRY,
)

fare_fetch_latency = Histogram(
    "fare_fetch_latency_seconds",
    "Fare API request latency in seconds",
    ["trip_kind"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY,
)

fare_coordinator_queue_depth = Gauge(
    "fare_coordinator_queue_depth",
    "Fare fetch operations waiting for the request coordinator",
    registry=REGISTRY,
)

fare_settlements = Counter(
    "fare_reconciliation_settlements_total",
    "Reconciliation settlements by the source of the displayed fare",
    ["trip_kind", "source"],
    registry=REGISTRY,
)

fare_significant_differences = Counter(
    "fare_significant_differences_total",
    "Computed fares that diverged from the authoritative total",
    ["trip_kind", "overridden"],
    registry=REGISTRY,
)


def generate_metrics() -> bytes:
    """Generate Prometheus exposition format output."""
    return generate_latest(REGISTRY)
