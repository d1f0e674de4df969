"""Prometheus metrics for the pulse engine (shared registry)"""

from prometheus_client import CollectorRegistry, Counter, Histogram

PROM_REGISTRY = CollectorRegistry(auto_describe=True)

snapshot_requests_total = Counter(
    "pulse_snapshot_requests_total",
    "Snapshot requests by freshness outcome",
    ["window_days", "result"],  # result: hit, miss, forced
    registry=PROM_REGISTRY,
)

signals_requests_total = Counter(
    "pulse_signals_requests_total",
    "Signal comparison requests by cache outcome",
    ["window_days", "result"],  # result: hit, miss
    registry=PROM_REGISTRY,
)

narrative_total = Counter(
    "pulse_narrative_total",
    "Narrative generation attempts",
    ["kind", "result"],  # kind: snapshot, signals; result: ok, error, skipped
    registry=PROM_REGISTRY,
)

snapshot_job_windows_total = Counter(
    "pulse_snapshot_job_windows_total",
    "Per-window outcomes of the scheduled snapshot job",
    ["window_days", "result"],  # result: ok, error
    registry=PROM_REGISTRY,
)

store_batch_reads_total = Counter(
    "pulse_store_batch_reads_total",
    "Batched document reads issued against the store",
    ["collection"],
    registry=PROM_REGISTRY,
)

compute_seconds = Histogram(
    "pulse_compute_seconds",
    "Wall time of deterministic snapshot/signal computation",
    ["kind"],
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    registry=PROM_REGISTRY,
)
