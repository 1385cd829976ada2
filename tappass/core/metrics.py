"""Application metrics using the Prometheus client library.

Every metric the service exposes is defined here, in one inventory.
Other modules import the specific metric and increment/observe it at
the point of action.

Label values are always drawn from small closed sets (HTTP method,
route template, reason code, outcome).  Digital IDs, reader IDs and
operator IDs never become label values: each distinct label value is
a separate time series, and badge identifiers are unbounded.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Access control metrics
# ---------------------------------------------------------------------------

ACCESS_DECISIONS = Counter(
    "access_decisions_total",
    "Durably recorded access decisions",
    ["granted", "reason_code"],
)

SCAN_CYCLES = Counter(
    "scan_cycles_total",
    "Scan cycles by how they ended",
    ["outcome"],  # logged|lookup_failed|log_failed|cancelled
)

AUDIT_WRITE_FAILURES = Counter(
    "audit_write_failures_total",
    "Failed audit sink writes, counted per try (retries included)",
    ["kind"],  # "error" or "timeout"
)

AUDIT_WRITE_DURATION = Histogram(
    "audit_write_duration_seconds",
    "Time to durably record one access attempt, retries included",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

LOOKUP_THROTTLE_HITS = Counter(
    "lookup_throttle_hits_total",
    "Scans refused because the reader exceeded its unknown-ID budget",
)
