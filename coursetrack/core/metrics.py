"""Prometheus metric inventory for coursetrack.

Every metric the service exports is declared here; the modules that own
the behavior import them and increment/observe at the point of action.
Scraped from GET /metrics.

Reconciliation metrics are labeled by outcome rather than by course so
that label cardinality stays bounded no matter how many courses exist.
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
# Progress core
# ---------------------------------------------------------------------------

RECONCILED_USERS = Counter(
    "reconcile_users_total",
    "Per-user reconciliation outcomes",
    ["result"],  # "changed", "unchanged", "failed"
)

RECONCILE_DURATION = Histogram(
    "reconcile_batch_duration_seconds",
    "Wall time of one course-wide reconciliation batch",
    # Batches touch every enrolled user, so the tail is long.
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0],
)

LEAF_COMPLETIONS = Counter(
    "leaf_completions_total",
    "mark_leaf_complete calls by effect",
    ["transition"],  # "first" or "repeat"
)

ENROLLMENT_WRITE_CONFLICTS = Counter(
    "enrollment_write_conflicts_total",
    "Optimistic version checks that lost a race",
    ["operation"],  # "complete", "reconcile"
)

ENROLLMENTS_REMOVED = Counter(
    "enrollments_removed_total",
    "Enrollments deleted",
    ["reason"],  # "course_deleted", "unenrolled", "stale"
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Progress view cache lookups by result",
    ["operation"],  # "hit" or "miss"
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],  # "course_repair", "course_cleanup"
)
