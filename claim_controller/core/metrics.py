"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client import CollectorRegistry

# Create a custom registry to avoid conflicts
registry = CollectorRegistry()

# ============================================================================
# Counters - Monotonically increasing values
# ============================================================================

reconcile_total = Counter(
    "claim_controller_reconcile_total",
    "Total number of claim reconciliation passes",
    ["outcome"],  # success, not_found, conflict, error
    registry=registry,
)

phase_transitions_total = Counter(
    "claim_controller_phase_transitions_total",
    "Total number of claim phase transitions",
    ["phase", "reason"],
    registry=registry,
)

claims_bound_total = Counter(
    "claim_controller_sandboxes_bound_total",
    "Total number of sandboxes bound to claims",
    registry=registry,
)

bind_conflicts_total = Counter(
    "claim_controller_bind_conflicts_total",
    "Total number of sandbox binds lost to a concurrent writer",
    registry=registry,
)

claims_cleaned_up_total = Counter(
    "claim_controller_claims_cleaned_up_total",
    "Total number of completed claims deleted after their TTL",
    registry=registry,
)

state_cache_lookups = Counter(
    "claim_controller_state_cache_lookups_total",
    "Sandbox state cache lookups",
    ["result"],  # hit, miss, bypass
    registry=registry,
)

admission_total = Counter(
    "claim_controller_admission_total",
    "Total number of claim admission reviews",
    ["operation", "allowed"],
    registry=registry,
)

# ============================================================================
# Gauges - Current state values (can go up or down)
# ============================================================================

queue_depth = Gauge(
    "claim_controller_queue_depth",
    "Number of claim keys waiting in the work queue",
    registry=registry,
)

# ============================================================================
# Histograms - Distribution of values
# ============================================================================

reconcile_latency = Histogram(
    "claim_controller_reconcile_latency_seconds",
    "Claim reconciliation latency in seconds",
    ["outcome"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    registry=registry,
)

request_latency = Histogram(
    "claim_controller_request_latency_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint", "status"],
    buckets=[0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0],
    registry=registry,
)


# ============================================================================
# Helper Functions
# ============================================================================

def get_metrics() -> tuple[bytes, str]:
    """
    Generate Prometheus metrics output.

    Returns:
        Tuple of (metrics_bytes, content_type)
    """
    return generate_latest(registry), CONTENT_TYPE_LATEST
