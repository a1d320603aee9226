"""Monitoring configuration for questvault."""
from prometheus_client import Counter, Histogram, start_http_server

# Review metrics
misses_recorded = Counter(
    "questvault_misses_recorded_total",
    "Total number of missed answers recorded",
    ["reused"],
)

reviews_cleared = Counter(
    "questvault_reviews_cleared_total",
    "Total number of missed items reviewed",
    ["outcome"],
)

items_retired = Counter(
    "questvault_items_retired_total",
    "Total number of missed items that reached mastery",
)

# Plan metrics
plans_created = Counter(
    "questvault_plans_created_total",
    "Total number of distribution plans created",
)

assignments_created = Counter(
    "questvault_assignments_created_total",
    "Total number of batch assignments created",
)

assignments_advanced = Counter(
    "questvault_assignments_advanced_total",
    "Total number of batch attempts applied",
    ["outcome"],
)

rewards_claimed = Counter(
    "questvault_rewards_claimed_total",
    "Total number of plan completion rewards paid out",
)

batch_scores = Histogram(
    "questvault_batch_score_percent",
    "Scores of submitted batches",
    buckets=[20, 40, 60, 80, 90, 100],
)

refunds_requested = Counter(
    "questvault_refunds_requested_total",
    "Total number of points refund requests",
)

refunds_processed = Counter(
    "questvault_refunds_processed_total",
    "Total number of refund requests approved or rejected",
    ["status"],
)

# Storage metrics
storage_errors = Counter(
    "questvault_storage_errors_total",
    "Total number of persistence errors",
    ["error_type"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
