"""Prometheus metrics for loan transitions, repayments and trust score updates"""

from decimal import Decimal
from prometheus_client import Counter, Histogram

# Lifecycle metrics
loan_transition_counter = Counter(
    "lendit_loan_transitions_total",
    "Loan agreement status transitions",
    ["to_status"],  # active | completed | defaulted | cancelled
)

loan_requests_counter = Counter(
    "lendit_loan_requests_total",
    "Loan requests created",
)

payment_counter = Counter(
    "lendit_payments_total",
    "Repayments recorded",
    ["method", "timeliness"],  # timeliness: on_time | late
)

payment_amount_bucket_counter = Counter(
    "lendit_payment_amount_bucket",
    "Repayments by amount bucket",
    ["bucket"],  # <1k, 1k-10k, 10k-1L, 1L+
)

rejected_transition_counter = Counter(
    "lendit_rejected_transitions_total",
    "Transitions refused by a guard",
    ["error"],
)

# Trust score metrics
score_recompute_histogram = Histogram(
    "lendit_trust_score_recompute_seconds",
    "Trust score recompute latency",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)

score_change_counter = Counter(
    "lendit_trust_score_events_total",
    "Trust score events applied",
    ["event_type"],
)

achievement_counter = Counter(
    "lendit_achievements_total",
    "Achievements earned",
    ["achievement_type"],
)

# Payment processor
payment_capture_failures_counter = Counter(
    "lendit_payment_capture_failures_total",
    "Failed payment capture verifications",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_payment(method: str, amount: Decimal, on_time: bool) -> None:
    """Record repayment metrics for monitoring volumes and lateness"""
    payment_counter.labels(method=method, timeliness="on_time" if on_time else "late").inc()

    if amount < 1_000:
        bucket = "<1k"
    elif amount < 10_000:
        bucket = "1k-10k"
    elif amount < 100_000:
        bucket = "10k-1L"
    else:
        bucket = "1L+"

    payment_amount_bucket_counter.labels(bucket=bucket).inc()
