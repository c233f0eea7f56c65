"""Prometheus metrics for billing runs, catch-up generation and notification delivery"""

from prometheus_client import Counter, Histogram

# Billing run metrics
transactions_generated_counter = Counter(
    "sda_billing_transactions_generated_total",
    "Draft drawdown transactions created by automation",
    ["frequency"],  # daily | weekly | fortnightly
)

contract_failure_counter = Counter(
    "sda_billing_contract_failures_total",
    "Contracts that could not be billed in a run",
    ["kind"],  # invalid_amount | insufficient_balance | duplicate_prevented | duplicate_resident | persistence | unexpected
)

run_counter = Counter(
    "sda_billing_runs_total",
    "Automation runs by outcome",
    ["status"],  # success | partial | failed
)

run_duration_histogram = Histogram(
    "sda_billing_run_duration_seconds",
    "Time taken by one organization's automation run",
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

catchup_transactions_counter = Counter(
    "sda_billing_catchup_transactions_total",
    "Draft transactions created by catch-up generation",
)

# Notification metrics
notification_latency_histogram = Histogram(
    "notification_latency_seconds",
    "Run notification webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

notification_failure_counter = Counter(
    "notification_failures_total",
    "Failed run notification deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_run(status: str, duration_seconds: float) -> None:
    """Record run outcome and duration"""
    run_counter.labels(status=status).inc()
    run_duration_histogram.observe(duration_seconds)


def record_transaction(frequency: str) -> None:
    transactions_generated_counter.labels(frequency=frequency).inc()


def record_contract_failure(kind: str) -> None:
    contract_failure_counter.labels(kind=kind).inc()
