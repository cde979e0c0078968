"""Prometheus metrics for settlements, credit rejections, ledger activity and integrations"""

from decimal import Decimal

from prometheus_client import Counter, Histogram

# Settlement metrics
settlement_counter = Counter(
    "settlement_orders_total",
    "Settlement attempts by outcome",
    ["outcome"],  # created | rejected | replayed | failed
)

settlement_amount_bucket_counter = Counter(
    "settlement_order_amount_bucket",
    "Settled order totals by bucket",
    ["bucket"],  # <100, 100-500, 500-2000, 2000+
)

eligibility_rejection_counter = Counter(
    "eligibility_rejections_total",
    "Settlements blocked by the eligibility guard",
    ["reason"],
)

# Ledger metrics
ledger_entry_counter = Counter(
    "ledger_entries_total",
    "Ledger entries applied or reversed",
    ["type", "action"],  # action: applied | reversed
)

# Payment gateway metrics
gateway_failure_counter = Counter(
    "payment_gateway_failures_total",
    "Failed payment-code requests to the gateway",
)

gateway_latency_histogram = Histogram(
    "payment_gateway_latency_seconds",
    "Payment gateway response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Notification webhook metrics
webhook_latency_histogram = Histogram(
    "notification_webhook_latency_seconds",
    "Notification webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_failure_counter = Counter(
    "notification_webhook_failures_total",
    "Failed notification deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_settlement(outcome: str, total: Decimal = Decimal("0")) -> None:
    """Record settlement outcome and, for created orders, the amount bucket"""
    settlement_counter.labels(outcome=outcome).inc()
    if outcome != "created":
        return

    if total < 100:
        bucket = "<100"
    elif total < 500:
        bucket = "100-500"
    elif total < 2000:
        bucket = "500-2000"
    else:
        bucket = "2000+"

    settlement_amount_bucket_counter.labels(bucket=bucket).inc()


def record_ledger_entry(entry_type: str, action: str) -> None:
    ledger_entry_counter.labels(type=entry_type, action=action).inc()
