"""
Prometheus metrics for payment notification monitoring.

Tracks:
- Notifications received per gateway and kind
- Reconciliation outcomes and duration
- Replies sent to gateways
- Order event publishing
"""
from prometheus_client import Counter, Histogram

# Notification metrics
notifications_received_total = Counter(
    "payment_notifications_received_total",
    "Total gateway notifications received",
    ["gateway", "kind"],  # kind: payment, refund, return
)

gateway_replies_total = Counter(
    "payment_gateway_replies_total",
    "Total replies sent to gateways",
    ["gateway", "kind", "reply"],  # reply: success, retry, reject
)

# Reconciliation metrics
reconciliation_outcomes_total = Counter(
    "payment_reconciliation_outcomes_total",
    "Total reconciliation outcomes",
    ["kind", "outcome"],
)

reconciliation_duration_seconds = Histogram(
    "payment_reconciliation_duration_seconds",
    "Reconciliation duration in seconds",
    ["kind"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

# Event metrics
order_events_total = Counter(
    "order_events_total",
    "Total order events handed to the event sink",
    ["event_type", "status"],  # published, failed
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_notification(gateway: str, kind: str) -> None:
        """Record an inbound gateway notification."""
        notifications_received_total.labels(gateway=gateway, kind=kind).inc()

    @staticmethod
    def record_reply(gateway: str, kind: str, reply: str) -> None:
        """Record the reply sent back to a gateway."""
        gateway_replies_total.labels(gateway=gateway, kind=kind, reply=reply).inc()

    @staticmethod
    def record_reconciliation(kind: str, outcome: str, duration_seconds: float) -> None:
        """Record a reconciliation outcome."""
        reconciliation_outcomes_total.labels(kind=kind, outcome=outcome).inc()
        reconciliation_duration_seconds.labels(kind=kind).observe(duration_seconds)

    @staticmethod
    def record_event_published(event_type: str, status: str) -> None:
        """Record an order event delivery attempt."""
        order_events_total.labels(event_type=event_type, status=status).inc()


# Export singleton instance
metrics = MetricsCollector()
