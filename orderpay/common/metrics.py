"""Prometheus metric definitions for the payment service."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


payment_requests_total = Counter("payment_requests_total", "Total payment control requests", ["service", "operation"])
payment_success_total = Counter("payment_success_total", "Total successful payments", ["service"])
payment_failure_total = Counter("payment_failure_total", "Total failed payments", ["service"])
payment_expired_total = Counter("payment_expired_total", "Total payments expired by link deadline", ["service", "source"])
payment_refunded_total = Counter("payment_refunded_total", "Total refunded payments", ["service"])
payment_latency_seconds = Histogram("payment_latency_seconds", "Payment control call latency seconds", ["service"])
order_events_consumed_total = Counter(
    "order_events_consumed_total",
    "Order lifecycle events handed to the engine",
    ["service", "status"],
)
order_events_ignored_total = Counter(
    "order_events_ignored_total",
    "Order lifecycle events that were a no-op",
    ["service", "reason"],
)
retries_total = Counter("retries_total", "Retry count", ["service", "dependency"])
payment_event_publish_failures_total = Counter(
    "payment_event_publish_failures_total",
    "Outcome events dropped after exhausting publish retries",
    ["service"],
)
expiry_sweep_duration_seconds = Histogram(
    "expiry_sweep_duration_seconds",
    "Wall time of one expiry sweep",
    ["service"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
