"""OpenTelemetry setup for the payment service.

Request spans come from FastAPI auto-instrumentation; the background workers
(order-event consumer, expiry sweeper) open their own spans via `worker_span`.
"""

from contextlib import contextmanager

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from orderpay.common.config import settings


def setup_tracing(service_name: str) -> None:
    """Register a tracer provider exporting to the OTLP HTTP collector."""

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)))
    trace.set_tracer_provider(provider)


def instrument_app(app: FastAPI) -> None:
    FastAPIInstrumentor.instrument_app(app, excluded_urls="health,metrics")


@contextmanager
def worker_span(name: str, **attributes):
    """Span for work not driven by an HTTP request."""

    tracer = trace.get_tracer("orderpay")
    with tracer.start_as_current_span(name) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(f"orderpay.{key}", value)
        yield span
