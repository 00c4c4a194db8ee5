"""Structured JSON logging with request/event context fields."""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

from orderpay.common.config import settings


trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
order_id_ctx: ContextVar[str] = ContextVar("order_id", default="")
payment_id_ctx: ContextVar[str] = ContextVar("payment_id", default="")


class ContextFilter(logging.Filter):
    """Inject service and correlation identifiers into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = settings.service_name
        record.trace_id = trace_id_ctx.get()
        record.order_id = order_id_ctx.get()
        record.payment_id = payment_id_ctx.get()
        return True


@contextmanager
def payment_log_context(order_id: str | None = None, payment_id: str | None = None):
    """Scope order/payment identifiers to the enclosed block (worker code paths)."""

    tokens = []
    if order_id is not None:
        tokens.append((order_id_ctx, order_id_ctx.set(order_id)))
    if payment_id is not None:
        tokens.append((payment_id_ctx, payment_id_ctx.set(payment_id)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def configure_logging() -> None:
    """Configure root logger once per service process."""

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())
    handler.setFormatter(
        JsonFormatter(
            "%(asctime)s %(levelname)s %(service_name)s %(trace_id)s %(order_id)s %(payment_id)s %(message)s",
            rename_fields={"levelname": "level"},
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)
    # Kafka client chatter drowns payment logs at INFO.
    logging.getLogger("aiokafka").setLevel(max(logging.WARNING, root.level))


logger = logging.getLogger("orderpay")
