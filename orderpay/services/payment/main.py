"""HTTP control surface for payments plus the consumer and sweeper workers."""

import asyncio
from contextlib import asynccontextmanager
from decimal import Decimal
from uuid import uuid4

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from orderpay.common.config import settings
from orderpay.common.db import SessionLocal
from orderpay.common.errors import (
    ConflictError,
    NotFoundError,
    PaymentError,
    PaymentValidationError,
    TransientInfrastructureError,
)
from orderpay.common.events import KafkaBus, consume_forever
from orderpay.common.logging import configure_logging, logger, trace_id_ctx
from orderpay.common.metrics import metrics_response, payment_latency_seconds, payment_requests_total
from orderpay.common.startup import log_startup_config
from orderpay.common.tracing import instrument_app, setup_tracing
from orderpay.services.payment.schemas import OrderEvent, PaymentResponse
from orderpay.services.payment.service import PaymentLifecycleEngine
from orderpay.services.payment.store import PaymentStore
from orderpay.services.payment.sweeper import ExpirySweeper

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings,
    [
        "postgres_dsn",
        "kafka_bootstrap_servers",
        "order_events_topic",
        "order_events_group_id",
        "payment_events_topic",
        "payment_link_ttl_seconds",
        "expiry_sweep_interval_seconds",
        "retry_max_attempts",
        "retry_backoff_seconds",
    ],
)
bus = KafkaBus()
payment_engine = PaymentLifecycleEngine(PaymentStore(SessionLocal), bus)
sweeper = ExpirySweeper(payment_engine, interval_seconds=settings.expiry_sweep_interval_seconds)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Run the order-event consumer and expiry sweeper with app lifecycle."""

    consumer_task = asyncio.create_task(
        consume_forever(
            settings.order_events_topic,
            settings.order_events_group_id,
            OrderEvent,
            payment_engine.on_order_event,
        )
    )
    sweeper_task = asyncio.create_task(sweeper.run_forever())
    yield
    consumer_task.cancel()
    sweeper_task.cancel()
    await bus.close()


app = FastAPI(title="Order Payment Service", lifespan=lifespan)
instrument_app(app)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed or missing request parameters are a 400 like any other validation failure."""

    violations = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part not in ("query", "path", "header", "body"))
        violations.append(f"{field}: {error.get('msg')}" if field else error.get("msg"))
    logger.info("request rejected path=%s violations=%s", request.url.path, violations)
    return JSONResponse(status_code=400, content={"detail": violations})


def get_engine() -> PaymentLifecycleEngine:
    return payment_engine


def enforce_api_key(x_api_key: str | None = Header(default=None)) -> None:
    """Simple API-key gate for the control surface."""

    if x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="invalid API key")


def _payment_error(exc: PaymentError) -> HTTPException:
    """Map lifecycle failures to HTTP status codes."""

    if isinstance(exc, PaymentValidationError):
        return HTTPException(status_code=400, detail=exc.violations)
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, TransientInfrastructureError):
        return HTTPException(status_code=503, detail="payment store or event channel unavailable")
    return HTTPException(status_code=400, detail=str(exc))


@app.post(
    "/api/payments/initiate",
    response_model=PaymentResponse,
    status_code=201,
    dependencies=[Depends(enforce_api_key)],
)
async def initiate_payment(
    order_id: str = Query(alias="orderId"),
    amount: Decimal = Query(),
    payment_method: str = Query(alias="paymentMethod"),
    x_trace_id: str | None = Header(default=None),
    engine: PaymentLifecycleEngine = Depends(get_engine),
):
    """Create the PENDING payment for an order."""

    trace_id_ctx.set(x_trace_id or str(uuid4()))
    payment_requests_total.labels(service=settings.service_name, operation="initiate").inc()
    with payment_latency_seconds.labels(service=settings.service_name).time():
        try:
            payment = await engine.initiate(order_id, amount, payment_method)
        except PaymentError as exc:
            raise _payment_error(exc) from exc
    return PaymentResponse.from_payment(payment)


@app.post(
    "/api/payments/{payment_id}/process",
    response_model=PaymentResponse,
    dependencies=[Depends(enforce_api_key)],
)
async def process_payment(
    payment_id: str,
    is_success: bool = Query(alias="isSuccess"),
    failure_reason: str | None = Query(default=None, alias="failureReason"),
    x_trace_id: str | None = Header(default=None),
    engine: PaymentLifecycleEngine = Depends(get_engine),
):
    """Confirm or fail a PENDING payment."""

    trace_id_ctx.set(x_trace_id or str(uuid4()))
    payment_requests_total.labels(service=settings.service_name, operation="process").inc()
    with payment_latency_seconds.labels(service=settings.service_name).time():
        try:
            payment = await engine.process(payment_id, is_success, failure_reason)
        except PaymentError as exc:
            raise _payment_error(exc) from exc
    return PaymentResponse.from_payment(payment)


@app.get(
    "/api/payments/{payment_id}",
    response_model=PaymentResponse,
    dependencies=[Depends(enforce_api_key)],
)
def get_payment(payment_id: str, engine: PaymentLifecycleEngine = Depends(get_engine)):
    """Fetch current state for one payment."""

    try:
        payment = engine.store.get(payment_id)
    except PaymentError as exc:
        raise _payment_error(exc) from exc
    if payment is None:
        raise HTTPException(status_code=404, detail="payment not found")
    return PaymentResponse.from_payment(payment)


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
