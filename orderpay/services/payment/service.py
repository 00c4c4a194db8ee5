"""Payment lifecycle engine.

Owns every transition of a payment: creation on `initiate`, confirmation or
failure on `process`, expiry (shared with the sweeper), and reactions to order
lifecycle notifications. Outcome events are published after the status write
commits; publication is best-effort once retries are exhausted.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

from orderpay.common.config import settings
from orderpay.common.errors import (
    ConflictError,
    NotFoundError,
    PaymentValidationError,
    TransientInfrastructureError,
)
from orderpay.common.logging import logger, payment_id_ctx, payment_log_context
from orderpay.common.metrics import (
    order_events_consumed_total,
    order_events_ignored_total,
    payment_event_publish_failures_total,
    payment_expired_total,
    payment_failure_total,
    payment_success_total,
)
from orderpay.common.retry import RetryPolicy, call_with_retry
from orderpay.common.state_machine import EXPIRED, FAILED, PENDING, REFUNDED, SUCCESS
from orderpay.services.payment.compensator import RefundCompensator
from orderpay.services.payment.models import COD, ONLINE, Payment
from orderpay.services.payment.schemas import LINK_EXPIRED_REASON, OrderEvent, PaymentEvent
from orderpay.services.payment.store import PaymentStore
from orderpay.services.payment.validation import (
    parse_amount,
    validate_initiate_request,
    validate_payment,
    validate_process_request,
)

REFUND_TRIGGERS = {"CANCELLED", "RETURNED"}
DELIVERED = "DELIVERED"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentLifecycleEngine:
    """Owns payment state machine progression and outcome notifications."""

    def __init__(
        self,
        store: PaymentStore,
        bus,
        compensator: RefundCompensator | None = None,
        retry_policy: RetryPolicy | None = None,
        clock=utcnow,
        service_name: str = settings.service_name,
    ) -> None:
        self.store = store
        self.bus = bus
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.compensator = compensator or RefundCompensator(store, self.retry_policy, service_name)
        self.clock = clock
        self.service_name = service_name
        self.link_ttl = timedelta(seconds=settings.payment_link_ttl_seconds)
        self.link_base_url = settings.payment_link_base_url
        self.payment_events_topic = settings.payment_events_topic

    async def _store_call(self, operation, *args, **kwargs):
        return await call_with_retry(self.retry_policy, operation, *args, dependency="store", **kwargs)

    async def initiate(self, order_id: str, amount, payment_method: str) -> Payment:
        """Create the single PENDING payment for `order_id`."""

        checked = validate_initiate_request(order_id, amount, payment_method)
        if not checked.ok:
            raise PaymentValidationError(checked.violations)

        existing = await self._store_call(self.store.get_by_order_id, order_id)
        if existing is not None:
            logger.warning("duplicate initiate order_id=%s existing_status=%s", order_id, existing.status)
            raise ConflictError(f"Payment already initiated for order: {order_id}", current_status=existing.status)

        payment = Payment(
            payment_id=str(uuid4()),
            order_id=order_id,
            amount=parse_amount(amount),
            payment_method=payment_method,
            status=PENDING,
            state_version=0,
        )
        if payment_method == ONLINE:
            now = self.clock()
            payment.payment_link = f"{self.link_base_url}{uuid4()}"
            payment.link_created_at = now
            payment.link_expires_at = now + self.link_ttl

        checked = validate_payment(payment)
        if not checked.ok:
            raise PaymentValidationError(checked.violations)

        payment = await self._store_call(self.store.insert, payment)
        payment_id_ctx.set(payment.payment_id)
        logger.info(
            "payment initiated payment_id=%s order_id=%s method=%s amount=%s",
            payment.payment_id,
            order_id,
            payment_method,
            payment.amount,
        )
        return payment

    async def process(self, payment_id: str, is_success: bool, failure_reason: str | None = None) -> Payment:
        """Confirm or fail a PENDING payment; an expired ONLINE link always wins."""

        checked = validate_process_request(payment_id, is_success, failure_reason)
        if not checked.ok:
            raise PaymentValidationError(checked.violations)

        payment_id_ctx.set(payment_id)
        payment = await self._store_call(self.store.get, payment_id)
        if payment is None:
            raise NotFoundError(f"Payment with ID {payment_id} not found")
        if payment.status != PENDING:
            logger.warning("payment not pending payment_id=%s status=%s", payment_id, payment.status)
            raise ConflictError(
                f"Payment is not in PENDING status, current status: {payment.status}",
                current_status=payment.status,
            )

        if payment.link_expired(self.clock()):
            logger.info("late confirmation on expired link payment_id=%s requested_success=%s", payment_id, is_success)
            return await self._expire(payment, source="process")

        if is_success:
            payment = await self._store_call(self.store.transition, payment_id, PENDING, SUCCESS)
            payment_success_total.labels(service=self.service_name).inc()
        else:
            payment = await self._store_call(
                self.store.transition, payment_id, PENDING, FAILED, reason=failure_reason.strip()
            )
            payment_failure_total.labels(service=self.service_name).inc()
        logger.info("payment processed payment_id=%s status=%s", payment_id, payment.status)
        await self.publish_outcome(payment)
        return payment

    async def expire(self, payment: Payment) -> Payment:
        """Force a stale ONLINE payment to EXPIRED and announce it."""

        return await self._expire(payment, source="sweep")

    async def _expire(self, payment: Payment, source: str) -> Payment:
        if payment.payment_method != ONLINE:
            raise ConflictError(
                f"Only ONLINE payments can expire, payment {payment.payment_id} is {payment.payment_method}",
                current_status=payment.status,
            )
        expired = await self._store_call(
            self.store.transition, payment.payment_id, PENDING, EXPIRED, reason=LINK_EXPIRED_REASON
        )
        payment_expired_total.labels(service=self.service_name, source=source).inc()
        logger.info("payment link expired payment_id=%s order_id=%s", expired.payment_id, expired.order_id)
        await self.publish_outcome(expired)
        return expired

    async def publish_outcome(self, payment: Payment) -> None:
        """Publish PAYMENT_RECEIVED/PAYMENT_FAILED for a committed terminal status."""

        event = PaymentEvent(
            order_id=payment.order_id,
            status="PAYMENT_RECEIVED" if payment.status == SUCCESS else "PAYMENT_FAILED",
            reason=payment.reason if payment.status in (FAILED, EXPIRED) else None,
        )
        try:
            await call_with_retry(
                self.retry_policy,
                self.bus.publish,
                self.payment_events_topic,
                event,
                key=payment.order_id,
                dependency="kafka",
            )
        except TransientInfrastructureError as exc:
            payment_event_publish_failures_total.labels(service=self.service_name).inc()
            logger.error(
                "payment event dropped payment_id=%s event=%s error=%s",
                payment.payment_id,
                event.model_dump(by_alias=True),
                exc,
            )
            return
        logger.info("published payment event %s", event.model_dump(by_alias=True))

    async def handle_order_event(self, order_id: str, status: str) -> None:
        """React to one (possibly duplicated) order lifecycle notification."""

        order_events_consumed_total.labels(service=self.service_name, status=status).inc()
        payment = await self._store_call(self.store.get_by_order_id, order_id)
        if payment is None:
            logger.warning("payment not found for order_id=%s", order_id)
            raise NotFoundError(f"Payment not found for order: {order_id}")
        with payment_log_context(payment_id=payment.payment_id):
            await self._react_to_order_event(payment, status)

    async def _react_to_order_event(self, payment: Payment, status: str) -> None:
        order_id = payment.order_id
        logger.info("order event order_id=%s status=%s payment_status=%s", order_id, status, payment.status)

        if status in REFUND_TRIGGERS:
            if payment.status != SUCCESS:
                logger.info("no refund required payment_id=%s status=%s", payment.payment_id, payment.status)
                self._ignored("not_refundable")
                return
            try:
                await self.compensator.refund(payment)
            except ConflictError as exc:
                if exc.current_status != REFUNDED:
                    raise
                logger.info("refund already applied payment_id=%s", payment.payment_id)
                self._ignored("already_refunded")
            return

        if status == DELIVERED and payment.payment_method == COD:
            if payment.status != PENDING:
                logger.warning("COD payment not pending payment_id=%s status=%s", payment.payment_id, payment.status)
                self._ignored("cod_not_pending")
                return
            try:
                await self._store_call(self.store.transition, payment.payment_id, PENDING, SUCCESS)
            except ConflictError as exc:
                logger.warning(
                    "COD completion lost race payment_id=%s status=%s", payment.payment_id, exc.current_status
                )
                self._ignored("cod_not_pending")
                return
            # The order service already reflects delivery; no PAYMENT_RECEIVED here.
            payment_success_total.labels(service=self.service_name).inc()
            logger.info("COD payment completed on delivery payment_id=%s", payment.payment_id)
            return

        logger.info("order event ignored order_id=%s status=%s method=%s", order_id, status, payment.payment_method)
        self._ignored("no_action")

    async def on_order_event(self, event: OrderEvent) -> None:
        """Kafka consumer entrypoint."""

        await self.handle_order_event(event.order_id, event.status)

    def _ignored(self, reason: str) -> None:
        order_events_ignored_total.labels(service=self.service_name, reason=reason).inc()
