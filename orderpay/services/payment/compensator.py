"""Refund compensation for orders cancelled or returned after payment success."""

from orderpay.common.errors import ConflictError
from orderpay.common.logging import logger
from orderpay.common.metrics import payment_refunded_total
from orderpay.common.retry import RetryPolicy, call_with_retry
from orderpay.common.state_machine import REFUNDED, SUCCESS
from orderpay.services.payment.models import Payment
from orderpay.services.payment.store import PaymentStore


class RefundCompensator:
    """Reverses a successful payment. No outbound event is defined for refunds."""

    def __init__(self, store: PaymentStore, retry_policy: RetryPolicy, service_name: str) -> None:
        self.store = store
        self.retry_policy = retry_policy
        self.service_name = service_name

    async def refund(self, payment: Payment) -> Payment:
        if payment.status != SUCCESS:
            raise ConflictError(
                f"Cannot refund payment in status: {payment.status}", current_status=payment.status
            )
        logger.info("processing refund payment_id=%s amount=%s", payment.payment_id, payment.amount)
        refunded = await call_with_retry(
            self.retry_policy,
            self.store.transition,
            payment.payment_id,
            SUCCESS,
            REFUNDED,
            dependency="store",
        )
        payment_refunded_total.labels(service=self.service_name).inc()
        logger.info("payment refunded payment_id=%s order_id=%s", refunded.payment_id, refunded.order_id)
        return refunded
