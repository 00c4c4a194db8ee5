"""Wire schemas: HTTP responses and Kafka event payloads."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from orderpay.services.payment.models import Payment

LINK_EXPIRED_REASON = "payment link expired"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderEvent(CamelModel):
    """Inbound order lifecycle notification from the order service."""

    order_id: str = Field(min_length=1)
    status: Literal["CANCELLED", "RETURNED", "DELIVERED"]


class PaymentEvent(CamelModel):
    """Outbound payment outcome notification."""

    order_id: str = Field(min_length=1)
    status: Literal["PAYMENT_RECEIVED", "PAYMENT_FAILED"]
    reason: str | None = None


class PaymentResponse(CamelModel):
    """Payment representation returned by the control surface."""

    id: str
    order_id: str
    amount: Decimal
    payment_method: str
    status: str
    payment_link: str | None = None
    link_created_at: datetime | None = None
    link_expires_at: datetime | None = None
    reason: str | None = None

    @classmethod
    def from_payment(cls, payment: Payment) -> "PaymentResponse":
        return cls(
            id=payment.payment_id,
            order_id=payment.order_id,
            amount=payment.amount,
            payment_method=payment.payment_method,
            status=payment.status,
            payment_link=payment.payment_link,
            link_created_at=payment.link_created_at,
            link_expires_at=payment.link_expires_at,
            reason=payment.reason,
        )
