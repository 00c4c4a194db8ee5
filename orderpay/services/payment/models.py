"""Payment service database models.

One row per order; this table is the source of truth for payment state.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from orderpay.common.db import Base

ONLINE = "ONLINE"
COD = "COD"
PAYMENT_METHODS = (ONLINE, COD)

# numeric(precision, scale) of `payments.amount`; mirrored in alembic 0001.
AMOUNT_PRECISION = 12
AMOUNT_SCALE = 2


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from drivers that drop tzinfo."""

    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Payment(Base):
    """Current state of the payment attached to one order."""

    __tablename__ = "payments"

    payment_id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    order_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(AMOUNT_PRECISION, AMOUNT_SCALE, asdecimal=True))
    payment_method: Mapped[str] = mapped_column(String(16))
    status: Mapped[str] = mapped_column(String(16), index=True)
    state_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payment_link: Mapped[str | None] = mapped_column(String, nullable=True)
    link_created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    link_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reason: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def link_expired(self, now: datetime) -> bool:
        """True for ONLINE payments whose link deadline is strictly before `now`."""

        if self.payment_method != ONLINE or self.link_expires_at is None:
            return False
        return as_utc(self.link_expires_at) < now
