"""Payment persistence with status-guarded updates.

Every status change goes through `transition`, which only writes when the row
still holds the expected status. Readers must not trust a status they loaded
earlier; the guard is the single arbiter between concurrent actors.
"""

from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from orderpay.common.errors import ConflictError, StaleStatusError, TransientInfrastructureError
from orderpay.common.state_machine import validate_transition
from orderpay.services.payment.models import Payment


class PaymentStore:
    """Query contract over the `payments` table."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    @contextmanager
    def _session(self):
        try:
            with self.session_factory() as db:
                yield db
        except (OperationalError, InterfaceError, PoolTimeoutError) as exc:
            raise TransientInfrastructureError(f"payment store unavailable: {exc}") from exc

    def get(self, payment_id: str) -> Payment | None:
        with self._session() as db:
            return db.get(Payment, payment_id)

    def get_by_order_id(self, order_id: str) -> Payment | None:
        with self._session() as db:
            return db.execute(select(Payment).where(Payment.order_id == order_id)).scalar_one_or_none()

    def list_by_status(self, status: str) -> list[Payment]:
        with self._session() as db:
            return list(db.execute(select(Payment).where(Payment.status == status)).scalars())

    def insert(self, payment: Payment) -> Payment:
        """Persist a new payment; a second row for the same order is a conflict."""

        with self._session() as db:
            db.add(payment)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise ConflictError(f"Payment already initiated for order: {payment.order_id}") from exc
            db.refresh(payment)
            return payment

    def transition(self, payment_id: str, expected: str, new: str, reason: str | None = None) -> Payment:
        """Move one payment from `expected` to `new` if, and only if, it is still `expected`.

        Raises `StaleStatusError` carrying the status observed after the lost write.
        """

        validate_transition(expected, new)
        values = {
            "status": new,
            "state_version": Payment.state_version + 1,
            "updated_at": datetime.now(timezone.utc),
        }
        if reason is not None:
            values["reason"] = reason

        with self._session() as db:
            result = db.execute(
                update(Payment)
                .where(Payment.payment_id == payment_id, Payment.status == expected)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.rollback()
                current = db.get(Payment, payment_id)
                current_status = current.status if current else None
                raise StaleStatusError(
                    f"Payment {payment_id} is not in {expected} status, current status: {current_status}",
                    current_status=current_status,
                )
            db.commit()
            return db.get(Payment, payment_id)
