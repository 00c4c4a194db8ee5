"""Entity validation returning a structured result instead of raising."""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from orderpay.common.state_machine import EXPIRED, FAILED, PAYMENT_STATUSES
from orderpay.services.payment.models import (
    AMOUNT_PRECISION,
    AMOUNT_SCALE,
    COD,
    ONLINE,
    PAYMENT_METHODS,
    Payment,
    as_utc,
)

MAX_AMOUNT = Decimal(10) ** (AMOUNT_PRECISION - AMOUNT_SCALE)
AMOUNT_QUANTUM = Decimal(1).scaleb(-AMOUNT_SCALE)


@dataclass
class ValidationResult:
    violations: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations

    def add(self, message: str) -> None:
        self.violations.append(message)


def parse_amount(raw) -> Decimal | None:
    """Best-effort Decimal conversion; None when `raw` is not a finite number."""

    if raw is None or isinstance(raw, bool):
        return None
    try:
        amount = raw if isinstance(raw, Decimal) else Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


def validate_initiate_request(order_id: str | None, amount, payment_method: str | None) -> ValidationResult:
    """Check control-surface input for `initiate` before anything is built."""

    result = ValidationResult()
    if not order_id or not order_id.strip():
        result.add("Order ID cannot be empty")
    parsed = parse_amount(amount)
    if parsed is None:
        result.add("Amount cannot be null")
    elif parsed <= 0:
        result.add("Amount must be positive")
    elif parsed >= MAX_AMOUNT:
        result.add(f"Amount must be less than {MAX_AMOUNT}")
    elif parsed != parsed.quantize(AMOUNT_QUANTUM):
        result.add(f"Amount must have at most {AMOUNT_SCALE} decimal places")
    if payment_method not in PAYMENT_METHODS:
        result.add("Payment method must be ONLINE or COD")
    return result


def validate_process_request(payment_id: str | None, is_success: bool, failure_reason: str | None) -> ValidationResult:
    result = ValidationResult()
    if not payment_id or not payment_id.strip():
        result.add("Payment ID cannot be empty")
    if not is_success and (failure_reason is None or not failure_reason.strip()):
        result.add("Failure reason is required when payment fails")
    return result


def validate_payment(payment: Payment) -> ValidationResult:
    """Check the field-level and link invariants of one payment."""

    result = ValidationResult()
    if not payment.order_id or not payment.order_id.strip():
        result.add("Order ID cannot be empty")
    if payment.amount is None or payment.amount <= 0:
        result.add("Amount must be positive")
    if payment.status not in PAYMENT_STATUSES:
        result.add(f"Status must be one of {', '.join(PAYMENT_STATUSES)}")
    if payment.reason is not None and payment.status not in (FAILED, EXPIRED):
        result.add("Reason is only set for FAILED or EXPIRED payments")

    has_link_fields = any(
        value is not None for value in (payment.payment_link, payment.link_created_at, payment.link_expires_at)
    )
    if payment.payment_method == ONLINE:
        if not payment.payment_link:
            result.add("Payment link is required for ONLINE payments")
        if payment.link_created_at is None or payment.link_expires_at is None:
            result.add("Link creation and expiry dates are required for ONLINE payments")
        elif as_utc(payment.link_expires_at) < as_utc(payment.link_created_at):
            result.add("Link expiry date must be after creation date")
    elif payment.payment_method == COD:
        if has_link_fields:
            result.add("Payment link and dates are not applicable for COD payments")
    else:
        result.add("Payment method must be ONLINE or COD")
    return result
