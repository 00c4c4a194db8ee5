"""Failure taxonomy shared by the store, channel and lifecycle engine.

Only `TransientInfrastructureError` is ever retried. Validation, conflict and
not-found failures are business outcomes and surface to the caller as-is.
"""


class PaymentError(Exception):
    """Base class for payment lifecycle failures."""


class PaymentValidationError(PaymentError):
    """Malformed or missing input; nothing was mutated."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = list(violations)
        super().__init__("; ".join(self.violations))


class ConflictError(PaymentError):
    """A state invariant would be violated by the requested operation."""

    def __init__(self, message: str, current_status: str | None = None) -> None:
        self.current_status = current_status
        super().__init__(message)


class InvalidTransitionError(ConflictError):
    """Transition not allowed by the payment state machine."""


class StaleStatusError(ConflictError):
    """Status-guarded update lost: the row no longer had the expected status."""


class NotFoundError(PaymentError):
    """Unknown payment or order identifier."""


class TransientInfrastructureError(PaymentError):
    """Store or channel temporarily unavailable; safe to retry."""
