"""Payment state machine transitions enforced by the lifecycle engine."""

from orderpay.common.errors import InvalidTransitionError

PENDING = "PENDING"
SUCCESS = "SUCCESS"
FAILED = "FAILED"
EXPIRED = "EXPIRED"
REFUNDED = "REFUNDED"

PAYMENT_STATUSES = (PENDING, SUCCESS, FAILED, EXPIRED, REFUNDED)

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {SUCCESS, FAILED, EXPIRED},
    SUCCESS: {REFUNDED},
    FAILED: set(),
    EXPIRED: set(),
    REFUNDED: set(),
}


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Invalid transition: {current} -> {new}", current_status=current)
