# storefront/domain/states.py
from enum import Enum
from typing import Dict, FrozenSet

from storefront.domain.errors import InvalidTransitionError


class CheckoutState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SESSION_CREATED = "session_created"
    GATEWAY_OPEN = "gateway_open"
    VERIFYING = "verifying"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    REJECTED = "rejected"


TRANSITIONS: Dict[CheckoutState, FrozenSet[CheckoutState]] = {
    CheckoutState.IDLE: frozenset({CheckoutState.SUBMITTING}),
    #free orders go straight to COMPLETED, gateway orders get a session
    CheckoutState.SUBMITTING: frozenset({
        CheckoutState.SESSION_CREATED,
        CheckoutState.COMPLETED,
        CheckoutState.FAILED,
    }),
    #gateway script not loaded keeps SESSION_CREATED
    CheckoutState.SESSION_CREATED: frozenset({CheckoutState.GATEWAY_OPEN, CheckoutState.CANCELLED}),
    #a reported failure is settled to FAILED only when the window closes
    CheckoutState.GATEWAY_OPEN: frozenset({
        CheckoutState.VERIFYING,
        CheckoutState.CANCELLED,
        CheckoutState.FAILED,
    }),
    CheckoutState.VERIFYING: frozenset({CheckoutState.COMPLETED, CheckoutState.REJECTED}),
    #a new attempt starts over with a new order
    CheckoutState.CANCELLED: frozenset({CheckoutState.SUBMITTING}),
    CheckoutState.FAILED: frozenset({CheckoutState.SUBMITTING}),
    CheckoutState.REJECTED: frozenset({CheckoutState.SUBMITTING}),
    CheckoutState.COMPLETED: frozenset(),
}

#a call is in flight, "Place Order" stays disabled
PROCESSING_STATES = frozenset({
    CheckoutState.SUBMITTING,
    CheckoutState.GATEWAY_OPEN,
    CheckoutState.VERIFYING,
})


def check_transition(current: CheckoutState, target: CheckoutState) -> None:
    if target not in TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Checkout cannot move from {current.value} to {target.value}"
        )
