"""Order lifecycle transition table."""

from src.api.middleware.error_handler import InvalidTransitionError
from src.models.order import OrderAction, OrderState

TRANSITIONS: dict[OrderAction, tuple[frozenset[OrderState], OrderState]] = {
    OrderAction.SUBMIT: (frozenset({OrderState.PENDING}), OrderState.SUBMITTED),
    OrderAction.APPROVE: (frozenset({OrderState.SUBMITTED}), OrderState.APPROVED),
    OrderAction.FULFILL: (frozenset({OrderState.APPROVED}), OrderState.FULFILLED),
    OrderAction.REJECT: (
        frozenset({OrderState.PENDING, OrderState.SUBMITTED}),
        OrderState.REJECTED,
    ),
    OrderAction.ABANDON: (frozenset({OrderState.PENDING}), OrderState.ABANDONED),
}

TERMINAL_STATES = frozenset({OrderState.FULFILLED, OrderState.REJECTED, OrderState.ABANDONED})


def _check_table() -> None:
    missing = set(OrderAction) - TRANSITIONS.keys()
    if missing:
        raise RuntimeError(f"No transition defined for: {sorted(a.value for a in missing)}")
    for action, (sources, _) in TRANSITIONS.items():
        if sources & TERMINAL_STATES:
            raise RuntimeError(f"{action.value} leaves a terminal state")


_check_table()


def next_state(current: OrderState | str, action: OrderAction) -> OrderState:
    """Return the state an order moves to when ``action`` is applied.

    Args:
        current: The order's current state.
        action: The requested action.

    Returns:
        OrderState: The resulting state.

    Raises:
        InvalidTransitionError: If the action is not allowed from ``current``.
    """
    state = OrderState(current)
    sources, target = TRANSITIONS[action]
    if state not in sources:
        raise InvalidTransitionError(state.value, action.value)
    return target


def can_transition(current: OrderState | str, action: OrderAction) -> bool:
    """Check whether ``action`` is allowed from ``current``."""
    return OrderState(current) in TRANSITIONS[action][0]
