"""Unit tests for the order transition table."""

import pytest

from src.api.middleware.error_handler import InvalidTransitionError, StateGuardError
from src.models.order import OrderAction, OrderState
from src.services.order_state import TERMINAL_STATES, TRANSITIONS, can_transition, next_state


class TestNextState:
    """Tests for next_state."""

    @pytest.mark.parametrize(
        ("current", "action", "expected"),
        [
            (OrderState.PENDING, OrderAction.SUBMIT, OrderState.SUBMITTED),
            (OrderState.SUBMITTED, OrderAction.APPROVE, OrderState.APPROVED),
            (OrderState.APPROVED, OrderAction.FULFILL, OrderState.FULFILLED),
            (OrderState.PENDING, OrderAction.REJECT, OrderState.REJECTED),
            (OrderState.SUBMITTED, OrderAction.REJECT, OrderState.REJECTED),
            (OrderState.PENDING, OrderAction.ABANDON, OrderState.ABANDONED),
        ],
    )
    def test_allowed_transitions(self, current: OrderState, action: OrderAction, expected: OrderState) -> None:
        assert next_state(current, action) == expected

    def test_accepts_state_string(self) -> None:
        assert next_state("pending", OrderAction.SUBMIT) == OrderState.SUBMITTED

    @pytest.mark.parametrize(
        ("current", "action"),
        [
            (OrderState.SUBMITTED, OrderAction.SUBMIT),
            (OrderState.PENDING, OrderAction.APPROVE),
            (OrderState.SUBMITTED, OrderAction.FULFILL),
            (OrderState.APPROVED, OrderAction.REJECT),
            (OrderState.SUBMITTED, OrderAction.ABANDON),
        ],
    )
    def test_disallowed_transitions(self, current: OrderState, action: OrderAction) -> None:
        with pytest.raises(InvalidTransitionError) as exc_info:
            next_state(current, action)

        assert exc_info.value.status_code == 409
        assert exc_info.value.from_state == current.value
        assert exc_info.value.action == action.value

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATES, key=lambda s: s.value))
    def test_terminal_states_have_no_way_out(self, terminal: OrderState) -> None:
        for action in OrderAction:
            assert not can_transition(terminal, action)
            with pytest.raises(StateGuardError):
                next_state(terminal, action)


class TestTransitionTable:
    """Tests for the table itself."""

    def test_every_action_has_a_transition(self) -> None:
        assert set(TRANSITIONS) == set(OrderAction)

    def test_fulfilled_only_reachable_from_approved(self) -> None:
        sources = [s for s in OrderState if can_transition(s, OrderAction.FULFILL)]
        assert sources == [OrderState.APPROVED]
