"""Tests for the order and payment status transition tables."""

import pytest
from ordering.errors import InvalidInput, InvalidTransition
from ordering.order.lifecycle import (
    ITEMS_LOCKED,
    UPDATE_LOCKED,
    Actor,
    OrderPaymentStatus,
    OrderStatus,
    StatusStateMachine,
    ensure_modifiable,
)


@pytest.fixture
def machine():
    return StatusStateMachine()


class TestOrderTransitions:
    @pytest.mark.parametrize(
        "current,target",
        [
            ("pending", "confirmed"),
            ("pending", "shipped"),
            ("confirmed", "processing"),
            ("processing", "on_hold"),
            ("on_hold", "processing"),
            ("shipped", "delivered"),
            ("shipped", "returned"),
            ("delivered", "returned"),
        ],
    )
    def test_allowed(self, machine, current, target):
        assert machine.order_transition(current, target) == OrderStatus(target)

    @pytest.mark.parametrize(
        "current,target",
        [
            ("delivered", "pending"),
            ("shipped", "processing"),
            ("pending", "returned"),
            ("returned", "delivered"),
            ("cancelled", "pending"),
        ],
    )
    def test_illegal(self, machine, current, target):
        with pytest.raises(InvalidTransition):
            machine.order_transition(current, target)

    @pytest.mark.parametrize("current", ["pending", "confirmed"])
    def test_cancel_from_cancellable_states(self, machine, current):
        assert machine.order_transition(current, "cancelled") == OrderStatus.CANCELLED

    @pytest.mark.parametrize("current", ["processing", "on_hold", "shipped", "delivered", "returned"])
    def test_cancel_refused_elsewhere(self, machine, current):
        with pytest.raises(InvalidTransition) as exc:
            machine.order_transition(current, "cancelled")
        assert "Only pending or confirmed orders can be cancelled" in exc.value.message

    def test_same_state_is_illegal(self, machine):
        with pytest.raises(InvalidTransition):
            machine.order_transition("pending", "pending")

    def test_unknown_status_is_invalid_input(self, machine):
        with pytest.raises(InvalidInput) as exc:
            machine.order_transition("pending", "teleported")
        assert "status" in exc.value.messages

    def test_terminal_states_have_no_targets(self, machine):
        assert machine.allowed_order_targets("cancelled") == set()
        assert machine.allowed_order_targets(OrderStatus.RETURNED) == set()


class TestPaymentTransitions:
    def test_unpaid_to_paid(self, machine):
        assert machine.payment_transition("pending", "unpaid", "paid") == OrderPaymentStatus.PAID

    def test_refunded_only_back_to_unpaid(self, machine):
        with pytest.raises(InvalidTransition):
            machine.payment_transition("returned", "refunded", "paid")
        assert machine.payment_transition("returned", "refunded", "unpaid") == OrderPaymentStatus.UNPAID

    def test_unpaid_cannot_be_refunded(self, machine):
        with pytest.raises(InvalidTransition):
            machine.payment_transition("pending", "unpaid", "refunded")

    @pytest.mark.parametrize("target", ["partially_paid", "refunded"])
    def test_paid_and_delivered_only_allows_unpaid(self, machine, target):
        with pytest.raises(InvalidTransition):
            machine.payment_transition("delivered", "paid", target)

    def test_paid_and_delivered_can_go_back_to_unpaid(self, machine):
        assert machine.payment_transition("delivered", "paid", "unpaid") == OrderPaymentStatus.UNPAID

    def test_paid_and_returned_can_be_refunded(self, machine):
        assert machine.payment_transition("returned", "paid", "refunded") == OrderPaymentStatus.REFUNDED


class TestModificationLocks:
    @pytest.mark.parametrize("status", ["delivered", "cancelled", "returned"])
    def test_update_locked(self, status):
        with pytest.raises(InvalidInput):
            ensure_modifiable(status, UPDATE_LOCKED, "update")

    def test_shipped_orders_can_be_updated_but_not_have_items_changed(self):
        ensure_modifiable("shipped", UPDATE_LOCKED, "update")
        with pytest.raises(InvalidInput):
            ensure_modifiable("shipped", ITEMS_LOCKED, "add items to")


class TestActor:
    def test_performed_by_defaults_to_system(self):
        assert Actor().performed_by == "system"
        assert Actor(id="acc-1").performed_by == "acc-1"
