"""Application tests for SetOrderStatus and SetPaymentStatus."""

import pytest
from ordering.catalogue.product import Product
from ordering.errors import Conflict, InvalidInput, InvalidTransition, NotFound
from ordering.order.queries import get_order
from ordering.order.status import SetOrderStatus, SetPaymentStatus
from protean import current_domain


def _set_status(order_id, status, reason=None):
    command = SetOrderStatus(
        order_id=str(order_id),
        status=status,
        reason=reason,
        actor_id="staff-1",
        actor_role="staff",
    )
    current_domain.process(command, asynchronous=False)
    return get_order(order_id)


def _set_payment(order_id, payment_status, reason=None, transaction_id=None):
    command = SetPaymentStatus(
        order_id=str(order_id),
        payment_status=payment_status,
        reason=reason,
        transaction_id=transaction_id,
        actor_id="staff-1",
        actor_role="staff",
    )
    current_domain.process(command, asynchronous=False)
    return get_order(order_id)


@pytest.fixture
def product(make_product):
    return make_product(price=10.0, in_stock=5)


@pytest.fixture
def order(product, place):
    return place([(product, 2)], tax_rate=0.1, shipping_cost=5.0, payment_method="credit_card")


class TestOrderStatus:
    def test_forward_progress(self, order):
        for status in ("confirmed", "processing", "shipped", "delivered"):
            updated = _set_status(order.id, status)
        assert updated.status == "delivered"
        assert "Order has been marked as delivered" in [h.note for h in updated.history]

    def test_history_records_actor_and_reason(self, order):
        updated = _set_status(order.id, "on_hold", reason="Awaiting address confirmation")

        entry = next(h for h in updated.history if h.event == "status_changed")
        assert entry.note == "Awaiting address confirmation"
        assert entry.performed_by == "staff-1"
        assert entry.performer_role == "staff"
        assert entry.status == "on_hold"

    def test_cancel_pending_order_releases_stock(self, order, product):
        updated = _set_status(order.id, "cancelled")

        assert updated.status == "cancelled"
        assert current_domain.repository_for(Product).get(str(product.id)).in_stock == 5

    @pytest.mark.parametrize("path", [("processing",), ("shipped",), ("shipped", "delivered")])
    def test_cancel_refused_after_processing_starts(self, order, product, path):
        for status in path:
            _set_status(order.id, status)

        with pytest.raises(InvalidTransition):
            _set_status(order.id, "cancelled")

        assert get_order(order.id).status == path[-1]
        assert current_domain.repository_for(Product).get(str(product.id)).in_stock == 3

    def test_terminal_states(self, order):
        _set_status(order.id, "cancelled")
        with pytest.raises(InvalidTransition):
            _set_status(order.id, "confirmed")

    def test_missing_order(self):
        with pytest.raises(NotFound):
            _set_status("no-such-order", "confirmed")


class TestPaymentStatus:
    def test_paid_captures_payment(self, order):
        updated = _set_payment(order.id, "paid")

        assert updated.payment_status == "paid"
        assert updated.live_payments[0].status == "captured"

    def test_paid_and_delivered_only_goes_back_to_unpaid(self, order):
        _set_payment(order.id, "paid")
        _set_status(order.id, "delivered")

        for target in ("partially_paid", "refunded"):
            with pytest.raises(InvalidTransition):
                _set_payment(order.id, target)

        updated = _set_payment(order.id, "unpaid")
        assert updated.payment_status == "unpaid"
        assert updated.live_payments[0].status == "pending"

    def test_refund_after_return(self, order):
        _set_payment(order.id, "paid")
        _set_status(order.id, "delivered")
        _set_status(order.id, "returned")

        updated = _set_payment(order.id, "refunded")

        assert updated.payment_status == "refunded"
        assert updated.live_payments[0].refunded_amount == updated.total

    def test_default_note(self, order):
        updated = _set_payment(order.id, "partially_paid")
        assert "Payment status has been marked as partially_paid" in [h.note for h in updated.history]

    def test_unknown_status_is_invalid_input(self, order):
        with pytest.raises(InvalidInput):
            _set_payment(order.id, "free")

    def test_transaction_id_is_recorded_on_the_payment(self, order):
        updated = _set_payment(order.id, "paid", transaction_id="txn-001")
        assert updated.live_payments[0].transaction_id == "txn-001"

    def test_same_transaction_id_may_be_repeated_on_its_own_order(self, order):
        _set_payment(order.id, "partially_paid", transaction_id="txn-001")
        updated = _set_payment(order.id, "paid", transaction_id="txn-001")
        assert updated.payment_status == "paid"

    def test_transaction_id_used_by_another_order_is_refused(self, order, product, place):
        other = place([(product, 1)], payment_method="credit_card")
        _set_payment(order.id, "paid", transaction_id="txn-001")

        with pytest.raises(Conflict):
            _set_payment(other.id, "paid", transaction_id="txn-001")

        refused = get_order(other.id)
        assert refused.payment_status == "unpaid"
        assert refused.live_payments[0].transaction_id is None
