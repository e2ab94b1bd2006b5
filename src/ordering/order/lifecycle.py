"""Order and payment status lifecycle.

Order status:
    PENDING → CONFIRMED → PROCESSING ⇄ ON_HOLD → SHIPPED → DELIVERED
    CANCELLED (from PENDING, CONFIRMED)
    RETURNED  (from SHIPPED, DELIVERED)

Forward moves may skip intermediate states; CANCELLED and RETURNED are
terminal. Payment status has its own table, plus one cross-cutting guard: a
paid, delivered order may only go back to UNPAID. Refunds go through the
RETURNED order status first.
"""

from dataclasses import dataclass
from enum import Enum

from ordering.errors import InvalidInput, InvalidTransition


class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    ON_HOLD = "on_hold"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class OrderPaymentStatus(Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    REFUNDED = "refunded"


class PaymentStatus(Enum):
    """Status of an individual payment row."""

    PENDING = "pending"
    CAPTURED = "captured"
    PROCESSING = "processing"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class PaymentMethod(Enum):
    CASH_ON_DELIVERY = "cod"
    CREDIT_CARD = "credit_card"
    PAYPAL = "paypal"


class OrderSource(Enum):
    WEBSITE = "website"
    MANUAL = "manual"


_ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {
        OrderStatus.CONFIRMED,
        OrderStatus.PROCESSING,
        OrderStatus.ON_HOLD,
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.CONFIRMED: {
        OrderStatus.PROCESSING,
        OrderStatus.ON_HOLD,
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PROCESSING: {OrderStatus.ON_HOLD, OrderStatus.SHIPPED, OrderStatus.DELIVERED},
    OrderStatus.ON_HOLD: {OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.RETURNED},
    OrderStatus.DELIVERED: {OrderStatus.RETURNED},
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.RETURNED: set(),  # Terminal
}

_CANCELLABLE_STATES = {OrderStatus.PENDING, OrderStatus.CONFIRMED}

_PAYMENT_TRANSITIONS = {
    OrderPaymentStatus.UNPAID: {OrderPaymentStatus.PAID, OrderPaymentStatus.PARTIALLY_PAID},
    OrderPaymentStatus.PARTIALLY_PAID: {
        OrderPaymentStatus.PAID,
        OrderPaymentStatus.UNPAID,
        OrderPaymentStatus.REFUNDED,
    },
    OrderPaymentStatus.PAID: {
        OrderPaymentStatus.UNPAID,
        OrderPaymentStatus.PARTIALLY_PAID,
        OrderPaymentStatus.REFUNDED,
    },
    OrderPaymentStatus.REFUNDED: {OrderPaymentStatus.UNPAID},
}

# Payment row status that mirrors each order payment status
PAYMENT_ROW_STATUS = {
    OrderPaymentStatus.UNPAID: PaymentStatus.PENDING,
    OrderPaymentStatus.PAID: PaymentStatus.CAPTURED,
    OrderPaymentStatus.PARTIALLY_PAID: PaymentStatus.PROCESSING,
    OrderPaymentStatus.REFUNDED: PaymentStatus.REFUNDED,
}

# Statuses in which each kind of modification is refused
UPDATE_LOCKED = {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.RETURNED}
ITEMS_LOCKED = {OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.RETURNED}


@dataclass(frozen=True)
class Actor:
    """Who performed a change; recorded on every history entry."""

    id: str | None = None
    role: str | None = None
    email: str | None = None

    @property
    def performed_by(self) -> str:
        return str(self.id) if self.id else "system"


def coerce_choice(enum_cls, value, field):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidInput({field: [f"Unknown {field} {value!r}; expected one of: {allowed}"]})


class StatusStateMachine:
    """Consults the transition tables; raises InvalidTransition on illegal moves."""

    def order_transition(self, current, target) -> OrderStatus:
        current = coerce_choice(OrderStatus, current, "status")
        target = coerce_choice(OrderStatus, target, "status")

        if target == current:
            raise InvalidTransition({"status": [f"Order is already {current.value}"]})
        if target == OrderStatus.CANCELLED and current not in _CANCELLABLE_STATES:
            raise InvalidTransition(
                {"status": [f"Only pending or confirmed orders can be cancelled; order is {current.value}"]}
            )
        if target not in _ORDER_TRANSITIONS[current]:
            raise InvalidTransition({"status": [f"Cannot transition from {current.value} to {target.value}"]})
        return target

    def payment_transition(self, order_status, current, target) -> OrderPaymentStatus:
        order_status = coerce_choice(OrderStatus, order_status, "status")
        current = coerce_choice(OrderPaymentStatus, current, "payment_status")
        target = coerce_choice(OrderPaymentStatus, target, "payment_status")

        if target == current:
            raise InvalidTransition({"payment_status": [f"Payment status is already {current.value}"]})
        if (
            current == OrderPaymentStatus.PAID
            and order_status == OrderStatus.DELIVERED
            and target != OrderPaymentStatus.UNPAID
        ):
            raise InvalidTransition(
                {"payment_status": ["A paid, delivered order must be marked as returned before its payment changes"]}
            )
        if target not in _PAYMENT_TRANSITIONS[current]:
            raise InvalidTransition(
                {"payment_status": [f"Cannot transition payment from {current.value} to {target.value}"]}
            )
        return target

    def allowed_order_targets(self, current) -> set:
        return set(_ORDER_TRANSITIONS[coerce_choice(OrderStatus, current, "status")])


def ensure_modifiable(status, locked: set, action: str) -> None:
    status = coerce_choice(OrderStatus, status, "status")
    if status in locked:
        raise InvalidInput({"status": [f"Cannot {action} an order that is {status.value}"]})
