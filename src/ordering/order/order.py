"""Order aggregate — the durable, financially consistent record of a purchase.

An Order embeds immutable address snapshots and frozen product data on each
line, so later edits to addresses or the catalogue never rewrite history.
Totals are always derived from the current line items:

    total == subtotal + tax + shipping_cost - discount

Payments and history rows live inside the aggregate, so an order, its
payment and its audit trail always commit (or roll back) together.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Dict,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from ordering.domain import ordering
from ordering.errors import InvalidInput
from ordering.order.events import (
    OrderAddressChanged,
    OrderDeleted,
    OrderPlaced,
    OrderStatusChanged,
    PaymentStatusChanged,
)
from ordering.order.lifecycle import (
    PAYMENT_ROW_STATUS,
    OrderPaymentStatus,
    OrderSource,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    StatusStateMachine,
)
from ordering.pricing.engine import money


class HistoryEvent(Enum):
    CREATED = "created"
    UPDATED = "updated"
    ITEMS_ADDED = "items_added"
    ITEMS_REMOVED = "items_removed"
    ADDRESS_CHANGED = "address_changed"
    STATUS_CHANGED = "status_changed"
    PAYMENT_STATUS_CHANGED = "payment_status_changed"
    DELETED = "deleted"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@ordering.value_object(part_of="Order")
class AddressSnapshot:
    """Shipping or billing address as it was when captured on the order."""

    first_name = String(max_length=100)
    last_name = String(max_length=100)
    phone = String(max_length=30)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(required=True, max_length=100)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    """A purchased line with the product's name, SKU and price frozen at order time."""

    product_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    product_sku = String(max_length=50)
    product_price = Float(min_value=0.0)
    quantity = Integer(required=True, min_value=1, max_value=1000)
    unit_price = Float(required=True, min_value=0.0)
    discount = Float(default=0.0)
    total = Float(required=True, min_value=0.0)


@ordering.entity(part_of="Order")
class Payment:
    amount = Float(required=True, min_value=0.0)
    currency = String(required=True, max_length=3)
    method = String(choices=PaymentMethod, required=True)
    status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    transaction_id = String(max_length=255, unique=True)
    refunded_amount = Float(default=0.0)
    created_at = DateTime()
    deleted_at = DateTime()


@ordering.entity(part_of="Order")
class OrderHistory:
    """One audit entry. Appended, never edited."""

    event = String(choices=HistoryEvent, required=True)
    status = String(choices=OrderStatus, required=True)
    note = Text()
    performed_by = String(max_length=255, required=True)
    performer_role = String(max_length=50)
    performer_email = String(max_length=254)
    created_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    order_number = String(required=True, max_length=50, unique=True)
    sequence = Integer(required=True, min_value=1, unique=True)
    account_id = Identifier(required=True)
    storefront_id = Identifier()
    source = String(choices=OrderSource, default=OrderSource.WEBSITE.value)

    shipping_address_id = Identifier()
    billing_address_id = Identifier()
    shipping_address = ValueObject(AddressSnapshot, required=True)
    billing_address = ValueObject(AddressSnapshot, required=True)

    currency = String(required=True, max_length=3)
    subtotal = Float(default=0.0)
    item_discount = Float(default=0.0)
    tax_rate = Float(default=0.0, min_value=0.0)
    tax = Float(default=0.0)
    shipping_cost = Float(default=0.0, min_value=0.0)
    discount = Float(default=0.0, min_value=0.0)
    total = Float(default=0.0)

    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(choices=OrderPaymentStatus, default=OrderPaymentStatus.UNPAID.value)
    payment_method = String(choices=PaymentMethod, default=PaymentMethod.CASH_ON_DELIVERY.value)

    order_metadata = Dict()
    notes = Text()
    customer_notes = String(max_length=500)
    coupon_code = String(max_length=100)

    items = HasMany(OrderItem)
    payments = HasMany(Payment)
    history = HasMany(OrderHistory)

    created_at = DateTime()
    updated_at = DateTime()
    deleted_at = DateTime()

    @invariant.post
    def total_is_derived_from_components(self):
        expected = money(self.subtotal) + money(self.tax) + money(self.shipping_cost) - money(self.discount)
        if money(self.total) != money(expected):
            raise ValidationError({"total": [f"Total {self.total} does not match its components ({expected})"]})

    @invariant.post
    def total_cannot_be_negative(self):
        if self.total is not None and self.total < 0:
            raise ValidationError({"total": ["Order total cannot be negative"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        *,
        order_number,
        sequence,
        account_id,
        currency,
        shipping,
        billing,
        lines,
        totals,
        actor,
        storefront_id=None,
        source=OrderSource.WEBSITE.value,
        payment_method=PaymentMethod.CASH_ON_DELIVERY.value,
        payment_status=OrderPaymentStatus.UNPAID.value,
        notes=None,
        customer_notes=None,
        coupon_code=None,
        metadata=None,
    ):
        """Build a new order from resolved addresses, priced lines and totals.

        ``shipping`` and ``billing`` are ResolvedAddress results. A payment row
        is created unless the order is paid on delivery.
        """
        now = datetime.now(UTC)

        order = cls(
            order_number=order_number,
            sequence=sequence,
            account_id=str(account_id),
            storefront_id=storefront_id,
            source=source,
            shipping_address=shipping.snapshot,
            shipping_address_id=shipping.address_id,
            billing_address=billing.snapshot,
            billing_address_id=billing.address_id,
            currency=currency,
            status=OrderStatus.PENDING.value,
            payment_status=payment_status,
            payment_method=payment_method,
            order_metadata=metadata or {},
            notes=notes,
            customer_notes=customer_notes,
            coupon_code=coupon_code,
            created_at=now,
            updated_at=now,
            **totals.as_fields(),
        )

        for line in lines:
            order.add_items(OrderItem(**line.snapshot()))

        if payment_method != PaymentMethod.CASH_ON_DELIVERY.value:
            order.add_payments(
                Payment(
                    amount=order.total,
                    currency=currency,
                    method=payment_method,
                    status=PAYMENT_ROW_STATUS[OrderPaymentStatus(payment_status)].value,
                    created_at=now,
                )
            )

        order.record(HistoryEvent.CREATED, "Order created", actor)
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order_number,
                account_id=str(account_id),
                storefront_id=storefront_id,
                currency=currency,
                total=order.total,
                item_count=sum(line.quantity for line in lines),
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def live_payments(self):
        return [p for p in self.payments if p.deleted_at is None]

    def item_quantities(self) -> dict:
        """Units held by this order, keyed by product id."""
        held = {}
        for item in self.items:
            held[str(item.product_id)] = held.get(str(item.product_id), 0) + item.quantity
        return held

    # -------------------------------------------------------------------
    # Audit trail
    # -------------------------------------------------------------------
    def record(self, event, note, actor):
        entry = OrderHistory(
            event=event.value,
            status=self.status,
            note=note,
            performed_by=actor.performed_by,
            performer_role=actor.role,
            performer_email=actor.email,
            created_at=datetime.now(UTC),
        )
        self.add_history(entry)
        return entry

    # -------------------------------------------------------------------
    # Line items
    # -------------------------------------------------------------------
    def replace_items(self, lines):
        """Drop every line and recreate the set from ``lines``."""
        for item in list(self.items):
            self.remove_items(item)
        for line in lines:
            self.add_items(OrderItem(**line.snapshot()))

    def append_lines(self, lines):
        added = []
        for line in lines:
            item = OrderItem(**line.snapshot())
            self.add_items(item)
            added.append(item)
        return added

    def drop_items(self, item_ids):
        """Remove the given lines; every id must belong to this order."""
        by_id = {str(item.id): item for item in self.items}
        missing = [str(item_id) for item_id in item_ids if str(item_id) not in by_id]
        if missing:
            raise InvalidInput(
                {"item_ids": [f"Item {item_id} is not part of this order" for item_id in missing]},
                details={"missing": missing},
            )

        removed = []
        for item_id in dict.fromkeys(str(i) for i in item_ids):
            item = by_id[item_id]
            self.remove_items(item)
            removed.append(item)
        return removed

    def apply_totals(self, totals):
        """Store freshly derived totals and resync payment amounts."""
        with atomic_change(self):
            for name, value in totals.as_fields().items():
                setattr(self, name, value)
            self.updated_at = datetime.now(UTC)

        for payment in self.live_payments:
            payment.amount = self.total

    # -------------------------------------------------------------------
    # Addresses
    # -------------------------------------------------------------------
    def change_address(self, kind, resolved):
        if kind == "shipping":
            self.shipping_address = resolved.snapshot
            self.shipping_address_id = resolved.address_id
        elif kind == "billing":
            self.billing_address = resolved.snapshot
            self.billing_address_id = resolved.address_id
        else:
            raise InvalidInput({"address": [f"Unknown address kind {kind!r}"]})

        self.updated_at = datetime.now(UTC)
        self.raise_(OrderAddressChanged(order_id=str(self.id), kind=kind, address_id=resolved.address_id))

    # -------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------
    def change_status(self, target, actor, note=None, machine=None):
        """Move to ``target`` if the transition table allows it. Returns the previous status."""
        machine = machine or StatusStateMachine()
        previous = OrderStatus(self.status)
        new_status = machine.order_transition(previous, target)
        now = datetime.now(UTC)

        self.status = new_status.value
        self.updated_at = now
        self.record(HistoryEvent.STATUS_CHANGED, note or f"Order has been marked as {new_status.value}", actor)
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                previous_status=previous.value,
                new_status=new_status.value,
                performed_by=actor.performed_by,
                changed_at=now,
            )
        )
        return previous

    def change_payment_status(self, target, actor, note=None, transaction_id=None, machine=None):
        machine = machine or StatusStateMachine()
        previous = OrderPaymentStatus(self.payment_status)
        new_status = machine.payment_transition(self.status, previous, target)
        now = datetime.now(UTC)

        self.payment_status = new_status.value
        self.updated_at = now

        row_status = PAYMENT_ROW_STATUS[new_status]
        for payment in self.live_payments:
            payment.status = row_status.value
            if new_status == OrderPaymentStatus.REFUNDED:
                payment.refunded_amount = payment.amount
            elif new_status == OrderPaymentStatus.UNPAID:
                payment.refunded_amount = 0.0
        if transaction_id and self.live_payments:
            self.live_payments[0].transaction_id = transaction_id

        self.record(
            HistoryEvent.PAYMENT_STATUS_CHANGED,
            note or f"Payment status has been marked as {new_status.value}",
            actor,
        )
        self.raise_(
            PaymentStatusChanged(
                order_id=str(self.id),
                previous_status=previous.value,
                new_status=new_status.value,
                performed_by=actor.performed_by,
                changed_at=now,
            )
        )
        return previous

    # -------------------------------------------------------------------
    # Deletion
    # -------------------------------------------------------------------
    def soft_delete(self, actor):
        if self.is_deleted:
            raise InvalidInput({"order": ["Order is already deleted"]})

        now = datetime.now(UTC)
        self.deleted_at = now
        self.updated_at = now
        for payment in self.live_payments:
            payment.deleted_at = now
        self.record(HistoryEvent.DELETED, "Order deleted", actor)
        self.raise_(OrderDeleted(order_id=str(self.id), deleted_at=now))
