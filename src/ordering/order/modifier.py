"""Changes to placed orders: addresses, line items, fields and soft deletion.

Item changes always re-derive totals from the order's full, current item set
with the tax rate persisted at creation, and move stock in the same unit of
work as the order write.
"""

import json
from datetime import UTC, datetime

from protean.utils.globals import current_domain

from ordering.account.account import Account
from ordering.account.addresses import AddressSnapshotResolver, InlineAddress, parse_address_input
from ordering.catalogue.product import Product
from ordering.domain import logger
from ordering.errors import InvalidInput, Unauthorized
from ordering.order.assembler import OrderAssembler, parse_items, parse_json_object
from ordering.order.events import OrderItemsChanged
from ordering.order.lifecycle import (
    ITEMS_LOCKED,
    UPDATE_LOCKED,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    StatusStateMachine,
    ensure_modifiable,
)
from ordering.order.order import HistoryEvent, Order, Payment
from ordering.order.queries import load_order

_STAFF_ROLES = {"admin", "staff"}

# Orders whose units are still held in stock when deleted
_HOLDS_STOCK = {
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.ON_HOLD,
}


def release_stock(order: Order, quantities: dict | None = None, loaded: dict | None = None) -> list:
    """Give ``quantities`` (default: everything the order holds) back to the catalogue.

    ``loaded`` maps product ids to instances already modified in this unit of
    work. Returns the touched products; the caller adds them to the unit of work.
    """
    quantities = quantities if quantities is not None else order.item_quantities()
    if not quantities:
        return []

    products = dict(loaded or {})
    missing = [pid for pid in quantities if pid not in products]
    if missing:
        products.update({str(p.id): p for p in current_domain.repository_for(Product).find_many(missing)})

    touched = []
    for pid, quantity in quantities.items():
        product = products.get(pid)
        if product is not None:
            product.release(quantity)
            touched.append(product)
    return touched


class OrderModifier:
    """Applies caller changes to an order the caller owns."""

    def __init__(
        self,
        assembler: OrderAssembler | None = None,
        addresses: AddressSnapshotResolver | None = None,
        machine: StatusStateMachine | None = None,
    ):
        self.assembler = assembler or OrderAssembler()
        self.addresses = addresses or AddressSnapshotResolver()
        self.machine = machine or StatusStateMachine()

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def load_owned(self, order_id, actor) -> Order:
        order = load_order(order_id)
        if not actor.id or str(order.account_id) != str(actor.id):
            raise Unauthorized({"order_id": ["You are not allowed to modify this order"]})
        return order

    def _recompute(self, order: Order) -> None:
        totals = self.assembler.compute_totals(
            order.items,
            order.tax_rate,
            shipping_cost=order.shipping_cost,
            discount=order.discount,
        )
        order.apply_totals(totals)

    def _save(self, order, products=(), account=None) -> Order:
        product_repo = current_domain.repository_for(Product)
        for product in products:
            product_repo.add(product)
        if account is not None:
            current_domain.repository_for(Account).add(account)
        current_domain.repository_for(Order).add(order)
        return order

    def _items_changed(self, order, change, item_ids):
        order.raise_(
            OrderItemsChanged(
                order_id=str(order.id),
                change=change,
                item_ids=json.dumps([str(i) for i in item_ids]),
                subtotal=order.subtotal,
                total=order.total,
            )
        )

    def _replace_items(self, order: Order, quantities: dict) -> list:
        """Delete every line and recreate from ``quantities`` at current catalogue prices."""
        held = order.item_quantities()
        lines, stocked = self.assembler.price_lines(quantities, order.currency, credit=held)

        products = {pid: entry.product for pid, entry in stocked.items()}
        leftover = [pid for pid in held if pid not in products]
        products.update({str(p.id): p for p in current_domain.repository_for(Product).find_many(leftover)})

        for pid, quantity in held.items():
            if pid in products:
                products[pid].release(quantity)
        for entry in stocked.values():
            entry.product.reserve(entry.requested)

        order.replace_items(lines)
        self._recompute(order)
        self._items_changed(order, "replaced", [item.id for item in order.items])
        return list(products.values())

    def _change_payment_method(self, order: Order, method: str) -> None:
        method = PaymentMethod(method).value
        order.payment_method = method
        live = order.live_payments

        if method == PaymentMethod.CASH_ON_DELIVERY.value:
            # Nothing is captured up front for pay-on-delivery
            for payment in live:
                if payment.status == PaymentStatus.PENDING.value:
                    payment.deleted_at = datetime.now(UTC)
            return

        if not live:
            order.add_payments(
                Payment(
                    amount=order.total,
                    currency=order.currency,
                    method=method,
                    status=PaymentStatus.PENDING.value,
                    created_at=datetime.now(UTC),
                )
            )
        for payment in order.live_payments:
            payment.method = method

    # -------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------
    def update(self, order_id, actor, patch: dict) -> Order:
        """Apply a partial update. Keys: shipping_address, billing_address, items,
        status, payment_method, notes, customer_notes, coupon_code, order_metadata.
        """
        order = self.load_owned(order_id, actor)
        ensure_modifiable(order.status, UPDATE_LOCKED, "update")

        changed = []
        products = []
        account = None
        account_changed = False

        for kind in ("shipping", "billing"):
            raw = patch.get(f"{kind}_address")
            if not raw:
                continue
            field = f"{kind}_address"
            address_input = parse_address_input(raw, field)
            if account is None:
                account = current_domain.repository_for(Account).get(str(order.account_id))
            resolved = self.addresses.resolve(account, address_input, field, persist_inline=True)
            account_changed = account_changed or isinstance(address_input, InlineAddress)
            if kind == "shipping":
                self.assembler.check_currency(order.currency, resolved.snapshot.country)
            order.change_address(kind, resolved)
            changed.append(f"{kind} address")

        if patch.get("items") is not None:
            products = self._replace_items(order, parse_items(patch["items"]))
            changed.append("items")

        method = patch.get("payment_method")
        if method and method != order.payment_method:
            self._change_payment_method(order, method)
            changed.append("payment method")

        for name in ("notes", "customer_notes", "coupon_code"):
            if patch.get(name) is not None and patch[name] != getattr(order, name):
                setattr(order, name, patch[name])
                changed.append(name.replace("_", " "))

        if patch.get("order_metadata") is not None:
            extra = parse_json_object(patch["order_metadata"], "order_metadata")
            order.order_metadata = {**(order.order_metadata or {}), **extra}
            changed.append("metadata")

        status_changed = False
        target = patch.get("status")
        if target and target != order.status:
            note = f"Status changed from {order.status} to {target}"
            order.change_status(target, actor, note=note, machine=self.machine)
            status_changed = True
            if order.status == OrderStatus.CANCELLED.value:
                loaded = {str(p.id): p for p in products}
                products = self._merge(products, release_stock(order, loaded=loaded))

        if not changed and not status_changed:
            raise InvalidInput({"patch": ["Nothing to update"]})

        if changed:
            order.record(HistoryEvent.UPDATED, "Order updated", actor)

        logger.info("order_updated", order_id=str(order.id), changes=changed, status_changed=status_changed)
        return self._save(order, products, account if account_changed else None)

    def add_items(self, order_id, actor, items) -> Order:
        order = self.load_owned(order_id, actor)
        ensure_modifiable(order.status, ITEMS_LOCKED, "add items to")

        quantities = parse_items(items)
        lines, stocked = self.assembler.price_lines(quantities, order.currency)
        for entry in stocked.values():
            entry.product.reserve(entry.requested)

        added = order.append_lines(lines)
        self._recompute(order)
        order.record(HistoryEvent.ITEMS_ADDED, f"Added {len(added)} item(s) to order", actor)
        self._items_changed(order, "added", [item.id for item in added])

        logger.info("order_items_added", order_id=str(order.id), count=len(added), total=order.total)
        return self._save(order, [entry.product for entry in stocked.values()])

    def remove_items(self, order_id, actor, item_ids) -> Order:
        order = self.load_owned(order_id, actor)
        ensure_modifiable(order.status, ITEMS_LOCKED, "remove items from")
        if not item_ids:
            raise InvalidInput({"item_ids": ["At least one item id is required"]})

        removed = order.drop_items(item_ids)
        released = {}
        for item in removed:
            released[str(item.product_id)] = released.get(str(item.product_id), 0) + item.quantity
        products = release_stock(order, released)

        self._recompute(order)
        order.record(HistoryEvent.ITEMS_REMOVED, f"Removed {len(removed)} item(s) from order", actor)
        self._items_changed(order, "removed", [item.id for item in removed])

        logger.info("order_items_removed", order_id=str(order.id), count=len(removed), total=order.total)
        return self._save(order, products)

    def delete(self, order_id, actor) -> Order:
        """Soft delete: the order and its payments are kept but hidden."""
        order = load_order(order_id)
        if str(order.account_id) != str(actor.id) and (actor.role or "").lower() not in _STAFF_ROLES:
            raise Unauthorized({"order_id": ["You are not allowed to delete this order"]})

        products = release_stock(order) if OrderStatus(order.status) in _HOLDS_STOCK else []
        order.soft_delete(actor)

        logger.info("order_deleted", order_id=str(order.id))
        return self._save(order, products)

    @staticmethod
    def _merge(first, second) -> list:
        merged = {str(p.id): p for p in first}
        for product in second:
            merged.setdefault(str(product.id), product)
        return list(merged.values())
