"""Domain events raised by the Order aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """A priced, stock-checked order was committed."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    account_id = Identifier(required=True)
    storefront_id = Identifier()
    currency = String(required=True)
    total = Float(required=True)
    item_count = Integer(required=True)
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderItemsChanged:
    """Line items were replaced, added or removed and totals re-derived."""

    __version__ = 1

    order_id = Identifier(required=True)
    change = String(required=True)  # replaced | added | removed
    item_ids = Text()  # JSON list
    subtotal = Float(required=True)
    total = Float(required=True)


@ordering.event(part_of="Order")
class OrderAddressChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    kind = String(required=True)  # shipping | billing
    address_id = Identifier()


@ordering.event(part_of="Order")
class OrderStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    performed_by = String()
    changed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    performed_by = String()
    changed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderDeleted:
    """The order was soft-deleted; its rows are retained for audit."""

    __version__ = 1

    order_id = Identifier(required=True)
    deleted_at = DateTime(required=True)
