"""Order creation — command, handler and the retrying entry point."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.config import get_settings
from ordering.domain import logger, ordering
from ordering.errors import Conflict, OrderNumberConflict
from ordering.order.assembler import OrderAssembler
from ordering.order.lifecycle import OrderPaymentStatus, OrderSource, PaymentMethod
from ordering.order.order import Order
from ordering.order.queries import get_order

_NUMBER_FIELDS = {"order_number", "sequence"}


@ordering.command(part_of="Order")
class PlaceOrder:
    account_id = Identifier()  # signed-in purchaser; guests are matched by email
    email = String(max_length=254)
    first_name = String(max_length=100)
    last_name = String(max_length=100)
    phone = String(max_length=30)
    items = Text(required=True)  # JSON: [{"product_id": ..., "quantity": ...}]
    shipping_address = Text(required=True)  # JSON: {"address_id": ...} or {"snapshot": {...}}
    billing_address = Text()  # same shape; defaults to the shipping address
    currency = String(required=True, max_length=3)
    tax_rate = Float(min_value=0.0, max_value=1.0)
    shipping_cost = Float(default=0.0, min_value=0.0)
    discount = Float(default=0.0, min_value=0.0)
    payment_method = String(choices=PaymentMethod, default=PaymentMethod.CASH_ON_DELIVERY.value)
    payment_status = String(choices=OrderPaymentStatus)  # honoured for manual orders only
    source = String(choices=OrderSource, default=OrderSource.WEBSITE.value)
    storefront_id = Identifier()
    coupon_code = String(max_length=100)
    customer_notes = String(max_length=500)
    notes = Text()
    order_metadata = Text()  # JSON object
    actor_id = String(max_length=255)
    actor_role = String(max_length=50)
    actor_email = String(max_length=254)


@ordering.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        order = OrderAssembler().assemble(command)
        return str(order.id)


def _is_number_clash(exc: ValidationError) -> bool:
    return bool(_NUMBER_FIELDS & set(getattr(exc, "messages", {}) or {}))


def place_order(command: PlaceOrder, attempts: int | None = None) -> Order:
    """Process ``command``, retrying when another order took the allocated number.

    Each attempt is a fresh unit of work, so a retried attempt re-reads stock
    and the order-number high-water mark. Nothing else is retried.
    """
    attempts = attempts or get_settings().order_number_attempts

    for attempt in range(1, attempts + 1):
        try:
            order_id = current_domain.process(command, asynchronous=False)
            return get_order(order_id)
        except OrderNumberConflict as exc:
            logger.warning("order_number_conflict", attempt=attempt, error=exc.message)
        except ValidationError as exc:
            if not _is_number_clash(exc):
                raise
            logger.warning("order_number_conflict", attempt=attempt, error=str(exc.messages))

    raise Conflict({"order_number": [f"Could not allocate a unique order number after {attempts} attempts"]})
