"""Order status and payment status changes — commands and handler.

Each transition is checked against the StatusStateMachine tables and writes
its history entry in the same unit of work as the status field.
"""

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.catalogue.product import Product
from ordering.domain import logger, ordering
from ordering.errors import Conflict
from ordering.order.lifecycle import Actor, OrderStatus
from ordering.order.modifier import release_stock
from ordering.order.order import Order
from ordering.order.queries import load_order


@ordering.command(part_of="Order")
class SetOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, max_length=20)
    reason = Text()
    actor_id = String(max_length=255)
    actor_role = String(max_length=50)
    actor_email = String(max_length=254)


@ordering.command(part_of="Order")
class SetPaymentStatus:
    order_id = Identifier(required=True)
    payment_status = String(required=True, max_length=20)
    reason = Text()
    transaction_id = String(max_length=255)
    actor_id = String(max_length=255)
    actor_role = String(max_length=50)
    actor_email = String(max_length=254)


def _actor(command) -> Actor:
    return Actor(id=command.actor_id, role=command.actor_role, email=command.actor_email)


@ordering.command_handler(part_of=Order)
class OrderStatusHandler:
    @handle(SetOrderStatus)
    def set_order_status(self, command):
        order = load_order(command.order_id)
        previous = order.change_status(command.status, _actor(command), note=command.reason)

        if order.status == OrderStatus.CANCELLED.value:
            product_repo = current_domain.repository_for(Product)
            for product in release_stock(order):
                product_repo.add(product)

        current_domain.repository_for(Order).add(order)
        logger.info(
            "order_status_changed",
            order_id=str(order.id),
            previous=previous.value,
            status=order.status,
            actor=command.actor_id,
        )
        return str(order.id)

    @handle(SetPaymentStatus)
    def set_payment_status(self, command):
        order = load_order(command.order_id)
        self._ensure_new_transaction(order, command.transaction_id)
        previous = order.change_payment_status(
            command.payment_status,
            _actor(command),
            note=command.reason,
            transaction_id=command.transaction_id,
        )

        current_domain.repository_for(Order).add(order)
        logger.info(
            "payment_status_changed",
            order_id=str(order.id),
            previous=previous.value,
            payment_status=order.payment_status,
            actor=command.actor_id,
        )
        return str(order.id)

    @staticmethod
    def _ensure_new_transaction(order, transaction_id):
        if not transaction_id or any(p.transaction_id == transaction_id for p in order.payments):
            return
        if current_domain.repository_for(Order).transaction_id_taken(transaction_id):
            raise Conflict({"transaction_id": [f"Transaction {transaction_id} is already recorded on another payment"]})
