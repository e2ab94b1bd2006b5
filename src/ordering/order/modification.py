"""Order modification — commands and handler.

Covers partial updates, incremental item add/remove and soft deletion. Each
command runs in its own unit of work; the handler returns the order id.
"""

import json

from protean import handle
from protean.fields import Identifier, String, Text

from ordering.domain import ordering
from ordering.errors import InvalidInput
from ordering.order.lifecycle import Actor
from ordering.order.modifier import OrderModifier
from ordering.order.order import Order

_PATCH_FIELDS = (
    "shipping_address",
    "billing_address",
    "items",
    "status",
    "payment_method",
    "notes",
    "customer_notes",
    "coupon_code",
    "order_metadata",
)


def _actor(command) -> Actor:
    return Actor(id=command.actor_id, role=command.actor_role, email=command.actor_email)


@ordering.command(part_of="Order")
class UpdateOrder:
    order_id = Identifier(required=True)
    patch = Text(required=True)  # JSON object; see _PATCH_FIELDS
    actor_id = String(max_length=255)
    actor_role = String(max_length=50)
    actor_email = String(max_length=254)


@ordering.command(part_of="Order")
class AddOrderItems:
    order_id = Identifier(required=True)
    items = Text(required=True)  # JSON: [{"product_id": ..., "quantity": ...}]
    actor_id = String(max_length=255)
    actor_role = String(max_length=50)
    actor_email = String(max_length=254)


@ordering.command(part_of="Order")
class RemoveOrderItems:
    order_id = Identifier(required=True)
    item_ids = Text(required=True)  # JSON list of order item ids
    actor_id = String(max_length=255)
    actor_role = String(max_length=50)
    actor_email = String(max_length=254)


@ordering.command(part_of="Order")
class DeleteOrder:
    order_id = Identifier(required=True)
    actor_id = String(max_length=255)
    actor_role = String(max_length=50)
    actor_email = String(max_length=254)


def _load_patch(raw) -> dict:
    patch = json.loads(raw) if isinstance(raw, str) else raw
    if not isinstance(patch, dict):
        raise InvalidInput({"patch": ["Patch must be a JSON object"]})
    unknown = sorted(set(patch) - set(_PATCH_FIELDS))
    if unknown:
        raise InvalidInput({"patch": [f"Unknown field {name}" for name in unknown]})
    return patch


@ordering.command_handler(part_of=Order)
class ModifyOrderHandler:
    @handle(UpdateOrder)
    def update_order(self, command):
        try:
            patch = _load_patch(command.patch)
        except json.JSONDecodeError:
            raise InvalidInput({"patch": ["Patch must be a JSON object"]})
        order = OrderModifier().update(command.order_id, _actor(command), patch)
        return str(order.id)

    @handle(AddOrderItems)
    def add_order_items(self, command):
        order = OrderModifier().add_items(command.order_id, _actor(command), command.items)
        return str(order.id)

    @handle(RemoveOrderItems)
    def remove_order_items(self, command):
        try:
            item_ids = json.loads(command.item_ids)
        except json.JSONDecodeError:
            raise InvalidInput({"item_ids": ["item_ids must be a JSON list"]})
        if not isinstance(item_ids, list):
            raise InvalidInput({"item_ids": ["item_ids must be a JSON list"]})
        order = OrderModifier().remove_items(command.order_id, _actor(command), item_ids)
        return str(order.id)

    @handle(DeleteOrder)
    def delete_order(self, command):
        order = OrderModifier().delete(command.order_id, _actor(command))
        return str(order.id)
