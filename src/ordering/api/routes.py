"""FastAPI routes for the Ordering domain — orders and analytics.

Authentication happens upstream; the caller's identity arrives in the
``X-Account-Id`` / ``X-Actor-Role`` / ``X-Actor-Email`` headers.
"""

import json
from datetime import datetime

from fastapi import APIRouter, Depends, Header, Query, Request
from protean.utils.globals import current_domain

from ordering.analytics.aggregator import AnalyticsAggregator
from ordering.api.schemas import (
    AddItemsRequest,
    ManualOrderRequest,
    OrderListResponse,
    OrderResponse,
    OrderStatusRequest,
    PaymentStatusRequest,
    PlaceOrderRequest,
    PricedPreviewResponse,
    RemoveItemsRequest,
    ReviewOrderRequest,
    UpdateOrderRequest,
)
from ordering.order.assembler import review_order
from ordering.order.creation import PlaceOrder, place_order
from ordering.order.lifecycle import Actor, OrderSource
from ordering.order.modification import AddOrderItems, DeleteOrder, RemoveOrderItems, UpdateOrder
from ordering.order.queries import get_order, get_order_by_number, list_orders
from ordering.order.status import SetOrderStatus, SetPaymentStatus
from ordering.storefront.storefront import StorefrontResolver


def get_actor(
    x_account_id: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
    x_actor_email: str | None = Header(default=None),
) -> Actor:
    return Actor(id=x_account_id, role=x_actor_role, email=x_actor_email)


def _actor_fields(actor: Actor) -> dict:
    return {"actor_id": actor.id, "actor_role": actor.role, "actor_email": actor.email}


def _place_order_command(body: PlaceOrderRequest, actor: Actor, storefront_id, account_id, **extra) -> PlaceOrder:
    return PlaceOrder(
        account_id=account_id,
        email=body.email,
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
        items=json.dumps([line.model_dump() for line in body.items]),
        shipping_address=json.dumps(body.shipping_address.model_dump(exclude_none=True)),
        billing_address=json.dumps(body.billing_address.model_dump(exclude_none=True))
        if body.billing_address
        else None,
        currency=body.currency,
        tax_rate=body.tax_rate,
        shipping_cost=body.shipping_cost,
        discount=body.discount,
        payment_method=body.payment_method,
        storefront_id=storefront_id,
        coupon_code=body.coupon_code,
        customer_notes=body.customer_notes,
        notes=body.notes,
        order_metadata=json.dumps(body.order_metadata) if body.order_metadata else None,
        **_actor_fields(actor),
        **extra,
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
async def create_order(body: PlaceOrderRequest, request: Request, actor: Actor = Depends(get_actor)) -> OrderResponse:
    storefront_id = StorefrontResolver().resolve(request.headers.get("host"))
    order = place_order(_place_order_command(body, actor, storefront_id, account_id=actor.id))
    return OrderResponse.from_order(order)


@order_router.post("/manual", status_code=201, response_model=OrderResponse)
async def create_manual_order(
    body: ManualOrderRequest, request: Request, actor: Actor = Depends(get_actor)
) -> OrderResponse:
    storefront_id = StorefrontResolver().resolve(request.headers.get("host"))
    command = _place_order_command(
        body,
        actor,
        storefront_id,
        account_id=body.account_id,
        source=OrderSource.MANUAL.value,
        payment_status=body.payment_status,
    )
    return OrderResponse.from_order(place_order(command))


@order_router.post("/review", response_model=PricedPreviewResponse)
async def review(body: ReviewOrderRequest) -> PricedPreviewResponse:
    preview = review_order(
        [line.model_dump() for line in body.items],
        body.currency,
        shipping_country=body.shipping_country,
        tax_rate=body.tax_rate,
        shipping_cost=body.shipping_cost,
        discount=body.discount,
    )
    return PricedPreviewResponse(**preview.to_dict())


@order_router.get("", response_model=OrderListResponse)
async def list_all(
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    account_id: str | None = None,
) -> OrderListResponse:
    orders = list_orders(offset=offset, limit=limit, account_id=account_id)
    return OrderListResponse(offset=offset, limit=limit, orders=[OrderResponse.from_order(o) for o in orders])


@order_router.get("/by-number/{order_number}", response_model=OrderResponse)
async def fetch_by_number(order_number: str) -> OrderResponse:
    return OrderResponse.from_order(get_order_by_number(order_number))


@order_router.get("/{order_id}", response_model=OrderResponse)
async def fetch(order_id: str) -> OrderResponse:
    return OrderResponse.from_order(get_order(order_id))


@order_router.patch("/{order_id}", response_model=OrderResponse)
async def update(order_id: str, body: UpdateOrderRequest, actor: Actor = Depends(get_actor)) -> OrderResponse:
    patch = body.model_dump(exclude_none=True)
    for name in ("shipping_address", "billing_address"):
        if name in patch:
            patch[name] = getattr(body, name).model_dump(exclude_none=True)
    command = UpdateOrder(order_id=order_id, patch=json.dumps(patch), **_actor_fields(actor))
    current_domain.process(command, asynchronous=False)
    return OrderResponse.from_order(get_order(order_id))


@order_router.post("/{order_id}/items", response_model=OrderResponse)
async def add_items(order_id: str, body: AddItemsRequest, actor: Actor = Depends(get_actor)) -> OrderResponse:
    command = AddOrderItems(
        order_id=order_id,
        items=json.dumps([line.model_dump() for line in body.items]),
        **_actor_fields(actor),
    )
    current_domain.process(command, asynchronous=False)
    return OrderResponse.from_order(get_order(order_id))


@order_router.post("/{order_id}/items/remove", response_model=OrderResponse)
async def remove_items(order_id: str, body: RemoveItemsRequest, actor: Actor = Depends(get_actor)) -> OrderResponse:
    command = RemoveOrderItems(order_id=order_id, item_ids=json.dumps(body.item_ids), **_actor_fields(actor))
    current_domain.process(command, asynchronous=False)
    return OrderResponse.from_order(get_order(order_id))


@order_router.put("/{order_id}/status", response_model=OrderResponse)
async def set_status(order_id: str, body: OrderStatusRequest, actor: Actor = Depends(get_actor)) -> OrderResponse:
    command = SetOrderStatus(order_id=order_id, status=body.status, reason=body.reason, **_actor_fields(actor))
    current_domain.process(command, asynchronous=False)
    return OrderResponse.from_order(get_order(order_id))


@order_router.put("/{order_id}/payment-status", response_model=OrderResponse)
async def set_payment_status(
    order_id: str, body: PaymentStatusRequest, actor: Actor = Depends(get_actor)
) -> OrderResponse:
    command = SetPaymentStatus(
        order_id=order_id,
        payment_status=body.payment_status,
        reason=body.reason,
        transaction_id=body.transaction_id,
        **_actor_fields(actor),
    )
    current_domain.process(command, asynchronous=False)
    return OrderResponse.from_order(get_order(order_id))


@order_router.delete("/{order_id}", status_code=204)
async def delete(order_id: str, actor: Actor = Depends(get_actor)) -> None:
    current_domain.process(DeleteOrder(order_id=order_id, **_actor_fields(actor)), asynchronous=False)


# ---------------------------------------------------------------------------
# Analytics Router
# ---------------------------------------------------------------------------
analytics_router = APIRouter(prefix="/analytics", tags=["analytics"])


@analytics_router.get("/orders")
async def order_analytics(
    start: datetime | None = None,
    end: datetime | None = None,
    storefront_id: str | None = None,
    status: str | None = None,
    payment_status: str | None = None,
    account_id: str | None = None,
    source: str | None = None,
    has_coupon: bool = False,
) -> dict:
    return AnalyticsAggregator().build(
        start=start,
        end=end,
        storefront_id=storefront_id,
        status=status,
        payment_status=payment_status,
        account_id=account_id,
        source=source,
        has_coupon=has_coupon,
    )
