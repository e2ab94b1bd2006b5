"""Pydantic request/response schemas for the Ordering API.

These are external contracts, kept separate from the internal Protean
commands. Business validation (stock, currency, transitions) happens in the
domain; the schemas only check shape and simple bounds.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

PaymentMethodLiteral = Literal["cod", "credit_card", "paypal"]
PaymentStatusLiteral = Literal["unpaid", "paid", "partially_paid", "refunded"]


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSnapshotSchema(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    street: str
    city: str
    state: str | None = None
    postal_code: str | None = None
    country: str


class AddressInputSchema(BaseModel):
    """Either a stored address id or an inline snapshot (exactly one)."""

    address_id: str | None = None
    snapshot: AddressSnapshotSchema | None = None


class OrderLineSchema(BaseModel):
    product_id: str
    quantity: int = Field(ge=1, le=1000)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    items: list[OrderLineSchema] = Field(min_length=1)
    shipping_address: AddressInputSchema
    billing_address: AddressInputSchema | None = None
    currency: str = Field(min_length=3, max_length=3)
    tax_rate: float | None = Field(default=None, ge=0, le=1)
    shipping_cost: float = Field(default=0.0, ge=0)
    discount: float = Field(default=0.0, ge=0)
    payment_method: PaymentMethodLiteral = "cod"
    coupon_code: str | None = None
    customer_notes: str | None = Field(default=None, max_length=500)
    notes: str | None = None
    order_metadata: dict | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "email": "buyer@example.com",
                    "items": [{"product_id": "prod-001", "quantity": 2}],
                    "shipping_address": {
                        "snapshot": {
                            "first_name": "Ada",
                            "last_name": "Lovelace",
                            "street": "1 Main St",
                            "city": "Springfield",
                            "postal_code": "12345",
                            "country": "US",
                        }
                    },
                    "currency": "USD",
                    "tax_rate": 0.1,
                    "shipping_cost": 5.0,
                }
            ]
        }
    }


class ManualOrderRequest(PlaceOrderRequest):
    """Order keyed in by staff on behalf of a customer."""

    account_id: str | None = None
    payment_status: PaymentStatusLiteral | None = None


class ReviewOrderRequest(BaseModel):
    items: list[OrderLineSchema] = Field(min_length=1)
    currency: str = Field(min_length=3, max_length=3)
    shipping_country: str | None = None
    tax_rate: float | None = Field(default=None, ge=0, le=1)
    shipping_cost: float = Field(default=0.0, ge=0)
    discount: float = Field(default=0.0, ge=0)


class UpdateOrderRequest(BaseModel):
    shipping_address: AddressInputSchema | None = None
    billing_address: AddressInputSchema | None = None
    items: list[OrderLineSchema] | None = None
    status: str | None = None
    payment_method: PaymentMethodLiteral | None = None
    notes: str | None = None
    customer_notes: str | None = Field(default=None, max_length=500)
    coupon_code: str | None = None
    order_metadata: dict | None = None


class AddItemsRequest(BaseModel):
    items: list[OrderLineSchema] = Field(min_length=1)


class RemoveItemsRequest(BaseModel):
    item_ids: list[str] = Field(min_length=1)


class OrderStatusRequest(BaseModel):
    status: str
    reason: str | None = None


class PaymentStatusRequest(BaseModel):
    payment_status: str
    reason: str | None = None
    transaction_id: str | None = Field(default=None, max_length=255)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------
class OrderItemResponse(BaseModel):
    id: str
    product_id: str
    product_name: str
    product_sku: str | None = None
    product_price: float | None = None
    quantity: int
    unit_price: float
    discount: float
    total: float


class PaymentResponse(BaseModel):
    id: str
    amount: float
    currency: str
    method: str
    status: str
    transaction_id: str | None = None
    refunded_amount: float = 0.0


class HistoryEntryResponse(BaseModel):
    event: str
    status: str
    note: str | None = None
    performed_by: str
    performer_role: str | None = None
    created_at: datetime


class OrderResponse(BaseModel):
    id: str
    order_number: str
    account_id: str
    storefront_id: str | None = None
    source: str
    status: str
    payment_status: str
    payment_method: str
    currency: str
    subtotal: float
    item_discount: float
    tax_rate: float
    tax: float
    shipping_cost: float
    discount: float
    total: float
    shipping_address: AddressSnapshotSchema
    billing_address: AddressSnapshotSchema
    shipping_address_id: str | None = None
    billing_address_id: str | None = None
    coupon_code: str | None = None
    customer_notes: str | None = None
    notes: str | None = None
    order_metadata: dict = Field(default_factory=dict)
    items: list[OrderItemResponse]
    payments: list[PaymentResponse]
    history: list[HistoryEntryResponse]
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        def address(vo):
            return AddressSnapshotSchema(**{k: getattr(vo, k) for k in AddressSnapshotSchema.model_fields})

        return cls(
            id=str(order.id),
            order_number=order.order_number,
            account_id=str(order.account_id),
            storefront_id=str(order.storefront_id) if order.storefront_id else None,
            source=order.source,
            status=order.status,
            payment_status=order.payment_status,
            payment_method=order.payment_method,
            currency=order.currency,
            subtotal=order.subtotal,
            item_discount=order.item_discount or 0.0,
            tax_rate=order.tax_rate or 0.0,
            tax=order.tax,
            shipping_cost=order.shipping_cost,
            discount=order.discount,
            total=order.total,
            shipping_address=address(order.shipping_address),
            billing_address=address(order.billing_address),
            shipping_address_id=str(order.shipping_address_id) if order.shipping_address_id else None,
            billing_address_id=str(order.billing_address_id) if order.billing_address_id else None,
            coupon_code=order.coupon_code,
            customer_notes=order.customer_notes,
            notes=order.notes,
            order_metadata=order.order_metadata or {},
            items=[
                OrderItemResponse(
                    id=str(item.id),
                    product_id=str(item.product_id),
                    product_name=item.product_name,
                    product_sku=item.product_sku,
                    product_price=item.product_price,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    discount=item.discount or 0.0,
                    total=item.total,
                )
                for item in order.items
            ],
            payments=[
                PaymentResponse(
                    id=str(p.id),
                    amount=p.amount,
                    currency=p.currency,
                    method=p.method,
                    status=p.status,
                    transaction_id=p.transaction_id,
                    refunded_amount=p.refunded_amount or 0.0,
                )
                for p in order.live_payments
            ],
            history=[
                HistoryEntryResponse(
                    event=h.event,
                    status=h.status,
                    note=h.note,
                    performed_by=h.performed_by,
                    performer_role=h.performer_role,
                    created_at=h.created_at,
                )
                for h in sorted(order.history, key=lambda h: h.created_at)
            ],
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class OrderListResponse(BaseModel):
    offset: int
    limit: int
    orders: list[OrderResponse]


class PricedLineResponse(BaseModel):
    product_id: str
    product_name: str
    product_sku: str | None = None
    product_price: float
    quantity: int
    unit_price: float
    discount: float
    total: float


class PricedPreviewResponse(BaseModel):
    currency: str
    items: list[PricedLineResponse]
    subtotal: float
    item_discount: float
    tax_rate: float
    tax: float
    shipping_cost: float
    discount: float
    total: float
