"""Unit pricing and order totals.

All arithmetic is done on ``Decimal`` and rounded half-up to cents at every
aggregation boundary: line totals, subtotal, tax and grand total. Aggregates
store the rounded values.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class DiscountType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


def money(value) -> Decimal:
    """Coerce a number (float, int, str or Decimal) to a 2-place Decimal."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PriceQuote:
    base_price: Decimal
    final_unit_price: Decimal
    discount_amount: Decimal


@dataclass(frozen=True)
class PricedLine:
    product_id: str
    name: str
    sku: str
    quantity: int
    quote: PriceQuote
    total: Decimal
    discount: Decimal

    def snapshot(self) -> dict:
        """Frozen product data embedded in an OrderItem."""
        return {
            "product_id": self.product_id,
            "product_name": self.name,
            "product_sku": self.sku,
            "product_price": float(self.quote.base_price),
            "quantity": self.quantity,
            "unit_price": float(self.quote.final_unit_price),
            "discount": float(self.discount),
            "total": float(self.total),
        }


@dataclass(frozen=True)
class OrderTotals:
    """Order-level money figures.

    ``item_discount`` is already inside the line totals and is only reported;
    ``total`` subtracts ``discount`` (the order-level amount) and nothing else.
    """

    subtotal: Decimal
    item_discount: Decimal
    tax_rate: Decimal
    tax: Decimal
    shipping_cost: Decimal
    discount: Decimal
    total: Decimal

    def as_fields(self) -> dict:
        return {
            "subtotal": float(self.subtotal),
            "item_discount": float(self.item_discount),
            "tax_rate": float(self.tax_rate),
            "tax": float(self.tax),
            "shipping_cost": float(self.shipping_cost),
            "discount": float(self.discount),
            "total": float(self.total),
        }


class PricingEngine:
    """Computes unit prices from a pricing record and rolls lines into totals.

    Stateless; every call gets all of its inputs explicitly.
    """

    def quote(self, base_price, discount_type=None, discount_value=None) -> PriceQuote:
        base = money(base_price)
        value = Decimal(str(discount_value or 0))
        kind = DiscountType(discount_type) if discount_type else None

        if kind is DiscountType.PERCENTAGE:
            discount = money(base * value / Decimal(100))
        elif kind is DiscountType.FIXED:
            discount = money(min(value, base))
        else:
            discount = ZERO

        final = max(base - discount, ZERO)
        return PriceQuote(base_price=base, final_unit_price=money(final), discount_amount=discount)

    def quote_pricing(self, pricing) -> PriceQuote:
        """Quote from a ProductPricing entity (or anything with the same attributes)."""
        return self.quote(pricing.base_price, pricing.discount_type, pricing.discount_value)

    def line(self, product_id, name, sku, quantity: int, quote: PriceQuote) -> PricedLine:
        return PricedLine(
            product_id=str(product_id),
            name=name,
            sku=sku,
            quantity=quantity,
            quote=quote,
            total=money(quote.final_unit_price * quantity),
            discount=money(quote.discount_amount * quantity),
        )

    def totals(self, line_amounts, tax_rate=0, shipping_cost=0, discount=0) -> OrderTotals:
        """Roll ``(line_total, line_discount)`` pairs into order totals.

        Accepts PricedLine objects or existing OrderItem entities, so the same
        code recomputes a placed order from its current item set.
        """
        subtotal = ZERO
        item_discount = ZERO
        for line in line_amounts:
            subtotal += money(line.total)
            item_discount += money(line.discount)
        subtotal = money(subtotal)

        rate = Decimal(str(tax_rate or 0))
        tax = money(subtotal * rate)
        shipping = money(shipping_cost)
        order_discount = money(discount)
        total = money(subtotal + tax + shipping - order_discount)

        return OrderTotals(
            subtotal=subtotal,
            item_discount=money(item_discount),
            tax_rate=rate,
            tax=tax,
            shipping_cost=shipping,
            discount=order_discount,
            total=total,
        )
