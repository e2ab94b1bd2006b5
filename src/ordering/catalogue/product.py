"""Catalogue products as the ordering engine sees them.

Product records belong to the catalogue subsystem; the ordering context keeps
the slice it needs to price a line (currency-scoped pricing) and to commit
stock (``in_stock`` / ``sale_stock`` counters).
"""

from protean.exceptions import ValidationError
from protean.fields import Float, HasMany, Integer, String

from ordering.domain import ordering
from ordering.pricing.engine import DiscountType


@ordering.entity(part_of="Product")
class ProductPricing:
    """Price of a product in one currency, with an optional discount."""

    currency = String(required=True, max_length=3)
    base_price = Float(required=True, min_value=0.0)
    discount_type = String(choices=DiscountType)
    discount_value = Float(default=0.0, min_value=0.0)


@ordering.aggregate
class Product:
    name = String(required=True, max_length=255)
    sku = String(required=True, max_length=50, unique=True)
    in_stock = Integer(default=0, min_value=0)
    sale_stock = Integer(default=0, min_value=0)
    pricing = HasMany(ProductPricing)

    @classmethod
    def register(cls, name, sku, in_stock=0, prices=None):
        """Build a product; ``prices`` is a list of ``set_price`` keyword dicts."""
        product = cls(name=name, sku=sku, in_stock=in_stock)
        for entry in prices or []:
            product.set_price(**entry)
        return product

    def pricing_for(self, currency):
        currency = (currency or "").upper()
        return next((p for p in self.pricing if p.currency == currency), None)

    def set_price(self, currency, base_price, discount_type=None, discount_value=0.0):
        existing = self.pricing_for(currency)
        if existing is not None:
            self.remove_pricing(existing)
        self.add_pricing(
            ProductPricing(
                currency=currency.upper(),
                base_price=base_price,
                discount_type=discount_type,
                discount_value=discount_value or 0.0,
            )
        )

    def reserve(self, quantity: int) -> None:
        """Commit ``quantity`` units to an order.

        Refuses to take ``in_stock`` below zero, so a writer that lost a race
        fails its whole unit of work instead of overselling.
        """
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})
        if self.in_stock < quantity:
            raise ValidationError({"in_stock": [f"Insufficient stock for {self.sku}: {self.in_stock} < {quantity}"]})
        self.in_stock -= quantity
        self.sale_stock = (self.sale_stock or 0) + quantity

    def release(self, quantity: int) -> None:
        """Return units previously reserved by an order."""
        if quantity < 1:
            return
        self.in_stock += quantity
        self.sale_stock = max((self.sale_stock or 0) - quantity, 0)


@ordering.repository(part_of=Product)
class ProductRepository:
    def find_many(self, product_ids) -> list[Product]:
        """Current records for ``product_ids``; unknown ids are simply absent."""
        ids = [str(pid) for pid in product_ids]
        if not ids:
            return []
        return self._dao.query.filter(id__in=ids).limit(len(ids)).all().items
