"""Stock checks for a whole cart in one pass."""

from dataclasses import dataclass
from enum import Enum

from protean.utils.globals import current_domain

from ordering.catalogue.product import Product
from ordering.domain import logger
from ordering.errors import InvalidInput, StockViolation


class ShortageReason(Enum):
    OUT_OF_STOCK = "out_of_stock"
    INSUFFICIENT_STOCK = "insufficient_stock"


@dataclass(frozen=True)
class StockedProduct:
    """A product that passed validation, with its pricing in the order currency."""

    product: Product
    pricing: object
    requested: int


class StockValidator:
    """Checks requested quantities against current catalogue stock.

    Every product is read fresh from the repository so the check and the later
    decrement happen in the same unit of work. All offenders are collected
    before failing.
    """

    def __init__(self, repository=None):
        self._repository = repository

    @property
    def repository(self):
        return self._repository or current_domain.repository_for(Product)

    def validate(self, quantities: dict, currency: str, credit: dict | None = None) -> dict:
        """Return ``{product_id: StockedProduct}`` or raise.

        ``credit`` adds back units the order itself already holds, for item
        replacement on an existing order.
        """
        if not quantities:
            raise InvalidInput({"items": ["At least one item is required"]})

        credit = credit or {}
        products = {str(p.id): p for p in self.repository.find_many(quantities.keys())}

        missing = [pid for pid in quantities if pid not in products]
        unpriced = [pid for pid, p in products.items() if pid in quantities and p.pricing_for(currency) is None]
        if missing or unpriced:
            messages = {}
            if missing:
                messages["products"] = [f"Product {pid} does not exist" for pid in missing]
            if unpriced:
                messages.setdefault("products", []).extend(
                    f"Product {pid} has no pricing in {currency}" for pid in unpriced
                )
            raise InvalidInput(
                messages,
                message="One or more products are invalid",
                details={"missing": missing, "unpriced": unpriced},
            )

        shortages = []
        for pid, requested in quantities.items():
            product = products[pid]
            available = product.in_stock + credit.get(pid, 0)
            if available >= requested:
                continue
            reason = ShortageReason.OUT_OF_STOCK if available <= 0 else ShortageReason.INSUFFICIENT_STOCK
            shortages.append(
                {
                    "product_id": pid,
                    "name": product.name,
                    "sku": product.sku,
                    "requested": requested,
                    "available": max(available, 0),
                    "reason": reason.value,
                }
            )

        if shortages:
            logger.info("stock_violation", currency=currency, offenders=[s["product_id"] for s in shortages])
            raise StockViolation(shortages)

        return {
            pid: StockedProduct(product=products[pid], pricing=products[pid].pricing_for(currency), requested=qty)
            for pid, qty in quantities.items()
        }
