"""Order assembly — the one pipeline every new order goes through.

    CurrencyResolver → AccountResolver → AddressSnapshotResolver
        → StockValidator → PricingEngine (per line) → persist

Website checkouts and manually entered orders both run through
OrderAssembler.assemble(); review_order() runs the same validation and pricing
without writing anything.
"""

import json
from dataclasses import dataclass
from decimal import Decimal

from protean.utils.globals import current_domain

from ordering.account.account import Account
from ordering.account.addresses import AddressSnapshotResolver, parse_address_input
from ordering.account.resolver import AccountResolver
from ordering.catalogue.product import Product
from ordering.catalogue.stock import StockValidator
from ordering.config import OrderingSettings, get_settings
from ordering.domain import logger
from ordering.errors import CurrencyMismatch, InvalidInput
from ordering.order.lifecycle import Actor, OrderPaymentStatus, OrderSource
from ordering.order.numbering import OrderNumberAllocator
from ordering.order.order import Order
from ordering.pricing.currency import CurrencyResolver
from ordering.pricing.engine import OrderTotals, PricedLine, PricingEngine

MAX_QUANTITY = 1000


def parse_items(raw, field: str = "items") -> dict:
    """``[{"product_id": .., "quantity": ..}, ...]`` → ``{product_id: quantity}``.

    Repeated products are merged. Every malformed entry is reported.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            raise InvalidInput({field: ["Items must be a JSON list"]})

    if not isinstance(raw, list) or not raw:
        raise InvalidInput({field: ["At least one item is required"]})

    errors = []
    quantities = {}
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict) or not entry.get("product_id"):
            errors.append(f"Item {index}: product_id is required")
            continue
        quantity = entry.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or not 1 <= quantity <= MAX_QUANTITY:
            errors.append(f"Item {index}: quantity must be a whole number between 1 and {MAX_QUANTITY}")
            continue
        pid = str(entry["product_id"])
        quantities[pid] = quantities.get(pid, 0) + quantity

    if errors:
        raise InvalidInput({field: errors})
    return quantities


def parse_json_object(raw, field: str) -> dict:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            raise InvalidInput({field: ["Must be a JSON object"]})
    if not isinstance(raw, dict):
        raise InvalidInput({field: ["Must be a JSON object"]})
    return raw


@dataclass(frozen=True)
class PricedPreview:
    """Result of a dry run: what the order would cost, nothing persisted."""

    currency: str
    lines: list
    totals: OrderTotals

    def to_dict(self) -> dict:
        return {
            "currency": self.currency,
            "items": [line.snapshot() for line in self.lines],
            **self.totals.as_fields(),
        }


class OrderAssembler:
    """Builds priced, validated orders.

    Collaborators are injected; defaults are built from settings. The
    assembler reads and writes through ``current_domain``, so ``assemble``
    must run inside a command handler's unit of work.
    """

    def __init__(
        self,
        settings: OrderingSettings | None = None,
        currencies: CurrencyResolver | None = None,
        pricing: PricingEngine | None = None,
        stock: StockValidator | None = None,
        accounts: AccountResolver | None = None,
        addresses: AddressSnapshotResolver | None = None,
        numbers: OrderNumberAllocator | None = None,
    ):
        self.settings = settings or get_settings()
        self.currencies = currencies or CurrencyResolver(self.settings)
        self.pricing = pricing or PricingEngine()
        self.stock = stock or StockValidator()
        self.accounts = accounts or AccountResolver()
        self.addresses = addresses or AddressSnapshotResolver()
        self.numbers = numbers or OrderNumberAllocator(self.settings)

    # -------------------------------------------------------------------
    # Shared steps (also used by OrderModifier)
    # -------------------------------------------------------------------
    def check_currency(self, declared, country) -> str:
        if not country:
            raise InvalidInput({"shipping_address": ["Shipping country is required"]})
        if not declared:
            raise InvalidInput({"currency": ["Currency is required"]})

        expected = self.currencies.resolve(country)
        declared = declared.strip().upper()
        if declared != expected:
            raise CurrencyMismatch(
                {"currency": [f"Orders shipped to {country} are charged in {expected}, not {declared}"]},
                details={"declared": declared, "expected": expected, "country": country},
            )
        return expected

    def effective_tax_rate(self, requested) -> Decimal:
        if requested is None:
            return self.settings.default_tax_rate
        rate = Decimal(str(requested))
        if rate < 0 or rate > 1:
            raise InvalidInput({"tax_rate": ["Tax rate must be between 0 and 1"]})
        return rate

    def price_lines(self, quantities: dict, currency: str, credit: dict | None = None):
        """Validate stock and price every line. Returns ``(lines, stocked)``."""
        stocked = self.stock.validate(quantities, currency, credit=credit)
        lines: list[PricedLine] = []
        for pid, entry in stocked.items():
            quote = self.pricing.quote_pricing(entry.pricing)
            lines.append(self.pricing.line(pid, entry.product.name, entry.product.sku, entry.requested, quote))
        return lines, stocked

    def compute_totals(self, lines, tax_rate, shipping_cost=0, discount=0) -> OrderTotals:
        if (shipping_cost or 0) < 0:
            raise InvalidInput({"shipping_cost": ["Shipping cost cannot be negative"]})
        if (discount or 0) < 0:
            raise InvalidInput({"discount": ["Discount cannot be negative"]})

        totals = self.pricing.totals(lines, tax_rate=tax_rate, shipping_cost=shipping_cost, discount=discount)
        if totals.total < 0:
            raise InvalidInput({"discount": ["Discount cannot exceed the order amount"]})
        return totals

    # -------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------
    def assemble(self, command) -> Order:
        quantities = parse_items(command.items)
        shipping_input = parse_address_input(command.shipping_address, "shipping_address")
        billing_input = (
            parse_address_input(command.billing_address, "billing_address")
            if command.billing_address
            else shipping_input
        )
        metadata = parse_json_object(command.order_metadata, "order_metadata")

        # 1. Account, addresses, currency
        account, created = self.accounts.resolve(
            account_id=command.account_id,
            email=command.email,
            first_name=command.first_name,
            last_name=command.last_name,
            phone=command.phone,
        )
        shipping = self.addresses.resolve(account, shipping_input, "shipping_address")
        billing = self.addresses.resolve(account, billing_input, "billing_address")
        currency = self.check_currency(command.currency, shipping.snapshot.country)

        # 2-4. Stock, pricing, totals
        lines, stocked = self.price_lines(quantities, currency)
        totals = self.compute_totals(
            lines,
            self.effective_tax_rate(command.tax_rate),
            shipping_cost=command.shipping_cost or 0,
            discount=command.discount or 0,
        )

        # 5. Order number
        sequence, order_number = self.numbers.allocate()

        source = command.source or OrderSource.WEBSITE.value
        payment_status = OrderPaymentStatus.UNPAID.value
        if source == OrderSource.MANUAL.value and command.payment_status:
            payment_status = command.payment_status

        actor = Actor(
            id=command.actor_id or str(account.id),
            role=command.actor_role or ("guest" if account.is_guest else account.role),
            email=command.actor_email or account.email,
        )

        order = Order.place(
            order_number=order_number,
            sequence=sequence,
            account_id=account.id,
            currency=currency,
            shipping=shipping,
            billing=billing,
            lines=lines,
            totals=totals,
            actor=actor,
            storefront_id=command.storefront_id,
            source=source,
            payment_method=command.payment_method,
            payment_status=payment_status,
            notes=command.notes,
            customer_notes=command.customer_notes,
            coupon_code=command.coupon_code,
            metadata=metadata,
        )

        # 6. Persist everything in the current unit of work
        if created:
            current_domain.repository_for(Account).add(account)

        product_repo = current_domain.repository_for(Product)
        for entry in stocked.values():
            entry.product.reserve(entry.requested)
            product_repo.add(entry.product)

        current_domain.repository_for(Order).add(order)

        logger.info(
            "order_placed",
            order_id=str(order.id),
            order_number=order_number,
            account_id=str(account.id),
            currency=currency,
            total=order.total,
            source=source,
        )
        return order

    # -------------------------------------------------------------------
    # Dry run
    # -------------------------------------------------------------------
    def preview(
        self,
        items,
        currency,
        shipping_country=None,
        tax_rate=None,
        shipping_cost=0,
        discount=0,
    ) -> PricedPreview:
        quantities = parse_items(items)
        if shipping_country:
            currency = self.check_currency(currency, shipping_country)
        elif not currency:
            raise InvalidInput({"currency": ["Currency is required"]})
        else:
            currency = currency.strip().upper()
            if currency not in self.settings.allowed_currencies:
                raise InvalidInput({"currency": [f"Unsupported currency {currency}"]})

        lines, _ = self.price_lines(quantities, currency)
        totals = self.compute_totals(
            lines,
            self.effective_tax_rate(tax_rate),
            shipping_cost=shipping_cost or 0,
            discount=discount or 0,
        )
        return PricedPreview(currency=currency, lines=lines, totals=totals)


def review_order(
    items,
    currency,
    shipping_country=None,
    tax_rate=None,
    shipping_cost=0,
    discount=0,
    assembler: OrderAssembler | None = None,
) -> PricedPreview:
    """Price a cart without persisting anything."""
    assembler = assembler or OrderAssembler()
    return assembler.preview(
        items,
        currency,
        shipping_country=shipping_country,
        tax_rate=tax_rate,
        shipping_cost=shipping_cost,
        discount=discount,
    )
