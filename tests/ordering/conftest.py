"""Shared fixtures for the Ordering tests: catalogue products, accounts and order placement."""

import json
import uuid

import pytest
from ordering.account.account import Account
from ordering.catalogue.product import Product
from ordering.order.creation import PlaceOrder, place_order
from ordering.order.order import Order
from protean import current_domain

US_ADDRESS = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "phone": "+1-555-0100",
    "street": "1 Main St",
    "city": "Springfield",
    "state": "IL",
    "postal_code": "62701",
    "country": "US",
}

GB_ADDRESS = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "street": "10 Downing St",
    "city": "London",
    "postal_code": "SW1A 2AA",
    "country": "GB",
}

_JSON_FIELDS = ("items", "shipping_address", "billing_address", "order_metadata")


@pytest.fixture
def us_address():
    return dict(US_ADDRESS)


@pytest.fixture
def gb_address():
    return dict(GB_ADDRESS)


@pytest.fixture
def make_product():
    """Persist a product priced in one or more currencies."""

    def _make(
        name="Widget",
        sku=None,
        in_stock=10,
        price=10.0,
        currency="USD",
        discount_type=None,
        discount_value=0.0,
        prices=None,
    ):
        prices = prices or [
            {
                "currency": currency,
                "base_price": price,
                "discount_type": discount_type,
                "discount_value": discount_value,
            }
        ]
        product = Product.register(
            name=name,
            sku=sku or f"SKU-{uuid.uuid4().hex[:8].upper()}",
            in_stock=in_stock,
            prices=prices,
        )
        current_domain.repository_for(Product).add(product)
        return product

    return _make


@pytest.fixture
def make_account():
    def _make(email="member@example.com", first_name="Grace", last_name="Hopper", role="customer", addresses=()):
        account = Account(email=email, first_name=first_name, last_name=last_name, role=role)
        for address in addresses:
            account.add_address(**address)
        current_domain.repository_for(Account).add(account)
        return account

    return _make


@pytest.fixture
def reload():
    """Fresh copy of an aggregate from its repository."""

    def _reload(aggregate):
        return current_domain.repository_for(type(aggregate)).get(str(aggregate.id))

    return _reload


def lines(*pairs):
    return [{"product_id": str(product.id), "quantity": quantity} for product, quantity in pairs]


@pytest.fixture
def place_command():
    """Build a PlaceOrder command; ``items`` is a list of ``(product, quantity)`` pairs."""

    def _command(items, **overrides):
        data = {
            "email": "buyer@example.com",
            "first_name": "Ada",
            "last_name": "Lovelace",
            "items": lines(*items),
            "shipping_address": {"snapshot": dict(US_ADDRESS)},
            "currency": "USD",
        }
        data.update(overrides)
        for name in _JSON_FIELDS:
            if isinstance(data.get(name), (dict, list)):
                data[name] = json.dumps(data[name])
        return PlaceOrder(**data)

    return _command


@pytest.fixture
def place(place_command):
    def _place(items, **overrides) -> Order:
        return place_order(place_command(items, **overrides))

    return _place


@pytest.fixture
def owner():
    """Actor fields for the account that owns ``order``."""

    def _owner(order):
        return {"actor_id": str(order.account_id), "actor_role": "customer"}

    return _owner
