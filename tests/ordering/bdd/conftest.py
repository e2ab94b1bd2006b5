"""Shared BDD fixtures and step definitions for the Ordering domain."""

import json

import pytest
from ordering.catalogue.product import Product
from ordering.errors import OrderingError
from ordering.order.creation import PlaceOrder, place_order
from ordering.order.queries import get_order
from ordering.order.status import SetOrderStatus, SetPaymentStatus
from protean import current_domain
from pytest_bdd import given, parsers, then, when

STAFF = {"actor_id": "staff-1", "actor_role": "staff"}


def _address(country):
    return {
        "snapshot": {
            "first_name": "Ada",
            "last_name": "Lovelace",
            "street": "1 Main St",
            "city": "Springfield",
            "postal_code": "62701",
            "country": country,
        }
    }


def attempt(outcome, action):
    """Run ``action``, keeping either the resulting order or the ordering failure."""
    try:
        outcome["order"] = action()
        outcome["error"] = None
    except OrderingError as exc:
        outcome["error"] = exc
    return outcome


@pytest.fixture()
def catalogue():
    """Products by name."""
    return {}


@pytest.fixture()
def outcome():
    return {"order": None, "error": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a product "{name}" priced {price:f} {currency} with {stock:d} in stock'))
def _(catalogue, name, price, currency, stock):
    product = Product.register(
        name=name,
        sku=f"SKU-{name.upper()}",
        in_stock=stock,
        prices=[{"currency": currency, "base_price": price}],
    )
    current_domain.repository_for(Product).add(product)
    catalogue[name] = product


@given(parsers.cfparse('an order for {quantity:d} "{name}" was placed'))
def _(catalogue, outcome, quantity, name):
    command = PlaceOrder(
        email="buyer@example.com",
        items=json.dumps([{"product_id": str(catalogue[name].id), "quantity": quantity}]),
        shipping_address=json.dumps(_address("US")),
        currency="USD",
        payment_method="credit_card",
    )
    outcome["order"] = place_order(command)


@given("the order was paid and delivered")
def _(outcome):
    order_id = str(outcome["order"].id)
    current_domain.process(SetPaymentStatus(order_id=order_id, payment_status="paid", **STAFF), asynchronous=False)
    current_domain.process(SetOrderStatus(order_id=order_id, status="delivered", **STAFF), asynchronous=False)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(
    parsers.cfparse(
        'a customer orders {quantity:d} "{name}" in {currency} shipped to {country} '
        "with tax {tax_rate:f} and shipping {shipping:f}"
    )
)
def _(catalogue, outcome, quantity, name, currency, country, tax_rate, shipping):
    command = PlaceOrder(
        email="buyer@example.com",
        items=json.dumps([{"product_id": str(catalogue[name].id), "quantity": quantity}]),
        shipping_address=json.dumps(_address(country)),
        currency=currency,
        tax_rate=tax_rate,
        shipping_cost=shipping,
    )
    attempt(outcome, lambda: place_order(command))


@when(parsers.cfparse('staff set the order status to "{status}"'))
def _(outcome, status):
    order_id = str(outcome["order"].id)

    def change():
        current_domain.process(SetOrderStatus(order_id=order_id, status=status, **STAFF), asynchronous=False)
        return get_order(order_id)

    attempt(outcome, change)


@when(parsers.cfparse('staff set the payment status to "{payment_status}"'))
def _(outcome, payment_status):
    order_id = str(outcome["order"].id)

    def change():
        command = SetPaymentStatus(order_id=order_id, payment_status=payment_status, **STAFF)
        current_domain.process(command, asynchronous=False)
        return get_order(order_id)

    attempt(outcome, change)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the order {field} is {amount:f}"))
def _(outcome, field, amount):
    assert outcome["error"] is None, outcome["error"]
    assert getattr(outcome["order"], field) == pytest.approx(amount)


@then(parsers.cfparse('the order status is "{status}"'))
def _(outcome, status):
    assert get_order(outcome["order"].id).status == status


@then(parsers.cfparse('the payment status is "{payment_status}"'))
def _(outcome, payment_status):
    assert get_order(outcome["order"].id).payment_status == payment_status


@then(parsers.cfparse('the request is rejected as "{kind}"'))
def _(outcome, kind):
    assert outcome["error"] is not None, "Expected the request to be rejected"
    assert outcome["error"].kind == kind


@then(parsers.cfparse('"{name}" has {stock:d} in stock'))
def _(catalogue, name, stock):
    assert current_domain.repository_for(Product).get(str(catalogue[name].id)).in_stock == stock


@then(parsers.cfparse("an {event_type} event is stored"))
def _(event_type):
    messages = current_domain.event_store.store.read("ordering::order")
    types = [m.metadata.headers.type for m in messages if m.metadata and m.metadata.headers]
    assert f"Ordering.{event_type}.v1" in types
