"""Application tests for the AnalyticsAggregator report."""

from datetime import UTC, datetime, timedelta

import pytest
from ordering.analytics.aggregator import AnalyticsAggregator, month_labels
from ordering.errors import InvalidInput
from ordering.order.modification import DeleteOrder
from ordering.order.status import SetOrderStatus, SetPaymentStatus
from protean import current_domain


def _staff():
    return {"actor_id": "staff-1", "actor_role": "staff"}


@pytest.fixture
def sales(make_product, place, gb_address):
    """Two USD orders (one paid and delivered) and one GBP order."""
    widget = make_product(
        name="Widget",
        in_stock=50,
        prices=[{"currency": "USD", "base_price": 10.0}, {"currency": "GBP", "base_price": 8.0}],
    )
    gadget = make_product(name="Gadget", price=5.0, in_stock=50)

    paid = place([(widget, 2)], email="big@example.com", first_name="Big", last_name="Spender", coupon_code="WELCOME")
    place([(widget, 1), (gadget, 3)], email="small@example.com", coupon_code="WELCOME")
    place([(widget, 1)], email="uk@example.com", shipping_address={"snapshot": gb_address}, currency="GBP")

    for command in (
        SetPaymentStatus(order_id=str(paid.id), payment_status="paid", **_staff()),
        SetOrderStatus(order_id=str(paid.id), status="delivered", **_staff()),
    ):
        current_domain.process(command, asynchronous=False)
    return {"widget": widget, "gadget": gadget, "paid": paid}


class TestEmptyWindow:
    def test_no_orders_at_all(self):
        report = AnalyticsAggregator().build()

        assert report["order_count"] == 0
        assert report["currencies"] == {}

    def test_window_before_any_order(self, sales):
        report = AnalyticsAggregator().build(
            start=datetime(2000, 1, 1, tzinfo=UTC),
            end=datetime(2000, 2, 1, tzinfo=UTC),
        )
        assert report["order_count"] == 0
        assert report["currencies"] == {}

    def test_start_after_end_is_rejected(self):
        with pytest.raises(InvalidInput):
            AnalyticsAggregator().build(start=datetime(2024, 2, 1), end=datetime(2024, 1, 1))


class TestReport:
    def test_currencies_are_kept_apart(self, sales):
        report = AnalyticsAggregator().build()

        assert report["order_count"] == 3
        assert set(report["currencies"]) == {"USD", "GBP"}
        assert report["currencies"]["GBP"]["total_value"] == 8.0

    def test_usd_totals(self, sales):
        usd = AnalyticsAggregator().build()["currencies"]["USD"]

        assert usd["order_count"] == 2
        assert usd["total_value"] == 45.0
        assert usd["average_value"] == 22.5
        assert usd["paid_total"] == 20.0
        assert usd["unpaid_total"] == 25.0

    def test_status_counts_are_zero_filled(self, sales):
        usd = AnalyticsAggregator().build()["currencies"]["USD"]

        assert usd["status_counts"]["delivered"] == 1
        assert usd["status_counts"]["pending"] == 1
        assert usd["status_counts"]["returned"] == 0
        assert usd["payment_status_counts"] == {"unpaid": 1, "paid": 1, "partially_paid": 0, "refunded": 0}

    def test_top_customers_and_products(self, sales):
        usd = AnalyticsAggregator().build()["currencies"]["USD"]

        top = usd["top_customers"]
        assert [c["email"] for c in top] == ["small@example.com", "big@example.com"]
        assert top[1]["name"] == "Big Spender"
        assert top[1]["total_spent"] == 20.0

        products = {p["name"]: p for p in usd["top_products"]}
        assert set(products) == {"Widget", "Gadget"}
        assert products["Widget"]["product_id"] == str(sales["widget"].id)
        assert products["Widget"]["quantity"] == 3
        assert products["Gadget"]["quantity"] == 3
        assert usd["coupon_usage"] == {"WELCOME": 2}

    def test_monthly_trend(self, sales):
        usd = AnalyticsAggregator().build()["currencies"]["USD"]
        this_month = datetime.now(UTC).strftime("%Y-%m")

        assert usd["trend"]["labels"][-1] == this_month
        assert usd["trend"]["paid_total"][-1] == 20.0
        assert usd["trend"]["delivered"][-1] == 1
        assert usd["trend"]["cancelled"][-1] == 0

    def test_top_n_comes_from_settings(self, sales, monkeypatch):
        monkeypatch.setenv("ANALYTICS_TOP_N", "1")
        usd = AnalyticsAggregator().build()["currencies"]["USD"]
        assert len(usd["top_customers"]) == 1
        assert len(usd["top_products"]) == 1

    def test_deleted_orders_are_excluded(self, sales):
        paid = sales["paid"]
        current_domain.process(DeleteOrder(order_id=str(paid.id), **_staff()), asynchronous=False)

        usd = AnalyticsAggregator().build()["currencies"]["USD"]
        assert usd["order_count"] == 1

    def test_storefront_filter(self, make_product, place):
        product = make_product(in_stock=10)
        place([(product, 1)], storefront_id="store-a")
        place([(product, 2)], storefront_id="store-b")

        report = AnalyticsAggregator().build(storefront_id="store-a")

        assert report["order_count"] == 1
        assert report["currencies"]["USD"]["total_value"] == 10.0

    def test_explicit_window_includes_recent_orders(self, sales):
        now = datetime.now(UTC)
        report = AnalyticsAggregator().build(start=now - timedelta(days=1), end=now + timedelta(minutes=1))
        assert report["order_count"] == 3


class TestMonthLabels:
    def test_spans_year_boundary(self):
        labels = month_labels(datetime(2023, 11, 15), datetime(2024, 2, 1))
        assert labels == ["2023-11", "2023-12", "2024-01", "2024-02"]


class TestBreakdowns:
    def test_status_buckets_carry_totals(self, sales):
        usd = AnalyticsAggregator().build()["currencies"]["USD"]

        assert usd["status_distribution"]["delivered"] == {"count": 1, "total": 20.0}
        assert usd["status_distribution"]["pending"] == {"count": 1, "total": 25.0}
        assert usd["status_distribution"]["cancelled"] == {"count": 0, "total": 0.0}
        assert usd["payment_status_distribution"]["paid"] == {"count": 1, "total": 20.0}
        assert usd["payment_status_distribution"]["unpaid"] == {"count": 1, "total": 25.0}

    def test_order_type_distribution(self, make_product, place):
        product = make_product(in_stock=10)
        place([(product, 1)])
        place([(product, 2)], source="manual", actor_id="staff-1", actor_role="staff")

        usd = AnalyticsAggregator().build()["currencies"]["USD"]

        assert usd["order_type_distribution"] == {
            "website": {"count": 1, "total": 10.0},
            "manual": {"count": 1, "total": 20.0},
        }

    def test_website_distribution_skips_orders_without_storefront(self, make_product, place):
        product = make_product(in_stock=10)
        place([(product, 1)], storefront_id="store-a")
        place([(product, 2)], storefront_id="store-a")
        place([(product, 1)])

        usd = AnalyticsAggregator().build()["currencies"]["USD"]

        assert usd["website_distribution"] == {"store-a": {"count": 2, "total": 30.0}}

    def test_new_and_returning_customers(self, make_product, place):
        product = make_product(in_stock=10)
        place([(product, 1)], email="once@example.com")
        place([(product, 1)], email="again@example.com")
        place([(product, 1)], email="again@example.com")

        analysis = AnalyticsAggregator().build()["currencies"]["USD"]["customer_analysis"]

        assert analysis == {"total_customers": 2, "new_customers": 1, "returning_customers": 1}


class TestFilters:
    def test_by_status(self, sales):
        report = AnalyticsAggregator().build(status="delivered")
        assert report["order_count"] == 1
        assert report["currencies"]["USD"]["total_value"] == 20.0

    def test_by_payment_status(self, sales):
        report = AnalyticsAggregator().build(payment_status="unpaid")
        assert report["order_count"] == 2
        assert set(report["currencies"]) == {"USD", "GBP"}

    def test_by_account(self, sales):
        report = AnalyticsAggregator().build(account_id=str(sales["paid"].account_id))
        assert report["order_count"] == 1

    def test_by_source(self, sales):
        assert AnalyticsAggregator().build(source="manual")["order_count"] == 0
        assert AnalyticsAggregator().build(source="website")["order_count"] == 3

    def test_only_orders_with_a_coupon(self, sales):
        report = AnalyticsAggregator().build(has_coupon=True)
        assert report["order_count"] == 2
        assert set(report["currencies"]) == {"USD"}

    @pytest.mark.parametrize(
        "criteria",
        [{"status": "lost"}, {"payment_status": "free"}, {"source": "phone"}],
    )
    def test_unknown_values_are_rejected(self, criteria):
        with pytest.raises(InvalidInput):
            AnalyticsAggregator().build(**criteria)
