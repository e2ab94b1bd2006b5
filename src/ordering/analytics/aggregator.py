"""Sales analytics over committed orders.

Reads live (not soft-deleted) orders in a time window, optionally narrowed
by storefront, status, payment status, account, source or coupon use, and
rolls them up per currency. Amounts in different currencies
are never summed together. An empty window yields a report of zeros and
empty lists.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal

from protean.utils.globals import current_domain

from ordering.account.account import Account
from ordering.config import OrderingSettings, get_settings
from ordering.errors import InvalidInput
from ordering.order.lifecycle import OrderPaymentStatus, OrderSource, OrderStatus, coerce_choice
from ordering.order.order import Order
from ordering.pricing.engine import ZERO, money


def _aware(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def month_labels(start: datetime, end: datetime) -> list[str]:
    """``YYYY-MM`` labels for every month touched by ``[start, end]``."""
    labels = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        labels.append(f"{year:04d}-{month:02d}")
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return labels


def _distribution(counts: dict, totals: dict) -> dict:
    return {key: {"count": counts[key], "total": float(money(totals[key]))} for key in counts}


@dataclass
class _Bucket:
    """Running totals for one currency."""

    labels: list
    order_count: int = 0
    total_value: Decimal = ZERO
    paid_total: Decimal = ZERO
    unpaid_total: Decimal = ZERO
    tax_total: Decimal = ZERO
    shipping_total: Decimal = ZERO
    discount_total: Decimal = ZERO
    status_counts: dict = field(default_factory=lambda: {s.value: 0 for s in OrderStatus})
    payment_status_counts: dict = field(default_factory=lambda: {s.value: 0 for s in OrderPaymentStatus})
    status_totals: dict = field(default_factory=lambda: {s.value: ZERO for s in OrderStatus})
    payment_status_totals: dict = field(default_factory=lambda: {s.value: ZERO for s in OrderPaymentStatus})
    source_counts: dict = field(default_factory=lambda: {s.value: 0 for s in OrderSource})
    source_totals: dict = field(default_factory=lambda: {s.value: ZERO for s in OrderSource})
    storefront_counts: dict = field(default_factory=dict)
    storefront_totals: dict = field(default_factory=dict)
    customer_spend: dict = field(default_factory=dict)
    customer_orders: dict = field(default_factory=dict)
    product_units: dict = field(default_factory=dict)
    product_names: dict = field(default_factory=dict)
    coupon_counts: dict = field(default_factory=dict)
    trend: dict = field(default_factory=dict)

    def __post_init__(self):
        self.trend = {
            "labels": list(self.labels),
            "paid_total": [ZERO] * len(self.labels),
            "returned": [0] * len(self.labels),
            "delivered": [0] * len(self.labels),
            "cancelled": [0] * len(self.labels),
        }

    def add(self, order: Order, month_index: int | None) -> None:
        total = money(order.total)
        self.order_count += 1
        self.total_value += total
        self.tax_total += money(order.tax)
        self.shipping_total += money(order.shipping_cost)
        self.discount_total += money(order.discount)
        self.status_counts[order.status] = self.status_counts.get(order.status, 0) + 1
        self.payment_status_counts[order.payment_status] = self.payment_status_counts.get(order.payment_status, 0) + 1
        self.status_totals[order.status] = self.status_totals.get(order.status, ZERO) + total
        self.payment_status_totals[order.payment_status] = (
            self.payment_status_totals.get(order.payment_status, ZERO) + total
        )
        self.source_counts[order.source] = self.source_counts.get(order.source, 0) + 1
        self.source_totals[order.source] = self.source_totals.get(order.source, ZERO) + total
        if order.storefront_id:
            storefront = str(order.storefront_id)
            self.storefront_counts[storefront] = self.storefront_counts.get(storefront, 0) + 1
            self.storefront_totals[storefront] = self.storefront_totals.get(storefront, ZERO) + total

        paid = order.payment_status == OrderPaymentStatus.PAID.value
        if paid:
            self.paid_total += total
        elif order.payment_status == OrderPaymentStatus.UNPAID.value:
            self.unpaid_total += total

        account_id = str(order.account_id)
        self.customer_spend[account_id] = self.customer_spend.get(account_id, ZERO) + total
        self.customer_orders[account_id] = self.customer_orders.get(account_id, 0) + 1

        for item in order.items:
            pid = str(item.product_id)
            self.product_units[pid] = self.product_units.get(pid, 0) + item.quantity
            self.product_names.setdefault(pid, item.product_name)

        if order.coupon_code:
            self.coupon_counts[order.coupon_code] = self.coupon_counts.get(order.coupon_code, 0) + 1

        if month_index is None:
            return
        if paid:
            self.trend["paid_total"][month_index] += total
        for status in ("returned", "delivered", "cancelled"):
            if order.status == status:
                self.trend[status][month_index] += 1


class AnalyticsAggregator:
    """Builds the order analytics report. Stateless between calls."""

    def __init__(self, settings: OrderingSettings | None = None, repository=None, accounts=None):
        self.settings = settings or get_settings()
        self._repository = repository
        self._accounts = accounts

    @property
    def repository(self):
        return self._repository or current_domain.repository_for(Order)

    @property
    def accounts(self):
        return self._accounts or current_domain.repository_for(Account)

    def resolve_window(self, start=None, end=None) -> tuple[datetime, datetime]:
        now = datetime.now(UTC)
        end = _aware(end) or now
        start = _aware(start) or _aware(self.repository.earliest_created_at()) or now
        if start > end:
            raise InvalidInput({"start": ["Start of the range must not be after its end"]})
        return start, end

    @staticmethod
    def order_filters(
        storefront_id=None,
        status=None,
        payment_status=None,
        account_id=None,
        source=None,
        has_coupon=False,
    ) -> dict:
        """Repository filters for the optional report criteria; unknown status values are InvalidInput."""
        filters = {}
        if storefront_id:
            filters["storefront_id"] = str(storefront_id)
        if status:
            filters["status"] = coerce_choice(OrderStatus, status, "status").value
        if payment_status:
            filters["payment_status"] = coerce_choice(OrderPaymentStatus, payment_status, "payment_status").value
        if account_id:
            filters["account_id"] = str(account_id)
        if source:
            filters["source"] = coerce_choice(OrderSource, source, "source").value
        if has_coupon:
            filters["coupon_code__isnull"] = False
        return filters

    def build(
        self,
        start=None,
        end=None,
        storefront_id=None,
        status=None,
        payment_status=None,
        account_id=None,
        source=None,
        has_coupon=False,
    ) -> dict:
        criteria = self.order_filters(
            storefront_id=storefront_id,
            status=status,
            payment_status=payment_status,
            account_id=account_id,
            source=source,
            has_coupon=has_coupon,
        )
        start, end = self.resolve_window(start, end)
        labels = month_labels(start, end)
        index = {label: i for i, label in enumerate(labels)}

        filters = {"created_at__gte": start, "created_at__lte": end, **criteria}

        buckets: dict[str, _Bucket] = {}
        for order in self.repository.iter_live(**filters):
            bucket = buckets.setdefault(order.currency, _Bucket(labels=labels))
            created = _aware(order.created_at)
            bucket.add(order, index.get(f"{created.year:04d}-{created.month:02d}") if created else None)

        contacts = self._contacts(buckets)
        return {
            "range": {"start": start.isoformat(), "end": end.isoformat()},
            "storefront_id": storefront_id,
            "order_count": sum(b.order_count for b in buckets.values()),
            "currencies": {
                currency: self._render(bucket, contacts) for currency, bucket in sorted(buckets.items())
            },
        }

    def _contacts(self, buckets) -> dict:
        top = self.settings.analytics_top_n
        wanted = set()
        for bucket in buckets.values():
            wanted.update(self._top(bucket.customer_spend, top))
        return {str(a.id): a for a in self.accounts.find_many(wanted)} if wanted else {}

    @staticmethod
    def _top(scores: dict, n: int) -> list:
        return [key for key, _ in sorted(scores.items(), key=lambda kv: (-kv[1], kv[0]))[:n]]

    def _render(self, bucket: _Bucket, contacts: dict) -> dict:
        top = self.settings.analytics_top_n
        average = money(bucket.total_value / bucket.order_count) if bucket.order_count else ZERO

        top_customers = []
        for account_id in self._top(bucket.customer_spend, top):
            account = contacts.get(account_id)
            top_customers.append(
                {
                    "account_id": account_id,
                    "email": account.email if account else None,
                    "name": account.full_name if account else None,
                    "order_count": bucket.customer_orders[account_id],
                    "total_spent": float(money(bucket.customer_spend[account_id])),
                }
            )

        top_products = [
            {"product_id": pid, "name": bucket.product_names.get(pid), "quantity": bucket.product_units[pid]}
            for pid in self._top(bucket.product_units, top)
        ]

        return {
            "order_count": bucket.order_count,
            "total_value": float(money(bucket.total_value)),
            "average_value": float(average),
            "paid_total": float(money(bucket.paid_total)),
            "unpaid_total": float(money(bucket.unpaid_total)),
            "tax_total": float(money(bucket.tax_total)),
            "shipping_total": float(money(bucket.shipping_total)),
            "discount_total": float(money(bucket.discount_total)),
            "status_counts": dict(bucket.status_counts),
            "payment_status_counts": dict(bucket.payment_status_counts),
            "status_distribution": _distribution(bucket.status_counts, bucket.status_totals),
            "payment_status_distribution": _distribution(bucket.payment_status_counts, bucket.payment_status_totals),
            "order_type_distribution": _distribution(bucket.source_counts, bucket.source_totals),
            "website_distribution": _distribution(bucket.storefront_counts, bucket.storefront_totals),
            "customer_analysis": {
                "total_customers": len(bucket.customer_orders),
                "new_customers": sum(1 for n in bucket.customer_orders.values() if n == 1),
                "returning_customers": sum(1 for n in bucket.customer_orders.values() if n > 1),
            },
            "trend": {
                "labels": bucket.trend["labels"],
                "paid_total": [float(money(v)) for v in bucket.trend["paid_total"]],
                "returned": bucket.trend["returned"],
                "delivered": bucket.trend["delivered"],
                "cancelled": bucket.trend["cancelled"],
            },
            "top_customers": top_customers,
            "top_products": top_products,
            "coupon_usage": dict(sorted(bucket.coupon_counts.items(), key=lambda kv: (-kv[1], kv[0]))),
        }
