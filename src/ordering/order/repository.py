"""Order lookups beyond get-by-id."""

from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order, Payment

_PAGE_SIZE = 100


@ordering.repository(part_of=Order)
class OrderRepository:
    def find_by_number(self, order_number: str) -> Order | None:
        return self._dao.query.filter(order_number=order_number).all().first

    def latest_sequence(self) -> int:
        """Highest allocated sequence, including soft-deleted orders."""
        latest = self._dao.query.order_by("-sequence").limit(1).all().first
        return latest.sequence if latest else 0

    def page(self, offset: int = 0, limit: int = 20, account_id=None) -> list[Order]:
        """Live orders, newest first."""
        filters = {"deleted_at__isnull": True}
        if account_id:
            filters["account_id"] = str(account_id)
        return self._dao.query.filter(**filters).order_by("-sequence").offset(offset).limit(limit).all().items

    def iter_live(self, **filters):
        """Yield every live order matching ``filters`` in creation order, a page at a time."""
        offset = 0
        while True:
            batch = (
                self._dao.query.filter(deleted_at__isnull=True, **filters)
                .order_by("sequence")
                .offset(offset)
                .limit(_PAGE_SIZE)
                .all()
                .items
            )
            yield from batch
            if len(batch) < _PAGE_SIZE:
                return
            offset += _PAGE_SIZE

    def earliest_created_at(self):
        first = self._dao.query.filter(deleted_at__isnull=True).order_by("sequence").limit(1).all().first
        return first.created_at if first else None

    def transaction_id_taken(self, transaction_id: str) -> bool:
        """Whether any stored payment row, live or deleted, already carries ``transaction_id``."""
        payments = current_domain.repository_for(Payment)._dao
        return payments.query.filter(transaction_id=transaction_id).all().first is not None
