"""Read operations on orders."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from ordering.errors import InvalidInput, NotFound
from ordering.order.order import Order

MAX_PAGE_SIZE = 100


def load_order(order_id, include_deleted: bool = False) -> Order:
    """Fetch an order by id; soft-deleted orders count as missing."""
    try:
        order = current_domain.repository_for(Order).get(str(order_id))
    except ObjectNotFoundError:
        raise NotFound({"order_id": [f"Order {order_id} does not exist"]})

    if order.is_deleted and not include_deleted:
        raise NotFound({"order_id": [f"Order {order_id} does not exist"]})
    return order


def get_order(order_id) -> Order:
    return load_order(order_id)


def get_order_by_number(order_number: str) -> Order:
    order = current_domain.repository_for(Order).find_by_number(order_number)
    if order is None or order.is_deleted:
        raise NotFound({"order_number": [f"Order {order_number} does not exist"]})
    return order


def list_orders(offset: int = 0, limit: int = 20, account_id=None) -> list[Order]:
    if offset < 0 or not 1 <= limit <= MAX_PAGE_SIZE:
        raise InvalidInput({"page": [f"offset must be >= 0 and limit between 1 and {MAX_PAGE_SIZE}"]})
    return current_domain.repository_for(Order).page(offset=offset, limit=limit, account_id=account_id)
