"""Human-readable order numbers: ``<PREFIX>-O-<n>``."""

from protean.utils.globals import current_domain

from ordering.config import OrderingSettings, get_settings
from ordering.errors import OrderNumberConflict
from ordering.order.order import Order


class OrderNumberAllocator:
    """Derives the next number from the highest persisted sequence.

    Two concurrent units of work can read the same high-water mark. The
    number and sequence columns are unique, and a taken number raises
    OrderNumberConflict so ``place_order`` can retry with a fresh read.
    """

    def __init__(self, settings: OrderingSettings | None = None, repository=None):
        self.settings = settings or get_settings()
        self._repository = repository

    @property
    def repository(self):
        return self._repository or current_domain.repository_for(Order)

    def next_sequence(self) -> int:
        return self.repository.latest_sequence() + 1

    def format(self, sequence: int) -> str:
        return f"{self.settings.order_number_prefix}-O-{sequence}"

    def allocate(self) -> tuple[int, str]:
        sequence = self.next_sequence()
        number = self.format(sequence)
        if self.repository.find_by_number(number) is not None:
            raise OrderNumberConflict({"order_number": [f"Order number {number} is already taken"]})
        return sequence, number
