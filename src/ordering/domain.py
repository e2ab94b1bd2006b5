"""Ordering bounded context — order transactions, lifecycle and sales analytics.

Turns cart submissions into priced, stock-checked orders, moves them through
the order and payment status lifecycle, and rolls committed orders up into
currency-partitioned reports.
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
