"""Error taxonomy for the ordering context.

Every failure raised by the engine carries a stable ``kind``, a human-readable
message and, where several things went wrong at once, a ``messages`` dict in
the same ``{"field": ["msg", ...]}`` shape Protean uses for ValidationError.
Errors are raised inside the active unit of work, so Protean discards every
write of the failed operation before the error reaches the caller.
"""


class OrderingError(Exception):
    """Base class for all ordering failures."""

    kind = "error"
    status_code = 400

    def __init__(self, messages=None, message=None, details=None, status_code=None):
        if isinstance(messages, str):
            message, messages = messages, None
        self.messages = messages or {}
        self.message = message or self._first_message() or self.kind
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def _first_message(self):
        for msgs in self.messages.values():
            if msgs:
                return msgs[0] if isinstance(msgs, list) else str(msgs)
        return None

    def to_dict(self) -> dict:
        body = {"error": self.kind, "message": self.message}
        if self.messages:
            body["messages"] = self.messages
        if self.details is not None:
            body["details"] = self.details
        return body


class InvalidInput(OrderingError):
    kind = "invalid_input"
    status_code = 400


class NotFound(OrderingError):
    kind = "not_found"
    status_code = 404


class Unauthorized(OrderingError):
    kind = "unauthorized"
    status_code = 403


class CurrencyMismatch(OrderingError):
    """Declared currency differs from the one implied by the shipping country."""

    kind = "currency_mismatch"
    status_code = 403


class StockViolation(OrderingError):
    """One or more products cannot cover the requested quantity.

    ``items`` lists every offender, not just the first one found.
    """

    kind = "stock_violation"
    status_code = 409

    def __init__(self, items, message=None):
        self.items = list(items)
        messages = {}
        for item in self.items:
            messages.setdefault(item["reason"], []).append(
                f"{item['name']}: requested {item['requested']}, available {item['available']}"
            )
        super().__init__(
            messages,
            message=message or "Some products are out of stock or have insufficient stock",
            details={"items": self.items},
        )


class InvalidTransition(OrderingError):
    kind = "invalid_transition"
    status_code = 409


class Conflict(OrderingError):
    kind = "conflict"
    status_code = 409


class OrderNumberConflict(Conflict):
    """Raised when an allocated order number is already taken; creation retries."""

    kind = "order_number_conflict"
