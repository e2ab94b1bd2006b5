"""Engine settings for the ordering context.

Infrastructure (databases, event store, processing mode) lives in
``domain.toml`` next to this file and is selected by ``PROTEAN_ENV``. The
values here are business knobs, read from the environment the same way the
logging setup reads its level.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

_DEFAULT_CURRENCY_MAP = {"US": "USD", "AE": "AED", "GB": "GBP"}


def _parse_currency_map(raw: str | None) -> dict[str, str]:
    """Parse ``"US:USD,GB:GBP"`` into ``{"US": "USD", "GB": "GBP"}``."""
    if not raw:
        return dict(_DEFAULT_CURRENCY_MAP)

    mapping = {}
    for pair in raw.split(","):
        if ":" not in pair:
            continue
        country, currency = pair.split(":", 1)
        if country.strip() and currency.strip():
            mapping[country.strip().upper()] = currency.strip().upper()
    return mapping or dict(_DEFAULT_CURRENCY_MAP)


def _decimal_env(name: str, default: str) -> Decimal:
    try:
        return Decimal(os.getenv(name, default))
    except InvalidOperation:
        return Decimal(default)


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        return default


@dataclass(frozen=True)
class OrderingSettings:
    order_number_prefix: str = "LTC"
    base_currency: str = "USD"
    default_tax_rate: Decimal = Decimal("0")
    order_number_attempts: int = 3
    analytics_top_n: int = 5
    currency_by_country: dict = field(default_factory=lambda: dict(_DEFAULT_CURRENCY_MAP))

    @property
    def allowed_currencies(self) -> set[str]:
        return set(self.currency_by_country.values()) | {self.base_currency}

    @classmethod
    def from_env(cls) -> "OrderingSettings":
        return cls(
            order_number_prefix=os.getenv("ORDER_NUMBER_PREFIX", "LTC"),
            base_currency=os.getenv("BASE_CURRENCY", "USD").upper(),
            default_tax_rate=_decimal_env("DEFAULT_TAX_RATE", "0"),
            order_number_attempts=max(1, _int_env("ORDER_NUMBER_ATTEMPTS", 3)),
            analytics_top_n=max(1, _int_env("ANALYTICS_TOP_N", 5)),
            currency_by_country=_parse_currency_map(os.getenv("CURRENCY_BY_COUNTRY")),
        )


def get_settings() -> OrderingSettings:
    """Settings for the current process environment."""
    return OrderingSettings.from_env()
