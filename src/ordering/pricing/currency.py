"""Settlement currency lookup by shipping country."""

from ordering.config import OrderingSettings, get_settings


class CurrencyResolver:
    """Maps a shipping country code to the currency orders settle in.

    Unmapped or empty countries settle in the base currency.
    """

    def __init__(self, settings: OrderingSettings | None = None):
        self.settings = settings or get_settings()

    def resolve(self, country: str | None) -> str:
        if not country:
            return self.settings.base_currency
        return self.settings.currency_by_country.get(country.strip().upper(), self.settings.base_currency)
