"""Storefronts (websites) that orders are tagged with."""

from protean.fields import String
from protean.utils.globals import current_domain

from ordering.domain import ordering


@ordering.aggregate
class Storefront:
    name = String(required=True, max_length=100)
    host = String(required=True, max_length=255, unique=True)

    @classmethod
    def register(cls, name, host):
        return cls(name=name, host=normalize_host(host))


@ordering.repository(part_of=Storefront)
class StorefrontRepository:
    def find_by_host(self, host: str) -> Storefront | None:
        return self._dao.query.filter(host=host).all().first


def normalize_host(host: str | None) -> str | None:
    """``Shop.Example.com:8443`` → ``shop.example.com``."""
    if not host:
        return None
    return host.split(":", 1)[0].strip().lower() or None


class StorefrontResolver:
    """Maps a request host to a storefront id; pure lookup."""

    def __init__(self, repository=None):
        self._repository = repository

    @property
    def repository(self):
        return self._repository or current_domain.repository_for(Storefront)

    def resolve(self, host: str | None) -> str | None:
        host = normalize_host(host)
        if host is None:
            return None
        storefront = self.repository.find_by_host(host)
        return str(storefront.id) if storefront else None
