"""Two writers competing for the last units of a product."""

import pytest
from ordering.catalogue.product import Product
from ordering.errors import StockViolation
from protean import current_domain
from protean.exceptions import ExpectedVersionError, ValidationError


@pytest.fixture
def last_unit(make_product):
    return make_product(name="Widget", in_stock=1)


class TestCompetingReservations:
    def test_stale_copy_cannot_overwrite_a_reservation(self, last_unit):
        repo = current_domain.repository_for(Product)
        first = repo.get(str(last_unit.id))
        second = repo.get(str(last_unit.id))

        first.reserve(1)
        second.reserve(1)
        repo.add(first)

        with pytest.raises(ExpectedVersionError):
            repo.add(second)

        stored = repo.get(str(last_unit.id))
        assert stored.in_stock == 0
        assert stored.sale_stock == 1

    def test_fresh_copy_refuses_to_go_negative(self, last_unit):
        repo = current_domain.repository_for(Product)
        product = repo.get(str(last_unit.id))
        product.reserve(1)
        repo.add(product)

        latest = repo.get(str(last_unit.id))
        with pytest.raises(ValidationError):
            latest.reserve(1)
        assert latest.in_stock == 0

    def test_second_order_for_the_last_unit_is_refused(self, last_unit, place):
        place([(last_unit, 1)])

        with pytest.raises(StockViolation):
            place([(last_unit, 1)], email="late@example.com")

        stored = current_domain.repository_for(Product).get(str(last_unit.id))
        assert stored.in_stock == 0
        assert stored.sale_stock == 1
