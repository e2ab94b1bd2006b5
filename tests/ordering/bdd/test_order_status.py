"""BDD tests for order and payment status changes."""

from pytest_bdd import scenarios

scenarios("features/order_status.feature")
