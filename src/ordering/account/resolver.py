"""Find-or-create of the purchasing account."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from ordering.account.account import Account
from ordering.domain import logger
from ordering.errors import InvalidInput, NotFound


class AccountResolver:
    """Resolves who an order belongs to.

    An authenticated identity wins. Otherwise the account is looked up by
    email and, failing that, a guest account is opened. Returns
    ``(account, created)``; a created account is persisted by the caller in
    the same unit of work as the order, so a failed order leaves no account
    behind.
    """

    def __init__(self, repository=None):
        self._repository = repository

    @property
    def repository(self):
        return self._repository or current_domain.repository_for(Account)

    def resolve(self, account_id=None, email=None, first_name=None, last_name=None, phone=None):
        if account_id:
            try:
                return self.repository.get(str(account_id)), False
            except ObjectNotFoundError:
                raise NotFound({"account_id": [f"Account {account_id} does not exist"]})

        if not email:
            raise InvalidInput({"email": ["Email is required when no account is signed in"]})

        account = self.repository.find_by_email(email)
        if account is not None:
            return account, False

        account = Account.open_guest(email, first_name=first_name, last_name=last_name, phone=phone)
        logger.info("guest_account_opened", account_id=str(account.id))
        return account, True
