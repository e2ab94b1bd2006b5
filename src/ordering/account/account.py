"""Purchasing accounts and their stored addresses.

Account records are owned by the account subsystem. Ordering reads them,
looks them up by email, and creates guest accounts during checkout.
"""

import hashlib
import secrets
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, HasMany, String

from ordering.domain import ordering

_PBKDF2_ITERATIONS = 260_000


class AccountRole(Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    STAFF = "staff"


class AddressType(Enum):
    BILLING = "billing"
    SHIPPING = "shipping"
    BOTH = "both"


def generate_password(length: int = 16) -> str:
    """Random password for guest accounts; never shown or stored in clear."""
    return secrets.token_urlsafe(length)


def hash_password(password: str, salt: str | None = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), _PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${_PBKDF2_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        _, iterations, salt, expected = encoded.split("$")
    except ValueError:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), int(iterations))
    return secrets.compare_digest(digest.hex(), expected)


@ordering.entity(part_of="Account")
class Address:
    """A stored address. Orders copy it into a snapshot; they never reference it live."""

    type: String(choices=AddressType, default=AddressType.BOTH.value)
    first_name: String(max_length=100)
    last_name: String(max_length=100)
    phone: String(max_length=30)
    street: String(required=True, max_length=255)
    city: String(required=True, max_length=100)
    state: String(max_length=100)
    postal_code: String(max_length=20)
    country: String(required=True, max_length=2)
    is_default: Boolean(default=False)
    deleted_at: DateTime()


@ordering.aggregate
class Account:
    email: String(required=True, max_length=254, unique=True)
    password_hash: String(max_length=255)
    first_name: String(max_length=100)
    last_name: String(max_length=100)
    phone: String(max_length=30)
    role: String(choices=AccountRole, default=AccountRole.CUSTOMER.value)
    is_guest: Boolean(default=False)
    addresses: HasMany(Address)
    created_at: DateTime(default=lambda: datetime.now(UTC))

    @invariant.post
    def email_must_look_like_an_address(self):
        email = self.email or ""
        local, _, domain = email.partition("@")
        if not local or "." not in domain or " " in email:
            raise ValidationError({"email": [f"Invalid email address: {email!r}"]})

    @classmethod
    def open_guest(cls, email, first_name=None, last_name=None, phone=None):
        """Guest checkout account with a random, unrecoverable password."""
        return cls(
            email=email.strip().lower(),
            password_hash=hash_password(generate_password()),
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            is_guest=True,
        )

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def owned_address(self, address_id):
        """Live (not soft-deleted) address with ``address_id``, or None."""
        return next(
            (a for a in self.addresses if str(a.id) == str(address_id) and a.deleted_at is None),
            None,
        )

    def add_address(self, is_default=False, **fields):
        live = [a for a in self.addresses if a.deleted_at is None]
        if not live:
            is_default = True

        with atomic_change(self):
            if is_default:
                for addr in live:
                    addr.is_default = False
            address = Address(is_default=is_default, **fields)
            self.add_addresses(address)
        return address


@ordering.repository(part_of=Account)
class AccountRepository:
    def find_by_email(self, email: str) -> Account | None:
        if not email:
            return None
        return self._dao.query.filter(email=email.strip().lower()).all().first

    def find_many(self, account_ids) -> list[Account]:
        ids = [str(aid) for aid in account_ids]
        if not ids:
            return []
        return self._dao.query.filter(id__in=ids).limit(len(ids)).all().items
