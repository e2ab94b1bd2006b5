"""Address input variants and the resolver that turns them into snapshots.

Callers give an address either by reference to one of the account's stored
addresses, or inline. The two shapes are parsed into distinct types up front
so nothing downstream inspects a dict to guess which one it got.
"""

import json
from dataclasses import dataclass

from ordering.errors import InvalidInput, NotFound
from ordering.order.order import AddressSnapshot

SNAPSHOT_FIELDS = (
    "first_name",
    "last_name",
    "phone",
    "street",
    "city",
    "state",
    "postal_code",
    "country",
)


@dataclass(frozen=True)
class AddressByReference:
    address_id: str


@dataclass(frozen=True)
class InlineAddress:
    fields: dict


@dataclass(frozen=True)
class ResolvedAddress:
    snapshot: AddressSnapshot
    address_id: str | None = None


def parse_address_input(payload, field: str = "shipping_address"):
    """Parse ``{"address_id": ...}`` or ``{"snapshot": {...}}``; exactly one key must be set."""
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError:
            raise InvalidInput({field: ["Address must be a JSON object"]})

    if not isinstance(payload, dict):
        raise InvalidInput({field: ["Address must be an object with address_id or snapshot"]})

    address_id = payload.get("address_id")
    snapshot = payload.get("snapshot")
    if bool(address_id) == bool(snapshot):
        raise InvalidInput({field: ["Provide exactly one of address_id or snapshot"]})

    if address_id:
        return AddressByReference(address_id=str(address_id))

    if not isinstance(snapshot, dict):
        raise InvalidInput({field: ["Address snapshot must be an object"]})
    return InlineAddress(fields={k: snapshot.get(k) for k in SNAPSHOT_FIELDS if snapshot.get(k) is not None})


class AddressSnapshotResolver:
    """Copies an address into an immutable AddressSnapshot for an order."""

    def resolve(self, account, address_input, field="shipping_address", persist_inline=False) -> ResolvedAddress:
        """Resolve against ``account``.

        With ``persist_inline`` an inline address is also stored on the account
        and its new id becomes the reference; the caller must add the account
        to the unit of work.
        """
        if isinstance(address_input, AddressByReference):
            stored = account.owned_address(address_input.address_id)
            if stored is None:
                # Reported as a bad request: the caller sent an id it does not own.
                raise NotFound(
                    {field: [f"Address {address_input.address_id} not found for this account"]},
                    status_code=400,
                )
            fields = {name: getattr(stored, name) for name in SNAPSHOT_FIELDS}
            return ResolvedAddress(snapshot=self._snapshot(fields, field), address_id=str(stored.id))

        if isinstance(address_input, InlineAddress):
            snapshot = self._snapshot(address_input.fields, field)
            if not persist_inline:
                return ResolvedAddress(snapshot=snapshot)
            kind = "billing" if field.startswith("billing") else "shipping"
            stored = account.add_address(type=kind, **address_input.fields)
            return ResolvedAddress(snapshot=snapshot, address_id=str(stored.id))

        raise InvalidInput({field: ["Unsupported address input"]})

    def _snapshot(self, fields: dict, field: str) -> AddressSnapshot:
        missing = [name for name in ("street", "city", "country") if not fields.get(name)]
        if missing:
            raise InvalidInput({field: [f"{name} is required" for name in missing]})
        return AddressSnapshot(**fields)
