"""Known caveat enforcer roles and the address table that identifies them.

Enforcer identification is strictly table-driven: a caveat's role is the
role registered for its ``enforcer`` address on the chain in question, and
nothing else. Addresses live in configuration (see
:mod:`delegation_authority.config`), never in matching logic.
"""
from __future__ import annotations

from enum import Enum
from typing import Iterator, Mapping

from delegation_authority.delegation.models import normalize_address


class EnforcerRole(str, Enum):
    """Caveat enforcers this package knows how to interpret."""

    NATIVE_TOKEN_PERIOD_TRANSFER = "NativeTokenPeriodTransferEnforcer"
    ERC20_PERIOD_TRANSFER = "ERC20PeriodTransferEnforcer"
    ERC20_TRANSFER_AMOUNT = "ERC20TransferAmountEnforcer"
    TIMESTAMP = "TimestampEnforcer"
    ALLOWED_TARGETS = "AllowedTargetsEnforcer"


#: Roles whose remaining allowance can be read live from the enforcer.
PERIOD_TRANSFER_ROLES: frozenset[EnforcerRole] = frozenset(
    {EnforcerRole.NATIVE_TOKEN_PERIOD_TRANSFER, EnforcerRole.ERC20_PERIOD_TRANSFER}
)


class EnforcerTable:
    """Bidirectional mapping between enforcer roles and addresses for one chain.

    Parameters
    ----------
    addresses:
        Mapping of role (or role name) to enforcer address. Roles may be
        omitted; an unregistered role simply never matches.
    """

    def __init__(self, addresses: Mapping[EnforcerRole | str, str]) -> None:
        self._by_role: dict[EnforcerRole, str] = {}
        self._by_address: dict[str, EnforcerRole] = {}
        for key, address in addresses.items():
            role = EnforcerRole(key)
            checksummed = normalize_address(address, f"{role.value} address")
            if checksummed.lower() in self._by_address:
                other = self._by_address[checksummed.lower()]
                raise ValueError(
                    f"Address {checksummed} is registered for both {other.value} and {role.value}."
                )
            self._by_role[role] = checksummed
            self._by_address[checksummed.lower()] = role

    def role_of(self, enforcer_address: str) -> EnforcerRole | None:
        """Return the role registered for *enforcer_address*, or None."""
        return self._by_address.get(enforcer_address.lower())

    def address_of(self, role: EnforcerRole) -> str:
        """Return the address registered for *role*.

        Raises
        ------
        KeyError
            If the role has no address on this chain.
        """
        try:
            return self._by_role[role]
        except KeyError:
            raise KeyError(f"No enforcer address configured for {role.value}.") from None

    def has_role(self, role: EnforcerRole) -> bool:
        return role in self._by_role

    def __iter__(self) -> Iterator[tuple[EnforcerRole, str]]:
        return iter(self._by_role.items())

    def __len__(self) -> int:
        return len(self._by_role)

    def to_dict(self) -> dict[str, str]:
        return {role.value: address for role, address in self._by_role.items()}
