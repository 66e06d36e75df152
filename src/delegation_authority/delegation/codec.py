"""Permission context codec.

A permission context is the ABI encoding of ``Delegation[]``::

    tuple(address,address,bytes32,tuple(address,bytes,bytes)[],uint256,bytes)[]

ordered from the delegation the executor redeems (index 0) back to the root
grant. ``"0x"`` / empty input means "no permission configured" and is
reported as :class:`EmptyPermissionContext`, which is distinct from a
well-formed encoding of an empty list.
"""
from __future__ import annotations

from typing import Iterable, Sequence

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import encode_hex

from delegation_authority.delegation.models import (
    Caveat,
    Delegation,
    DelegationAuthorityError,
    MalformedDelegation,
    normalize_bytes,
)

PERMISSION_CONTEXT_TYPE: str = "(address,address,bytes32,(address,bytes,bytes)[],uint256,bytes)[]"


class EmptyPermissionContext(DelegationAuthorityError):
    """Raised when a permission context is absent, empty or ``"0x"``."""


class MalformedPermissionContext(DelegationAuthorityError):
    """Raised when bytes do not decode as a ``Delegation[]`` encoding."""


def _to_tuple(d: Delegation) -> tuple[object, ...]:
    return (
        d.delegate,
        d.delegator,
        d.authority,
        [(c.enforcer, c.terms, c.args) for c in d.caveats],
        d.salt,
        d.signature,
    )


def encode_permission_context(delegations: Iterable[Delegation]) -> bytes:
    """ABI-encode *delegations* as a permission context."""
    return encode([PERMISSION_CONTEXT_TYPE], [[_to_tuple(d) for d in delegations]])


def encode_permission_context_hex(delegations: Iterable[Delegation]) -> str:
    """Same as :func:`encode_permission_context` but 0x-prefixed hex."""
    return encode_hex(encode_permission_context(delegations))


def decode_permission_context(context: bytes | str | None) -> list[Delegation]:
    """Decode a permission context into its delegations.

    Parameters
    ----------
    context:
        Raw bytes or a 0x-prefixed hex string.

    Returns
    -------
    list[Delegation]
        Delegations in context order (index 0 is the one to redeem).

    Raises
    ------
    EmptyPermissionContext
        If *context* is None, empty or ``"0x"``.
    MalformedPermissionContext
        If the bytes are not a valid encoding. Decoding never partially
        succeeds.
    """
    if context is None:
        raise EmptyPermissionContext("Permission context is empty.")
    try:
        raw = normalize_bytes(context, "permission context")
    except MalformedDelegation as exc:
        raise MalformedPermissionContext(str(exc)) from exc
    if not raw:
        raise EmptyPermissionContext("Permission context is empty.")

    try:
        (entries,) = decode([PERMISSION_CONTEXT_TYPE], raw)
        return [
            Delegation(
                delegate=delegate,
                delegator=delegator,
                authority=authority,
                caveats=tuple(Caveat(enforcer, terms, args) for enforcer, terms, args in caveats),
                salt=salt,
                signature=signature,
            )
            for delegate, delegator, authority, caveats, salt, signature in entries
        ]
    except (DecodingError, MalformedDelegation, ValueError, TypeError) as exc:
        raise MalformedPermissionContext(
            f"Permission context is not a valid Delegation[] encoding: {exc}"
        ) from exc


def first_delegation(context: bytes | str | None) -> Delegation | None:
    """Return element 0 of a decoded context, or None for an empty list."""
    delegations: Sequence[Delegation] = decode_permission_context(context)
    return delegations[0] if delegations else None
