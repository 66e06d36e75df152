"""Verification of permission-context authority chains.

A permission context lists delegations leaf-first. Every non-root entry
must point at the structured hash of the entry that follows it, must have
been issued by that entry's delegate, and the list must end in a root
grant. This mirrors what the DelegationManager checks at redemption time
so broken chains are caught before a transaction is attempted.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from delegation_authority.delegation.hashing import hash_delegation
from delegation_authority.delegation.models import Delegation, DelegationAuthorityError


class DelegationChainError(DelegationAuthorityError):
    """Raised when a permission context violates the authority-chain invariant."""


@dataclass(frozen=True)
class ChainEntry:
    """A single verified link in a permission context.

    Parameters
    ----------
    delegation:
        The delegation at this position.
    depth:
        Distance from the root grant (root = 0).
    delegation_hash:
        Structured hash of ``delegation``.
    """

    delegation: Delegation
    depth: int
    delegation_hash: bytes


def verify_permission_context(
    delegations: Sequence[Delegation], max_depth: int = 2
) -> list[ChainEntry]:
    """Verify the linkage of a decoded permission context.

    Parameters
    ----------
    delegations:
        Decoded context, leaf first.
    max_depth:
        Maximum number of hops below the root grant.

    Returns
    -------
    list[ChainEntry]
        One entry per delegation, in the same (leaf-first) order.

    Raises
    ------
    DelegationChainError
        If the context is empty, a link does not match its parent's hash or
        delegate, a root grant appears before the end, the chain does not
        terminate at a root grant, or the depth limit is exceeded.
    """
    if not delegations:
        raise DelegationChainError("Permission context contains no delegations.")

    depth_of_leaf = len(delegations) - 1
    if depth_of_leaf > max_depth:
        raise DelegationChainError(
            f"Max delegation chain depth ({max_depth}) exceeded: "
            f"context has depth {depth_of_leaf}."
        )

    hashes = [hash_delegation(d) for d in delegations]
    entries: list[ChainEntry] = []
    for index, delegation in enumerate(delegations):
        is_last = index == len(delegations) - 1
        if delegation.is_root:
            if not is_last:
                raise DelegationChainError(
                    f"Root delegation at index {index} is followed by "
                    f"{len(delegations) - index - 1} more entries."
                )
        else:
            if is_last:
                raise DelegationChainError(
                    "Permission context does not terminate at a root delegation."
                )
            parent = delegations[index + 1]
            if delegation.authority != hashes[index + 1]:
                raise DelegationChainError(
                    f"Delegation at index {index} does not reference the hash of "
                    f"its parent at index {index + 1}."
                )
            if delegation.delegator.lower() != parent.delegate.lower():
                raise DelegationChainError(
                    f"Delegation at index {index} was issued by {delegation.delegator}, "
                    f"but its parent delegates to {parent.delegate}."
                )
        entries.append(
            ChainEntry(
                delegation=delegation,
                depth=depth_of_leaf - index,
                delegation_hash=hashes[index],
            )
        )
    return entries


def is_valid_permission_context(delegations: Sequence[Delegation], max_depth: int = 2) -> bool:
    """Return True when :func:`verify_permission_context` would succeed."""
    try:
        verify_permission_context(delegations, max_depth=max_depth)
    except DelegationChainError:
        return False
    return True
