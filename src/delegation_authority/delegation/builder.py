"""Authority chain builder for agent-to-agent re-delegation.

The chain looks like::

    user smart account --(root)--> primary agent --(sub)--> sub-agent

The primary agent holds a permission context whose head delegates to it.
To hand a bounded slice of that power to a sub-agent it signs a new
delegation whose ``authority`` is the structured hash of that head and
prepends it to the parent context. The sub-agent then redeems
``[sub, *parent_chain]``; the DelegationManager validates caveats across
the whole chain, so the sub-delegation can never exceed its parent.

Building is pure computation. Persisting the result is a separate step
(see :mod:`delegation_authority.store`).
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from eth_utils import encode_hex

from delegation_authority.delegation.caveats import CaveatConfig, build_sub_delegation_caveats
from delegation_authority.delegation.codec import (
    decode_permission_context,
    encode_permission_context_hex,
)
from delegation_authority.delegation.hashing import DelegationDomain, hash_delegation
from delegation_authority.delegation.models import (
    Delegation,
    DelegationAuthorityError,
    normalize_address,
)
from delegation_authority.delegation.signing import DelegationSigner
from delegation_authority.enforcers.table import EnforcerTable

logger = logging.getLogger(__name__)


class NoParentDelegation(DelegationAuthorityError):
    """Raised when the parent permission context decodes to an empty list."""


class DelegateMismatch(DelegationAuthorityError):
    """Raised when the signing key is not the delegate of the parent delegation.

    Parameters
    ----------
    signer_address:
        Address of the key that was asked to sign.
    parent_delegate:
        The ``delegate`` field of the parent delegation.
    """

    def __init__(self, signer_address: str, parent_delegate: str) -> None:
        self.signer_address = signer_address
        self.parent_delegate = parent_delegate
        super().__init__(
            f"Signer {signer_address} is not the delegate of the parent delegation "
            f"({parent_delegate})."
        )


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


@dataclass
class SubDelegationRecord:
    """Result of building a sub-delegation.

    Parameters
    ----------
    parent_hash:
        0x-prefixed structured hash of the parent (head) delegation.
    to:
        Address of the sub-agent receiving the authority.
    delegator:
        Address of the primary agent that signed the sub-delegation.
    chain_id:
        Chain the signature is bound to.
    delegation_manager:
        DelegationManager the signature is bound to.
    created_at:
        Creation time, unix milliseconds (also used as the salt).
    chained_permissions_context:
        Hex-encoded ``[sub_delegation, *parent_chain]``.
    sub_delegation:
        The signed sub-delegation itself.
    limits:
        Optional free-form description of the intended limits (advisory).
    caveat_config:
        The narrowing configuration used, if any.
    """

    parent_hash: str
    to: str
    delegator: str
    chain_id: int
    delegation_manager: str
    created_at: int
    chained_permissions_context: str
    sub_delegation: Delegation
    limits: Optional[dict[str, Any]] = None
    caveat_config: Optional[CaveatConfig] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dictionary suitable for the sub-delegation store.

        ``metadata`` keys never replace the record's own fields.
        """
        return {
            **self.metadata,
            "parentHash": self.parent_hash,
            "to": self.to,
            "delegator": self.delegator,
            "chainId": self.chain_id,
            "delegationManager": self.delegation_manager,
            "createdAt": self.created_at,
            "chainedPermissionsContext": self.chained_permissions_context,
            "subDelegation": self.sub_delegation.to_dict(),
            "limits": self.limits,
            "caveatConfig": (
                self.caveat_config.model_dump(exclude_none=True) if self.caveat_config else None
            ),
        }


def create_sub_delegation(
    parent_context: bytes | str,
    signer: DelegationSigner,
    sub_agent_address: str,
    chain_id: int,
    delegation_manager: str,
    *,
    caveat_config: CaveatConfig | None = None,
    enforcers: EnforcerTable | None = None,
    limits: dict[str, Any] | None = None,
    clock_ms: Callable[[], int] = _now_ms,
) -> SubDelegationRecord:
    """Build and sign a sub-delegation chained onto *parent_context*.

    Parameters
    ----------
    parent_context:
        Permission context held by the primary agent (head delegates to it).
    signer:
        Signing capability of the primary agent.
    sub_agent_address:
        Address that will redeem the new delegation.
    chain_id:
        Chain id of the EIP-712 domain.
    delegation_manager:
        DelegationManager address, the domain's verifying contract.
    caveat_config:
        Optional narrowing. Requires *enforcers* to resolve enforcer addresses.
    enforcers:
        Enforcer table of the chain, used only when *caveat_config* is given.
    limits:
        Advisory description stored with the record.
    clock_ms:
        Source of the creation time / salt in unix milliseconds.

    Returns
    -------
    SubDelegationRecord

    Raises
    ------
    EmptyPermissionContext, MalformedPermissionContext
        If *parent_context* cannot be decoded.
    NoParentDelegation
        If *parent_context* holds no delegations.
    DelegateMismatch
        If *signer* is not the delegate of the parent head.
    """
    parent_chain = decode_permission_context(parent_context)
    if not parent_chain:
        raise NoParentDelegation("Parent permission context contains no delegations.")

    parent = parent_chain[0]
    parent_hash = hash_delegation(parent)

    if signer.address.lower() != parent.delegate.lower():
        raise DelegateMismatch(signer.address, parent.delegate)

    logger.info("sub-delegation parent=%s", encode_hex(parent_hash)[:18])

    caveats = []
    if caveat_config is not None:
        if enforcers is None:
            raise ValueError("An enforcer table is required to build narrowing caveats.")
        caveats = build_sub_delegation_caveats(caveat_config, enforcers)

    created_at = clock_ms()
    unsigned = Delegation(
        delegate=normalize_address(sub_agent_address, "sub_agent_address"),
        delegator=signer.address,
        authority=parent_hash,
        caveats=tuple(caveats),
        salt=created_at,
    )
    domain = DelegationDomain(chain_id=chain_id, verifying_contract=delegation_manager)
    sub_delegation = unsigned.with_signature(signer.sign_delegation(unsigned, domain))

    chained = encode_permission_context_hex([sub_delegation, *parent_chain])

    logger.info(
        "sub-delegation created delegate=%s caveats=%d chain_id=%d",
        sub_delegation.delegate,
        len(caveats),
        domain.chain_id,
    )

    return SubDelegationRecord(
        parent_hash=encode_hex(parent_hash),
        to=sub_delegation.delegate,
        delegator=sub_delegation.delegator,
        chain_id=domain.chain_id,
        delegation_manager=domain.verifying_contract,
        created_at=created_at,
        chained_permissions_context=chained,
        sub_delegation=sub_delegation,
        limits=limits,
        caveat_config=caveat_config,
    )
