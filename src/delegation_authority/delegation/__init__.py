"""Delegation records, hashing, wire codec, signing and chain building.

Quick start
-----------
::

    from delegation_authority.delegation import (
        LocalAccountSigner,
        create_sub_delegation,
        decode_permission_context,
        hash_delegation,
    )

    parent = decode_permission_context(parent_context)[0]
    record = create_sub_delegation(
        parent_context,
        LocalAccountSigner(agent_key),
        sub_agent_address,
        chain_id=11155111,
        delegation_manager=manager_address,
    )
    assert record.sub_delegation.authority == hash_delegation(parent)
"""
from __future__ import annotations

from delegation_authority.delegation.builder import (
    DelegateMismatch,
    NoParentDelegation,
    SubDelegationRecord,
    create_sub_delegation,
)
from delegation_authority.delegation.caveats import (
    FREQUENCY_TO_SECONDS,
    CaveatConfig,
    build_sub_delegation_caveats,
)
from delegation_authority.delegation.chain import (
    ChainEntry,
    DelegationChainError,
    is_valid_permission_context,
    verify_permission_context,
)
from delegation_authority.delegation.codec import (
    EmptyPermissionContext,
    MalformedPermissionContext,
    decode_permission_context,
    encode_permission_context,
    encode_permission_context_hex,
    first_delegation,
)
from delegation_authority.delegation.hashing import (
    DelegationDomain,
    hash_caveat,
    hash_caveats,
    hash_delegation,
    typed_data_digest,
)
from delegation_authority.delegation.models import (
    ROOT_AUTHORITY,
    Caveat,
    Delegation,
    DelegationAuthorityError,
    MalformedDelegation,
)
from delegation_authority.delegation.signing import (
    DelegationSigner,
    LocalAccountSigner,
    SignatureMismatch,
    recover_delegation_signer,
    verify_delegation_signature,
)

__all__ = [
    "Caveat",
    "CaveatConfig",
    "ChainEntry",
    "DelegateMismatch",
    "Delegation",
    "DelegationAuthorityError",
    "DelegationChainError",
    "DelegationDomain",
    "DelegationSigner",
    "EmptyPermissionContext",
    "FREQUENCY_TO_SECONDS",
    "LocalAccountSigner",
    "MalformedDelegation",
    "MalformedPermissionContext",
    "NoParentDelegation",
    "ROOT_AUTHORITY",
    "SignatureMismatch",
    "SubDelegationRecord",
    "build_sub_delegation_caveats",
    "create_sub_delegation",
    "decode_permission_context",
    "encode_permission_context",
    "encode_permission_context_hex",
    "first_delegation",
    "hash_caveat",
    "hash_caveats",
    "hash_delegation",
    "is_valid_permission_context",
    "recover_delegation_signer",
    "typed_data_digest",
    "verify_delegation_signature",
    "verify_permission_context",
]
