"""delegation-authority: scoped, re-delegatable spending authority for agents.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import delegation_authority
>>> delegation_authority.__version__
'0.1.0'

Quick start
-----------
::

    from delegation_authority import (
        # Delegation records and chains
        Delegation, Caveat, hash_delegation, decode_permission_context,
        create_sub_delegation, LocalAccountSigner,
        # Enforcer state
        Web3ChainReader, query_all_allowances,
        # Limits and diagnosis
        DelegationGrant, check_delegation_limits, diagnose,
        # Storage
        FilesystemSubDelegationStore,
    )
"""
from __future__ import annotations

__version__: str = "0.1.0"

# ------------------------------------------------------------------
# Delegation records, hashing, codec, signing, chain building
# ------------------------------------------------------------------
from delegation_authority.delegation import (
    ROOT_AUTHORITY,
    Caveat,
    CaveatConfig,
    ChainEntry,
    DelegateMismatch,
    Delegation,
    DelegationAuthorityError,
    DelegationChainError,
    DelegationDomain,
    DelegationSigner,
    EmptyPermissionContext,
    LocalAccountSigner,
    MalformedDelegation,
    MalformedPermissionContext,
    NoParentDelegation,
    SignatureMismatch,
    SubDelegationRecord,
    create_sub_delegation,
    decode_permission_context,
    encode_permission_context,
    encode_permission_context_hex,
    hash_delegation,
    recover_delegation_signer,
    verify_delegation_signature,
    verify_permission_context,
)

# ------------------------------------------------------------------
# Enforcers and chain state
# ------------------------------------------------------------------
from delegation_authority.enforcers import (
    AllowanceReport,
    AllowanceSource,
    ChainMismatchError,
    ChainQueryFailed,
    ChainQueryTimeout,
    ChainReader,
    ChainReaderRegistry,
    EnforcerRole,
    EnforcerTable,
    PeriodTransferAmount,
    TokenAllowance,
    UnrecognizedEnforcer,
    Web3ChainReader,
    query_all_allowances,
    query_chain_allowance,
    query_remaining_allowance,
)

# ------------------------------------------------------------------
# Scopes, limits, diagnosis
# ------------------------------------------------------------------
from delegation_authority.scopes import Erc20PeriodScope, Erc20TotalScope, NativePeriodScope, parse_scope
from delegation_authority.limits import (
    DelegationGrant,
    LimitsReport,
    LimitStatus,
    PreflightDecision,
    PreflightResult,
    check_delegation_limits,
    check_limits_before_transaction,
    format_time_remaining,
)
from delegation_authority.diagnosis import Diagnosis, DiagnosisCode, diagnose, extract_revert_reason

# ------------------------------------------------------------------
# Storage, audit, configuration
# ------------------------------------------------------------------
from delegation_authority.store import (
    FilesystemSubDelegationStore,
    InMemorySubDelegationStore,
    SubDelegationStore,
)
from delegation_authority.audit import AuditEvent, DelegationAuditLogger
from delegation_authority.config import ChainConfig, RuntimeSettings, get_chain_config, get_rpc_url

__all__ = [
    "__version__",
    # Delegation
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
    "LocalAccountSigner",
    "MalformedDelegation",
    "MalformedPermissionContext",
    "NoParentDelegation",
    "ROOT_AUTHORITY",
    "SignatureMismatch",
    "SubDelegationRecord",
    "create_sub_delegation",
    "decode_permission_context",
    "encode_permission_context",
    "encode_permission_context_hex",
    "hash_delegation",
    "recover_delegation_signer",
    "verify_delegation_signature",
    "verify_permission_context",
    # Enforcers
    "AllowanceReport",
    "AllowanceSource",
    "ChainMismatchError",
    "ChainQueryFailed",
    "ChainQueryTimeout",
    "ChainReader",
    "ChainReaderRegistry",
    "EnforcerRole",
    "EnforcerTable",
    "PeriodTransferAmount",
    "TokenAllowance",
    "UnrecognizedEnforcer",
    "Web3ChainReader",
    "query_all_allowances",
    "query_chain_allowance",
    "query_remaining_allowance",
    # Scopes, limits, diagnosis
    "DelegationGrant",
    "Diagnosis",
    "DiagnosisCode",
    "Erc20PeriodScope",
    "Erc20TotalScope",
    "LimitStatus",
    "LimitsReport",
    "NativePeriodScope",
    "PreflightDecision",
    "PreflightResult",
    "check_delegation_limits",
    "check_limits_before_transaction",
    "diagnose",
    "extract_revert_reason",
    "format_time_remaining",
    "parse_scope",
    # Storage, audit, config
    "AuditEvent",
    "ChainConfig",
    "DelegationAuditLogger",
    "FilesystemSubDelegationStore",
    "InMemorySubDelegationStore",
    "RuntimeSettings",
    "SubDelegationStore",
    "get_chain_config",
    "get_rpc_url",
]
