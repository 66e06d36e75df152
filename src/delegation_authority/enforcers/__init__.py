"""Caveat enforcers: role table, terms payloads, chain reads and allowances."""
from __future__ import annotations

from delegation_authority.enforcers.allowance import (
    AllowanceReport,
    AllowanceSource,
    TokenAllowance,
    query_all_allowances,
    query_chain_allowance,
    query_remaining_allowance,
)
from delegation_authority.enforcers.reader import (
    ChainMismatchError,
    ChainQueryFailed,
    ChainQueryTimeout,
    ChainReader,
    ChainReaderRegistry,
    PeriodTransferAmount,
    UnrecognizedEnforcer,
    Web3ChainReader,
    call_with_timeout,
)
from delegation_authority.enforcers.table import PERIOD_TRANSFER_ROLES, EnforcerRole, EnforcerTable
from delegation_authority.enforcers.terms import (
    MAX_PLAUSIBLE_TIMESTAMP,
    MalformedTerms,
    PeriodTransferTerms,
    TransferAmountTerms,
    decode_expiration,
)

__all__ = [
    "AllowanceReport",
    "AllowanceSource",
    "ChainMismatchError",
    "ChainQueryFailed",
    "ChainQueryTimeout",
    "ChainReader",
    "ChainReaderRegistry",
    "EnforcerRole",
    "EnforcerTable",
    "MAX_PLAUSIBLE_TIMESTAMP",
    "MalformedTerms",
    "PERIOD_TRANSFER_ROLES",
    "PeriodTransferAmount",
    "PeriodTransferTerms",
    "TokenAllowance",
    "TransferAmountTerms",
    "UnrecognizedEnforcer",
    "Web3ChainReader",
    "call_with_timeout",
    "decode_expiration",
    "query_all_allowances",
    "query_chain_allowance",
    "query_remaining_allowance",
]
