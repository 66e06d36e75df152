"""Remaining-allowance queries against caveat enforcers.

For each token a grant covers there is a separate permission context with
its own caveats, so every token has its own remaining allowance and its own
expiration. :func:`query_chain_allowance` interprets one token's whole
permission context, taking the tightest limit along the chain;
:func:`query_all_allowances` fans out over every token of a grant.

Live enforcer state is the only authoritative answer to "how much is left".
When it cannot be read, the stored scope is used instead and the result is
marked ``source=storedScope``. When neither is available the result says
so; no number is ever made up.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from delegation_authority.delegation.codec import (
    MalformedPermissionContext,
    decode_permission_context,
)
from delegation_authority.delegation.models import Caveat, Delegation, DelegationAuthorityError
from delegation_authority.enforcers.reader import (
    ChainQueryFailed,
    ChainReader,
    PeriodTransferAmount,
    call_with_timeout,
)
from delegation_authority.enforcers.table import PERIOD_TRANSFER_ROLES, EnforcerRole, EnforcerTable
from delegation_authority.enforcers.terms import (
    MalformedTerms,
    decode_erc20_amount_terms,
    decode_erc20_period_terms,
    decode_expiration,
    decode_native_period_terms,
)
from delegation_authority.scopes import NATIVE_ASSET_KEY, Scope, find_scope

logger = logging.getLogger(__name__)


class AllowanceSource(str, Enum):
    """Where an allowance figure came from."""

    LIVE_QUERY = "liveQuery"
    STORED_SCOPE = "storedScope"
    UNKNOWN = "unknown"


@dataclass
class TokenAllowance:
    """Remaining allowance of one token under one permission context.

    ``available_amount`` is only ever set from a successful live query. A
    stored-scope fallback fills ``configured_amount`` instead.
    """

    asset_key: str
    enforcer: Optional[EnforcerRole] = None
    token_address: Optional[str] = None
    available_amount: Optional[int] = None
    is_new_period: Optional[bool] = None
    current_period: Optional[int] = None
    query_success: bool = False
    error: Optional[str] = None
    source: AllowanceSource = AllowanceSource.UNKNOWN
    expires_at: Optional[int] = None
    expires_at_source: Optional[str] = None
    configured_amount: Optional[int] = None
    period_duration: Optional[int] = None
    resets_at: Optional[int] = None
    unrecognized_enforcers: list[str] = field(default_factory=list)

    @property
    def is_native(self) -> bool:
        return self.asset_key == NATIVE_ASSET_KEY

    @property
    def is_live(self) -> bool:
        return self.query_success and self.source is AllowanceSource.LIVE_QUERY

    def to_dict(self) -> dict[str, Any]:
        return {
            "assetKey": self.asset_key,
            "enforcer": self.enforcer.value if self.enforcer else None,
            "tokenAddress": self.token_address,
            "availableAmount": (
                str(self.available_amount) if self.available_amount is not None else None
            ),
            "isNewPeriod": self.is_new_period,
            "currentPeriod": self.current_period,
            "querySuccess": self.query_success,
            "error": self.error,
            "source": self.source.value,
            "expiresAt": self.expires_at,
            "expiresAtSource": self.expires_at_source,
            "configuredAmount": (
                str(self.configured_amount) if self.configured_amount is not None else None
            ),
            "periodDuration": self.period_duration,
            "resetsAt": self.resets_at,
            "unrecognizedEnforcers": list(self.unrecognized_enforcers),
        }


@dataclass
class AllowanceReport:
    """Per-token allowances of one grant, keyed by asset key."""

    allowances: dict[str, TokenAllowance] = field(default_factory=dict)

    @property
    def expirations(self) -> dict[str, int]:
        return {
            key: allowance.expires_at
            for key, allowance in self.allowances.items()
            if allowance.expires_at is not None
        }

    @property
    def has_multiple_expirations(self) -> bool:
        """True when at least two tokens expire at different times."""
        return len(set(self.expirations.values())) > 1

    @property
    def any_live(self) -> bool:
        return any(a.is_live for a in self.allowances.values())

    def get(self, asset_key: str) -> TokenAllowance | None:
        return self.allowances.get(asset_key.lower())

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowances": {k: a.to_dict() for k, a in self.allowances.items()},
            "hasMultipleExpirations": self.has_multiple_expirations,
        }


def _apply_period_terms(
    allowance: TokenAllowance, role: EnforcerRole, terms: bytes, now: int
) -> None:
    if role is EnforcerRole.NATIVE_TOKEN_PERIOD_TRANSFER:
        decoded = decode_native_period_terms(terms)
    else:
        decoded = decode_erc20_period_terms(terms)
        allowance.token_address = decoded.token_address
    allowance.configured_amount = decoded.period_amount
    allowance.period_duration = decoded.period_duration
    allowance.resets_at = decoded.next_reset(now)


def _apply_scope_fallback(allowance: TokenAllowance, scope: Scope) -> None:
    allowance.source = AllowanceSource.STORED_SCOPE
    if allowance.configured_amount is None:
        allowance.configured_amount = scope.configured_amount
    if allowance.period_duration is None:
        allowance.period_duration = scope.period_duration_seconds
    if allowance.token_address is None:
        allowance.token_address = scope.token_address
    if allowance.expires_at is None and scope.expires_at is not None:
        allowance.expires_at = scope.expires_at
        allowance.expires_at_source = AllowanceSource.STORED_SCOPE.value


@dataclass(frozen=True)
class _PeriodHop:
    """One period-transfer caveat and the chain entry that carries it."""

    delegation: Delegation
    caveat: Caveat
    role: EnforcerRole


def _read_hop(hop: _PeriodHop, chain_reader: ChainReader, timeout: float | None) -> PeriodTransferAmount:
    label = f"{hop.role.value} query"
    try:
        return call_with_timeout(
            lambda: chain_reader.get_period_transfer_available_amount(
                hop.caveat.enforcer, hop.delegation
            ),
            timeout,
            label=label,
        )
    except DelegationAuthorityError:
        raise
    except Exception as exc:
        # Readers are injected and may raise transport errors of any type.
        raise ChainQueryFailed(f"{label} failed: {exc}") from exc


def _read_period_hops(
    allowance: TokenAllowance,
    hops: Sequence[_PeriodHop],
    chain_reader: ChainReader,
    timeout: float | None,
    now: int,
) -> None:
    readings: list[tuple[_PeriodHop, PeriodTransferAmount]] = []
    for hop in hops:
        try:
            readings.append((hop, _read_hop(hop, chain_reader, timeout)))
        except DelegationAuthorityError as exc:
            allowance.error = str(exc)
            logger.warning(
                "allowance query failed asset=%s enforcer=%s: %s",
                allowance.asset_key,
                hop.role.value,
                exc,
            )
            break

    binding = hops[0]
    state: PeriodTransferAmount | None = None
    if allowance.error is None:
        # Ties resolve to the entry nearest the head.
        binding, state = min(readings, key=lambda reading: reading[1].available_amount)

    allowance.enforcer = binding.role
    try:
        _apply_period_terms(allowance, binding.role, binding.caveat.terms, now)
    except MalformedTerms as exc:
        logger.debug("bad %s terms: %s", binding.role.value, exc)

    if state is None:
        return
    allowance.available_amount = state.available_amount
    allowance.is_new_period = state.is_new_period
    allowance.current_period = state.current_period
    allowance.query_success = True
    allowance.source = AllowanceSource.LIVE_QUERY
    logger.debug(
        "allowance asset=%s available=%d new_period=%s hops=%d",
        allowance.asset_key,
        state.available_amount,
        state.is_new_period,
        len(readings),
    )


def query_chain_allowance(
    delegations: Sequence[Delegation],
    enforcers: EnforcerTable,
    chain_reader: ChainReader,
    *,
    asset_key: str = NATIVE_ASSET_KEY,
    stored_scope: Scope | None = None,
    timeout: float | None = None,
    now: int | None = None,
) -> TokenAllowance:
    """Read what a whole permission context still allows.

    Every entry of a chain bounds the entries below it, so each
    period-transfer caveat along the chain is queried against its own
    delegation and the smallest remaining amount is reported. The expiration
    is the earliest plausible timestamp bound on any entry. If any hop cannot
    be read, the figure is not live and the stored scope is used instead.

    Parameters
    ----------
    delegations:
        Decoded permission context, head (the delegation the executor will
        redeem) first.
    enforcers:
        Enforcer table of the chain the delegations live on.
    chain_reader:
        Read-only chain access for the same chain.
    asset_key:
        ``"native"`` or the lowercased token address the context belongs to.
    stored_scope:
        Advisory scope used when no live figure can be obtained.
    timeout:
        Upper bound in seconds on each chain call. None waits indefinitely.
    now:
        Current unix time, for period reset computation.

    Returns
    -------
    TokenAllowance
        Never raises for chain failures; they are recorded in ``error``.
    """
    now = int(time.time()) if now is None else now
    allowance = TokenAllowance(asset_key=asset_key.lower())
    hops: list[_PeriodHop] = []

    for delegation in delegations:
        for caveat in delegation.caveats:
            role = enforcers.role_of(caveat.enforcer)
            if role is None:
                allowance.unrecognized_enforcers.append(caveat.enforcer)
                logger.debug("unrecognized enforcer %s on %s", caveat.enforcer, allowance.asset_key)
            elif role is EnforcerRole.TIMESTAMP:
                expires_at = decode_expiration(caveat.terms)
                if expires_at is None:
                    logger.debug("ignoring implausible timestamp terms on %s", allowance.asset_key)
                elif allowance.expires_at is None or expires_at < allowance.expires_at:
                    allowance.expires_at = expires_at
                    allowance.expires_at_source = "delegationContext"
            elif role is EnforcerRole.ERC20_TRANSFER_AMOUNT:
                if allowance.enforcer is None:
                    allowance.enforcer = role
                try:
                    total = decode_erc20_amount_terms(caveat.terms)
                except MalformedTerms as exc:
                    logger.debug("bad %s terms: %s", role.value, exc)
                    continue
                allowance.token_address = total.token_address
                if allowance.configured_amount is None or total.max_amount < allowance.configured_amount:
                    allowance.configured_amount = total.max_amount
            elif role in PERIOD_TRANSFER_ROLES:
                hops.append(_PeriodHop(delegation, caveat, role))

    if hops:
        _read_period_hops(allowance, hops, chain_reader, timeout, now)

    if not allowance.query_success and stored_scope is not None:
        _apply_scope_fallback(allowance, stored_scope)
        logger.warning("using stored scope for %s", allowance.asset_key)

    return allowance


def query_remaining_allowance(
    delegation: Delegation,
    enforcers: EnforcerTable,
    chain_reader: ChainReader,
    *,
    asset_key: str = NATIVE_ASSET_KEY,
    stored_scope: Scope | None = None,
    timeout: float | None = None,
    now: int | None = None,
) -> TokenAllowance:
    """Interpret the caveats of a single *delegation* and read its live allowance.

    Equivalent to :func:`query_chain_allowance` over a one-entry chain. Use
    that function for a decoded permission context so ancestors' limits and
    expirations are taken into account.
    """
    return query_chain_allowance(
        [delegation],
        enforcers,
        chain_reader,
        asset_key=asset_key,
        stored_scope=stored_scope,
        timeout=timeout,
        now=now,
    )


def _failed_allowance(asset_key: str, error: str, scope: Scope | None) -> TokenAllowance:
    allowance = TokenAllowance(asset_key=asset_key, error=error)
    if scope is not None:
        _apply_scope_fallback(allowance, scope)
    return allowance


def _query_context(
    asset_key: str,
    context: bytes | str,
    enforcers: EnforcerTable,
    chain_reader: ChainReader,
    scope: Scope | None,
    timeout: float | None,
    now: int | None,
) -> TokenAllowance:
    try:
        delegations = decode_permission_context(context)
    except MalformedPermissionContext as exc:
        logger.warning("permission context decode failed asset=%s: %s", asset_key, exc)
        return _failed_allowance(asset_key, f"Malformed permission context: {exc}", scope)
    if not delegations:
        return _failed_allowance(asset_key, "Permission context holds no delegations.", scope)
    return query_chain_allowance(
        delegations,
        enforcers,
        chain_reader,
        asset_key=asset_key,
        stored_scope=scope,
        timeout=timeout,
        now=now,
    )


def query_all_allowances(
    contexts: Mapping[str, bytes | str | None],
    enforcers: EnforcerTable,
    chain_reader: ChainReader,
    *,
    scopes: Sequence[Scope] = (),
    timeout: float | None = None,
    max_workers: int = 4,
    now: int | None = None,
) -> AllowanceReport:
    """Query every token's permission context concurrently.

    Parameters
    ----------
    contexts:
        Mapping of asset key (``"native"`` or token address) to that
        token's permission context. Missing or ``"0x"`` contexts are skipped.
    scopes:
        Stored scopes, matched to contexts by asset key.
    max_workers:
        Size of the thread pool used for the fan-out.

    Returns
    -------
    AllowanceReport
        One entry per non-empty context. A failure for one token is recorded
        on that token and never affects the others.
    """
    scope_list = list(scopes)
    jobs: dict[str, bytes | str] = {}
    for key, context in contexts.items():
        if context is None or context in (b"", "", "0x"):
            continue
        jobs[key.lower()] = context

    report = AllowanceReport()
    if not jobs:
        return report

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(jobs)))) as pool:
        futures = {
            key: pool.submit(
                _query_context,
                key,
                context,
                enforcers,
                chain_reader,
                find_scope(scope_list, key),
                timeout,
                now,
            )
            for key, context in jobs.items()
        }
        for key, future in futures.items():
            try:
                report.allowances[key] = future.result()
            except Exception as exc:
                logger.warning("allowance query aborted asset=%s: %s", key, exc)
                report.allowances[key] = _failed_allowance(key, str(exc), find_scope(scope_list, key))

    if report.has_multiple_expirations:
        logger.debug("tokens expire at different times: %s", report.expirations)
    return report
