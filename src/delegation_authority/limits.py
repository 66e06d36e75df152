"""Spending-limit reports for a wallet grant and the pre-transaction check.

:func:`check_delegation_limits` turns a stored grant into a
:class:`LimitsReport`: one allowance per token, each with its own
expiration, plus human-readable summary lines. The report never presents
a stored-scope figure as live and never invents an amount; when nothing
could be confirmed it says so.

:func:`check_limits_before_transaction` answers "may this amount be spent
right now" from a report. Only a live figure can produce ``ALLOW``.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from delegation_authority.enforcers.allowance import (
    AllowanceReport,
    AllowanceSource,
    TokenAllowance,
    query_all_allowances,
)
from delegation_authority.enforcers.reader import ChainReader
from delegation_authority.enforcers.table import EnforcerRole, EnforcerTable
from delegation_authority.scopes import NATIVE_ASSET_KEY, Scope, find_scope, parse_scope

logger = logging.getLogger(__name__)

LIMITS_UNKNOWN_MESSAGE = "limits unknown: could not verify"

_NATIVE_SYMBOLS = {"", "eth", "native"}


class LimitStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    LIMITS_UNKNOWN = "LIMITS_UNKNOWN"
    NO_LIMITS_CONFIGURED = "NO_LIMITS_CONFIGURED"


class PreflightDecision(str, Enum):
    ALLOW = "ALLOW"
    BLOCK = "BLOCK"
    UNVERIFIED = "UNVERIFIED"


class DelegationGrant(BaseModel):
    """A wallet's stored permission grant.

    ``all_permission_contexts`` maps ``"native"`` and each token address to
    that token's own permission context. Older grants only carry
    ``permissions_context``, which is then treated as the native context.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    wallet_address: str
    permissions_context: Optional[str] = None
    all_permission_contexts: dict[str, str] = Field(default_factory=dict)
    delegation_manager: Optional[str] = None
    chain_id: int = 11155111
    expires_at: Optional[int] = None
    scopes: list[Scope] = Field(default_factory=list)

    @field_validator("scopes", mode="before")
    @classmethod
    def _parse_scopes(cls, value: Any) -> Any:
        if value is None:
            return []
        return [parse_scope(item) if isinstance(item, dict) else item for item in value]

    def contexts(self) -> dict[str, str]:
        """Return the per-token permission contexts keyed by asset key."""
        if self.all_permission_contexts:
            return {key.lower(): ctx for key, ctx in self.all_permission_contexts.items()}
        if self.permissions_context:
            return {NATIVE_ASSET_KEY: self.permissions_context}
        return {}


def format_time_remaining(seconds: int) -> str:
    """Format a duration as ``3d 4h``, ``2h 5m``, ``12m`` or ``expired``."""
    if seconds <= 0:
        return "expired"
    days, rest = divmod(int(seconds), 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60
    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_units(amount: int, decimals: int) -> str:
    """Render an integer base-unit amount with *decimals* places, trimmed."""
    value = (Decimal(amount) / (Decimal(10) ** decimals)).normalize()
    return format(value, "f")


def _asset_label(allowance: TokenAllowance, scope: Scope | None) -> str:
    if allowance.is_native or allowance.enforcer is EnforcerRole.NATIVE_TOKEN_PERIOD_TRANSFER:
        return "ETH"
    symbol = getattr(scope, "token_symbol", None)
    if symbol:
        return symbol
    address = allowance.token_address or allowance.asset_key
    return address[:10]


def _decimals(allowance: TokenAllowance, scope: Scope | None) -> int:
    if allowance.is_native or allowance.enforcer is EnforcerRole.NATIVE_TOKEN_PERIOD_TRANSFER:
        return 18
    return getattr(scope, "decimals", None) or 6


@dataclass
class LimitsReport:
    """Outcome of :func:`check_delegation_limits`."""

    wallet_address: str
    chain_id: int
    status: LimitStatus
    message: str
    allowances: AllowanceReport = field(default_factory=AllowanceReport)
    lines: list[str] = field(default_factory=list)
    expires_at: Optional[int] = None
    checked_at: int = 0
    scopes: list[Scope] = field(default_factory=list)

    @property
    def has_multiple_expirations(self) -> bool:
        return self.allowances.has_multiple_expirations

    def to_dict(self) -> dict[str, Any]:
        return {
            "walletAddress": self.wallet_address,
            "chainId": self.chain_id,
            "status": self.status.value,
            "message": self.message,
            "limits": self.allowances.to_dict()["allowances"],
            "hasMultipleExpirations": self.has_multiple_expirations,
            "lines": list(self.lines),
            "expiresAt": self.expires_at,
            "checkedAt": self.checked_at,
        }


def describe_allowance(allowance: TokenAllowance, scope: Scope | None, now: int) -> str:
    """Return one summary line for *allowance*."""
    label = _asset_label(allowance, scope)
    decimals = _decimals(allowance, scope)

    if allowance.is_live and allowance.available_amount is not None:
        line = f"{label}: {format_units(allowance.available_amount, decimals)} available"
        if allowance.resets_at is not None:
            line += f", resets in {format_time_remaining(allowance.resets_at - now)}"
    else:
        line = f"{label}: {LIMITS_UNKNOWN_MESSAGE}"
        if allowance.configured_amount is not None:
            origin = (
                "stored scope"
                if allowance.source is AllowanceSource.STORED_SCOPE
                else "delegation terms"
            )
            line += f" (configured {format_units(allowance.configured_amount, decimals)}"
            if allowance.period_duration:
                line += f" per {allowance.period_duration}s"
            line += f", from {origin})"
    if allowance.expires_at is not None:
        line += f"; expires in {format_time_remaining(allowance.expires_at - now)}"
    return line


def check_delegation_limits(
    grant: DelegationGrant,
    enforcers: EnforcerTable,
    chain_reader: ChainReader,
    *,
    timeout: float | None = None,
    max_workers: int = 4,
    now: int | None = None,
) -> LimitsReport:
    """Build the limits report of *grant*.

    Parameters
    ----------
    grant:
        Stored grant of the wallet.
    enforcers, chain_reader:
        Enforcer table and chain access for ``grant.chain_id``.
    timeout:
        Per-call bound on chain reads, in seconds.
    max_workers:
        Concurrency of the per-token fan-out.
    now:
        Current unix time.
    """
    now = int(time.time()) if now is None else now
    wallet = grant.wallet_address.lower()

    def report(status: LimitStatus, message: str, **kwargs: Any) -> LimitsReport:
        return LimitsReport(
            wallet_address=wallet,
            chain_id=grant.chain_id,
            status=status,
            message=message,
            expires_at=grant.expires_at,
            checked_at=now,
            scopes=list(grant.scopes),
            **kwargs,
        )

    if grant.expires_at is not None and grant.expires_at < now:
        return report(LimitStatus.EXPIRED, "Delegation has expired. All limits are 0.")

    allowances = query_all_allowances(
        grant.contexts(),
        enforcers,
        chain_reader,
        scopes=grant.scopes,
        timeout=timeout,
        max_workers=max_workers,
        now=now,
    )
    lines = [
        describe_allowance(a, find_scope(grant.scopes, key), now)
        for key, a in allowances.allowances.items()
    ]
    if allowances.has_multiple_expirations:
        lines.append("Each token has a different expiration date.")

    known = [
        a
        for a in allowances.allowances.values()
        if a.enforcer is not None or a.configured_amount is not None or a.error is not None
    ]
    if not known:
        if grant.scopes:
            return report(
                LimitStatus.LIMITS_UNKNOWN,
                f"Scopes are configured but {LIMITS_UNKNOWN_MESSAGE}.",
                allowances=allowances,
                lines=lines,
            )
        return report(
            LimitStatus.NO_LIMITS_CONFIGURED,
            "No spending limit scopes detected in this delegation.",
            allowances=allowances,
            lines=lines,
        )

    expirations = list(allowances.expirations.values())
    if expirations and len(expirations) == len(allowances.allowances) and max(expirations) < now:
        return report(
            LimitStatus.EXPIRED,
            "Every token's delegation has expired.",
            allowances=allowances,
            lines=lines,
        )

    if not allowances.any_live:
        logger.warning("no live allowance for %s", wallet)
        return report(
            LimitStatus.LIMITS_UNKNOWN, LIMITS_UNKNOWN_MESSAGE, allowances=allowances, lines=lines
        )

    return report(LimitStatus.ACTIVE, "; ".join(lines), allowances=allowances, lines=lines)


@dataclass(frozen=True)
class PreflightResult:
    """Decision of :func:`check_limits_before_transaction`."""

    decision: PreflightDecision
    reason: str
    requested: int
    available: Optional[int] = None
    asset_key: Optional[str] = None

    @property
    def can_proceed(self) -> bool:
        return self.decision is PreflightDecision.ALLOW

    @property
    def remaining_after(self) -> Optional[int]:
        if self.available is None or self.decision is not PreflightDecision.ALLOW:
            return None
        return self.available - self.requested

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision": self.decision.value,
            "canProceed": self.can_proceed,
            "reason": self.reason,
            "requested": str(self.requested),
            "available": str(self.available) if self.available is not None else None,
            "remainingAfter": (
                str(self.remaining_after) if self.remaining_after is not None else None
            ),
            "assetKey": self.asset_key,
        }


def _find_allowance(report: AllowanceReport, token: str | None) -> TokenAllowance | None:
    wanted = (token or "").strip().lower()
    if wanted in _NATIVE_SYMBOLS:
        for allowance in report.allowances.values():
            if allowance.is_native or allowance.enforcer is EnforcerRole.NATIVE_TOKEN_PERIOD_TRANSFER:
                return allowance
        return None
    for key, allowance in report.allowances.items():
        if key == wanted or (allowance.token_address or "").lower() == wanted:
            return allowance
    return None


def check_limits_before_transaction(
    report: LimitsReport,
    token: str | None,
    amount: int,
    now: int | None = None,
) -> PreflightResult:
    """Decide whether *amount* base units of *token* may be spent.

    *token* is ``"ETH"`` (or None) for the native currency, otherwise the
    token address. ``UNVERIFIED`` means no live figure was available; it is
    not permission to proceed.
    """
    now = int(time.time()) if now is None else now
    if report.status is LimitStatus.EXPIRED:
        return PreflightResult(PreflightDecision.BLOCK, "Delegation expired", amount)

    allowance = _find_allowance(report.allowances, token)
    if allowance is None:
        return PreflightResult(
            PreflightDecision.UNVERIFIED,
            f"No allowance information for {token or 'ETH'}: {LIMITS_UNKNOWN_MESSAGE}",
            amount,
        )
    if allowance.expires_at is not None and allowance.expires_at < now:
        return PreflightResult(
            PreflightDecision.BLOCK, "Delegation expired", amount, asset_key=allowance.asset_key
        )
    if not allowance.is_live or allowance.available_amount is None:
        return PreflightResult(
            PreflightDecision.UNVERIFIED,
            f"Remaining allowance is unknown ({allowance.source.value}): {LIMITS_UNKNOWN_MESSAGE}",
            amount,
            asset_key=allowance.asset_key,
        )
    if amount > allowance.available_amount:
        return PreflightResult(
            PreflightDecision.BLOCK,
            "Amount exceeds available allowance",
            amount,
            available=allowance.available_amount,
            asset_key=allowance.asset_key,
        )
    return PreflightResult(
        PreflightDecision.ALLOW,
        "Within available allowance",
        amount,
        available=allowance.available_amount,
        asset_key=allowance.asset_key,
    )
