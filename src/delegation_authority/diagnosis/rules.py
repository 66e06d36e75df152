"""Ordered classification table for delegation execution failures.

Rules are tried in order and the first match wins. Token-specific limit
rules come before the generic ``transfer-amount-exceeded`` rule, which
would otherwise shadow them.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class DiagnosisCode(str, Enum):
    NATIVE_TOKEN_LIMIT_EXCEEDED = "NATIVE_TOKEN_LIMIT_EXCEEDED"
    ERC20_PERIOD_LIMIT_EXCEEDED = "ERC20_PERIOD_LIMIT_EXCEEDED"
    ERC20_LIMIT_EXCEEDED = "ERC20_LIMIT_EXCEEDED"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    DELEGATION_EXPIRED = "DELEGATION_EXPIRED"
    INVALID_DELEGATION = "INVALID_DELEGATION"
    UNAUTHORIZED_DELEGATE = "UNAUTHORIZED_DELEGATE"
    TIMESTAMP_CONSTRAINT = "TIMESTAMP_CONSTRAINT"
    INVALID_CALLDATA = "INVALID_CALLDATA"
    CALLDATA_NOT_ALLOWED = "CALLDATA_NOT_ALLOWED"
    TARGET_NOT_ALLOWED = "TARGET_NOT_ALLOWED"
    UNKNOWN = "UNKNOWN"


#: Codes whose failure means a spending limit was hit.
LIMIT_CODES: frozenset[DiagnosisCode] = frozenset(
    {
        DiagnosisCode.NATIVE_TOKEN_LIMIT_EXCEEDED,
        DiagnosisCode.ERC20_PERIOD_LIMIT_EXCEEDED,
        DiagnosisCode.ERC20_LIMIT_EXCEEDED,
        DiagnosisCode.LIMIT_EXCEEDED,
    }
)


@dataclass(frozen=True)
class DiagnosisRule:
    """One row of the classification table."""

    pattern: re.Pattern[str]
    code: DiagnosisCode
    meaning: str
    user_explanation: str
    remedy: str
    scope: str
    next_steps: tuple[str, ...]

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


def _rule(
    pattern: str,
    code: DiagnosisCode,
    *,
    meaning: str,
    user_explanation: str,
    remedy: str,
    scope: str,
    next_steps: tuple[str, ...],
) -> DiagnosisRule:
    return DiagnosisRule(
        pattern=re.compile(pattern, re.IGNORECASE),
        code=code,
        meaning=meaning,
        user_explanation=user_explanation,
        remedy=remedy,
        scope=scope,
        next_steps=next_steps,
    )


RULES: tuple[DiagnosisRule, ...] = (
    _rule(
        r"NativeTokenPeriodTransferEnforcer.*transfer-amount-exceeded",
        DiagnosisCode.NATIVE_TOKEN_LIMIT_EXCEEDED,
        meaning="The native ETH transfer amount exceeded the per-period spending limit.",
        user_explanation="Your ETH spending limit for this period has been reached.",
        remedy="Wait for the next period to reset, or grant higher limits.",
        scope="Native ETH transfers",
        next_steps=(
            "Try a smaller amount that fits within the remaining allowance",
            "Wait for the period to reset",
            "Grant new permissions with a higher ETH limit",
        ),
    ),
    _rule(
        r"ERC20PeriodTransferEnforcer.*transfer-amount-exceeded",
        DiagnosisCode.ERC20_PERIOD_LIMIT_EXCEEDED,
        meaning="The ERC-20 periodic spending limit has been reached for this period.",
        user_explanation=(
            "You have reached your periodic spending limit for this token. "
            "It resets at the start of the next period."
        ),
        remedy="Wait for the period to reset, try a smaller amount, or grant higher limits.",
        scope="ERC-20 periodic token transfers",
        next_steps=(
            "Wait for the period to reset",
            "Try a smaller amount that fits within the remaining allowance",
            "Grant new permissions with a higher periodic limit",
        ),
    ),
    _rule(
        r"ERC20TransferAmount.*(transfer-amount-exceeded|allowance-exceeded)",
        DiagnosisCode.ERC20_LIMIT_EXCEEDED,
        meaning="The ERC-20 token transfer amount exceeded the total spending limit.",
        user_explanation="Your total spending limit for this token has been reached.",
        remedy="Grant new permissions with a higher limit for this token.",
        scope="ERC-20 token transfers",
        next_steps=(
            "Grant new permissions with higher token limits",
            "Try a smaller token amount",
            "Check that the token is included in your permissions",
        ),
    ),
    _rule(
        r"transfer-amount-exceeded|allowance-exceeded",
        DiagnosisCode.LIMIT_EXCEEDED,
        meaning="The transfer amount exceeded the configured spending limit.",
        user_explanation="The amount exceeds your current spending limit.",
        remedy="Try a smaller amount, wait for the period to reset, or grant higher limits.",
        scope="Transfers",
        next_steps=(
            "Check the remaining allowance",
            "Try a smaller amount",
            "Wait for the period to reset or grant new permissions",
        ),
    ),
    _rule(
        r"delegation.*expired|expired.*delegation",
        DiagnosisCode.DELEGATION_EXPIRED,
        meaning="The delegation permission has expired.",
        user_explanation="Your spending permissions have expired.",
        remedy="Re-grant permissions.",
        scope="All delegation actions",
        next_steps=(
            "Grant new permissions",
            "Choose a longer expiration period",
        ),
    ),
    _rule(
        r"invalid.*delegation|delegation.*invalid",
        DiagnosisCode.INVALID_DELEGATION,
        meaning="The stored permission context is invalid or does not match on-chain state.",
        user_explanation="There is an issue with your stored permissions.",
        remedy="Revoke and re-grant permissions.",
        scope="All delegation actions",
        next_steps=(
            "Revoke current permissions",
            "Grant fresh permissions",
        ),
    ),
    _rule(
        r"unauthorized|not.*authorized",
        DiagnosisCode.UNAUTHORIZED_DELEGATE,
        meaning="The executing key is not authorized as a delegate for this account.",
        user_explanation="The agent is not authorized to act on your behalf.",
        remedy="Grant permissions to the correct delegate address.",
        scope="All delegation actions",
        next_steps=(
            "Make sure permissions were granted to the correct delegate",
            "Re-grant permissions if needed",
        ),
    ),
    _rule(
        r"timestamp.*enforcer",
        DiagnosisCode.TIMESTAMP_CONSTRAINT,
        meaning="The transaction violates a time-based constraint.",
        user_explanation="This action is outside the allowed time window.",
        remedy="Check the time window in which the delegation allows actions.",
        scope="Time-constrained actions",
        next_steps=(
            "Try again during the allowed window",
            "Grant new permissions without time restrictions",
        ),
    ),
    _rule(
        r"ExactCalldataEnforcer.*invalid-calldata",
        DiagnosisCode.INVALID_CALLDATA,
        meaning=(
            "The transaction calldata does not match what the delegation permits. "
            "The delegation was granted for other calls than the one attempted."
        ),
        user_explanation="Your current permissions do not cover this specific action.",
        remedy="Grant new permissions that include the action you want to perform.",
        scope="Specific function calls and calldata",
        next_steps=(
            "Revoke current permissions",
            "Grant new permissions that explicitly include this action",
            "For token transfers, choose the ERC-20 periodic transfer permission",
        ),
    ),
    _rule(
        r"AllowedCalldataEnforcer",
        DiagnosisCode.CALLDATA_NOT_ALLOWED,
        meaning="The transaction calldata is not in the list of permitted actions.",
        user_explanation="This action is not in your list of allowed operations.",
        remedy="Grant new permissions that include this action type.",
        scope="Allowed actions list",
        next_steps=(
            "Check which actions are currently permitted",
            "Grant new permissions that include this action",
        ),
    ),
    _rule(
        r"AllowedTargetsEnforcer",
        DiagnosisCode.TARGET_NOT_ALLOWED,
        meaning="The target contract address is not in the allowed list.",
        user_explanation="The contract or recipient is not in your allowed list.",
        remedy="Grant new permissions that include this token or contract.",
        scope="Allowed contract addresses",
        next_steps=(
            "Grant new permissions that include this token or contract",
            "Check that the address is correct",
        ),
    ),
)

UNKNOWN_MEANING = "The error does not match any known delegation failure."
UNKNOWN_EXPLANATION = "Something unexpected went wrong with the transaction."
UNKNOWN_CAUSES: tuple[str, ...] = (
    "Network or RPC issues",
    "Gas estimation failure",
    "Contract-specific revert",
    "Malformed transaction data",
)
UNKNOWN_REMEDIES: tuple[str, ...] = (
    "Try again with a smaller amount",
    "Check that the action is supported by the granted permissions",
    "Try again or grant new permissions",
)


def match_rule(text: str) -> DiagnosisRule | None:
    """Return the first rule matching *text*, or None."""
    for rule in RULES:
        if rule.matches(text):
            return rule
    return None
