"""Encoding and decoding of enforcer ``terms`` payloads.

Layouts follow the Delegation Framework enforcers (all packed, big-endian):

* NativeTokenPeriodTransfer: ``uint256 periodAmount | uint256 periodDuration | uint256 startDate``
* ERC20PeriodTransfer: ``address token | uint256 periodAmount | uint256 periodDuration | uint256 startDate``
* ERC20TransferAmount: ``address token | uint256 maxAmount``
* Timestamp: ``uint128 afterThreshold | uint128 beforeThreshold``
* AllowedTargets: ``address[]`` packed, 20 bytes each
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from eth_abi.packed import encode_packed
from eth_utils import to_checksum_address

from delegation_authority.delegation.models import normalize_address, normalize_uint256

#: 2100-01-01T00:00:00Z. Timestamp terms at or beyond this are treated as corrupt.
MAX_PLAUSIBLE_TIMESTAMP: int = 4102444800

UINT128_MAX: int = 2**128 - 1


class MalformedTerms(ValueError):
    """Raised when a terms payload does not have the expected layout."""


@dataclass(frozen=True)
class PeriodTransferTerms:
    """Decoded terms of a period-transfer enforcer.

    ``token_address`` is None for the native-token enforcer.
    """

    period_amount: int
    period_duration: int
    start_date: int
    token_address: str | None = None

    def next_reset(self, now: int) -> int | None:
        """Return the unix time at which the current period ends, or None
        if the grant has not started or the duration is zero."""
        if self.period_duration <= 0 or now < self.start_date:
            return None
        elapsed_periods = (now - self.start_date) // self.period_duration
        return self.start_date + (elapsed_periods + 1) * self.period_duration


@dataclass(frozen=True)
class TransferAmountTerms:
    """Decoded terms of the ERC20TransferAmount enforcer (total cap)."""

    token_address: str
    max_amount: int


def _uint(raw: bytes) -> int:
    return int.from_bytes(raw, "big")


def _require_length(terms: bytes, expected: int, name: str) -> None:
    if len(terms) != expected:
        raise MalformedTerms(f"{name} terms must be {expected} bytes, got {len(terms)}.")


# ------------------------------------------------------------------
# Period transfers
# ------------------------------------------------------------------


def encode_native_period_terms(period_amount: int, period_duration: int, start_date: int) -> bytes:
    return encode_packed(
        ["uint256", "uint256", "uint256"],
        [
            normalize_uint256(period_amount, "period_amount"),
            normalize_uint256(period_duration, "period_duration"),
            normalize_uint256(start_date, "start_date"),
        ],
    )


def decode_native_period_terms(terms: bytes) -> PeriodTransferTerms:
    _require_length(terms, 96, "NativeTokenPeriodTransfer")
    return PeriodTransferTerms(
        period_amount=_uint(terms[0:32]),
        period_duration=_uint(terms[32:64]),
        start_date=_uint(terms[64:96]),
    )


def encode_erc20_period_terms(
    token_address: str, period_amount: int, period_duration: int, start_date: int
) -> bytes:
    return encode_packed(
        ["address", "uint256", "uint256", "uint256"],
        [
            normalize_address(token_address, "token_address"),
            normalize_uint256(period_amount, "period_amount"),
            normalize_uint256(period_duration, "period_duration"),
            normalize_uint256(start_date, "start_date"),
        ],
    )


def decode_erc20_period_terms(terms: bytes) -> PeriodTransferTerms:
    _require_length(terms, 116, "ERC20PeriodTransfer")
    return PeriodTransferTerms(
        token_address=to_checksum_address(terms[0:20]),
        period_amount=_uint(terms[20:52]),
        period_duration=_uint(terms[52:84]),
        start_date=_uint(terms[84:116]),
    )


# ------------------------------------------------------------------
# Total transfer amount
# ------------------------------------------------------------------


def encode_erc20_amount_terms(token_address: str, max_amount: int) -> bytes:
    return encode_packed(
        ["address", "uint256"],
        [
            normalize_address(token_address, "token_address"),
            normalize_uint256(max_amount, "max_amount"),
        ],
    )


def decode_erc20_amount_terms(terms: bytes) -> TransferAmountTerms:
    _require_length(terms, 52, "ERC20TransferAmount")
    return TransferAmountTerms(
        token_address=to_checksum_address(terms[0:20]),
        max_amount=_uint(terms[20:52]),
    )


# ------------------------------------------------------------------
# Timestamp
# ------------------------------------------------------------------


def encode_timestamp_terms(after_threshold: int, before_threshold: int) -> bytes:
    """Encode a validity window. ``0`` disables either bound."""
    for name, value in (("after_threshold", after_threshold), ("before_threshold", before_threshold)):
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= UINT128_MAX:
            raise MalformedTerms(f"{name} must fit in uint128, got {value!r}.")
    return after_threshold.to_bytes(16, "big") + before_threshold.to_bytes(16, "big")


def decode_expiration(terms: bytes) -> int | None:
    """Read an expiration timestamp from timestamp-enforcer terms.

    The first 32 bytes are read as one big-endian unsigned integer. Values
    that are zero or imply a date at or after 2100 are rejected and None is
    returned, as is anything shorter than 32 bytes.
    """
    if len(terms) < 32:
        return None
    timestamp = _uint(terms[:32])
    if 0 < timestamp < MAX_PLAUSIBLE_TIMESTAMP:
        return timestamp
    return None


# ------------------------------------------------------------------
# Allowed targets
# ------------------------------------------------------------------


def encode_allowed_targets_terms(targets: Sequence[str]) -> bytes:
    if not targets:
        raise MalformedTerms("AllowedTargets requires at least one target.")
    return encode_packed(
        ["address"] * len(targets),
        [normalize_address(t, "target") for t in targets],
    )


def decode_allowed_targets_terms(terms: bytes) -> list[str]:
    if not terms or len(terms) % 20:
        raise MalformedTerms(
            f"AllowedTargets terms must be a non-empty multiple of 20 bytes, got {len(terms)}."
        )
    return [to_checksum_address(terms[i : i + 20]) for i in range(0, len(terms), 20)]
