"""Optional narrowing caveats for sub-delegations.

By default a sub-delegation carries no caveats of its own and is bounded
only by its parent chain. A :class:`CaveatConfig` lets the caller narrow it
further, e.g. a transfer agent limited to one recipient and a per-period
amount. Caveats accumulate along the chain, so these can only ever tighten
what the parent already allows.
"""
from __future__ import annotations

import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Literal, Optional

from pydantic import BaseModel, field_validator

from delegation_authority.delegation.models import Caveat, normalize_address
from delegation_authority.enforcers.table import EnforcerRole, EnforcerTable
from delegation_authority.enforcers.terms import (
    encode_allowed_targets_terms,
    encode_erc20_period_terms,
    encode_native_period_terms,
    encode_timestamp_terms,
)

logger = logging.getLogger(__name__)

Frequency = Literal["hourly", "daily", "weekly", "test"]

FREQUENCY_TO_SECONDS: dict[str, int] = {
    "hourly": 3600,
    "daily": 86400,
    "weekly": 604800,
    "test": 120,
}

NATIVE_DECIMALS: int = 18
DEFAULT_ERC20_DECIMALS: int = 6


class CaveatConfig(BaseModel):
    """Narrowing requested for a sub-delegation.

    ``amount`` is human readable ("0.001"); it is scaled by ``decimals``
    (18 for the native token, 6 by default for ERC-20 tokens).
    """

    token: str = "ETH"
    amount: Optional[str] = None
    frequency: Frequency = "daily"
    recipient: Optional[str] = None
    token_address: Optional[str] = None
    decimals: Optional[int] = None
    expires_at: Optional[int] = None

    @field_validator("recipient", "token_address")
    @classmethod
    def _checksum(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else normalize_address(value)

    @property
    def is_native(self) -> bool:
        return not self.token or self.token.upper() == "ETH"

    @property
    def period_duration(self) -> int:
        return FREQUENCY_TO_SECONDS[self.frequency]

    def amount_in_base_units(self) -> int:
        """Scale ``amount`` to integer base units (wei for ETH)."""
        if self.amount is None:
            raise ValueError("No amount configured.")
        decimals = NATIVE_DECIMALS if self.is_native else (self.decimals or DEFAULT_ERC20_DECIMALS)
        try:
            scaled = Decimal(self.amount) * (Decimal(10) ** decimals)
        except InvalidOperation:
            raise ValueError(f"Amount is not a number: {self.amount!r}") from None
        if scaled < 0 or scaled != scaled.to_integral_value():
            raise ValueError(
                f"Amount {self.amount} has more precision than {decimals} decimals allow."
            )
        return int(scaled)


def build_sub_delegation_caveats(
    config: CaveatConfig | None,
    enforcers: EnforcerTable,
    now: int | None = None,
) -> list[Caveat]:
    """Translate *config* into caveats using the chain's enforcer table.

    Returns an empty list when *config* is None.

    Raises
    ------
    KeyError
        If a required enforcer role has no address on this chain.
    ValueError
        If an ERC-20 limit is requested without ``token_address``.
    """
    if config is None:
        return []

    start = int(time.time()) if now is None else now
    caveats: list[Caveat] = []

    if config.amount is not None:
        amount = config.amount_in_base_units()
        if config.is_native:
            caveats.append(
                Caveat(
                    enforcer=enforcers.address_of(EnforcerRole.NATIVE_TOKEN_PERIOD_TRANSFER),
                    terms=encode_native_period_terms(amount, config.period_duration, start),
                )
            )
            logger.debug(
                "sub-delegation native period caveat amount=%s period=%ds",
                config.amount,
                config.period_duration,
            )
        else:
            if config.token_address is None:
                raise ValueError(f"token_address is required to limit {config.token}.")
            caveats.append(
                Caveat(
                    enforcer=enforcers.address_of(EnforcerRole.ERC20_PERIOD_TRANSFER),
                    terms=encode_erc20_period_terms(
                        config.token_address, amount, config.period_duration, start
                    ),
                )
            )
            logger.debug(
                "sub-delegation erc20 period caveat token=%s amount=%s period=%ds",
                config.token_address,
                config.amount,
                config.period_duration,
            )

    if config.recipient is not None:
        caveats.append(
            Caveat(
                enforcer=enforcers.address_of(EnforcerRole.ALLOWED_TARGETS),
                terms=encode_allowed_targets_terms([config.recipient]),
            )
        )

    if config.expires_at is not None:
        caveats.append(
            Caveat(
                enforcer=enforcers.address_of(EnforcerRole.TIMESTAMP),
                terms=encode_timestamp_terms(0, config.expires_at),
            )
        )

    return caveats
