"""Advisory scope records stored alongside a grant.

A scope describes what caveats the user attached when granting permission.
It is display data and a fallback when live enforcer queries fail; it is
never authoritative over on-chain state. Each scope kind is its own model
carrying exactly the fields that kind needs, discriminated by ``type``.

Stored documents use camelCase keys; both camelCase and snake_case are
accepted on input.
"""
from __future__ import annotations

from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from delegation_authority.delegation.models import normalize_address

NATIVE_ASSET_KEY = "native"

# Scope type names written by earlier versions of the grant flow.
_LEGACY_TYPES: dict[str, str] = {
    "nativeTokenPeriodTransfer": "nativePeriodTransfer",
    "erc20TransferAmount": "erc20TotalTransfer",
}


class _ScopeBase(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="ignore"
    )

    expires_at: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class NativePeriodScope(_ScopeBase):
    """Native-currency amount allowed per period."""

    type: Literal["nativePeriodTransfer"] = "nativePeriodTransfer"
    period_amount: int = Field(ge=0)
    period_duration_seconds: int = Field(gt=0)
    start_time: Optional[int] = None

    @property
    def asset_key(self) -> str:
        return NATIVE_ASSET_KEY

    @property
    def configured_amount(self) -> int:
        return self.period_amount

    @property
    def token_address(self) -> None:
        return None


class Erc20PeriodScope(_ScopeBase):
    """ERC-20 amount allowed per period for one token."""

    type: Literal["erc20PeriodTransfer"] = "erc20PeriodTransfer"
    token_address: str
    period_amount: int = Field(ge=0)
    period_duration_seconds: int = Field(gt=0)
    start_time: Optional[int] = None
    token_symbol: Optional[str] = None
    decimals: Optional[int] = None

    @field_validator("token_address")
    @classmethod
    def _checksum(cls, value: str) -> str:
        return normalize_address(value, "token_address")

    @property
    def asset_key(self) -> str:
        return self.token_address.lower()

    @property
    def configured_amount(self) -> int:
        return self.period_amount


class Erc20TotalScope(_ScopeBase):
    """ERC-20 amount allowed over the lifetime of the grant."""

    type: Literal["erc20TotalTransfer"] = "erc20TotalTransfer"
    token_address: str
    max_amount: int = Field(ge=0)
    token_symbol: Optional[str] = None
    decimals: Optional[int] = None

    @field_validator("token_address")
    @classmethod
    def _checksum(cls, value: str) -> str:
        return normalize_address(value, "token_address")

    @property
    def asset_key(self) -> str:
        return self.token_address.lower()

    @property
    def configured_amount(self) -> int:
        return self.max_amount

    @property
    def period_duration_seconds(self) -> None:
        return None


Scope = Annotated[
    Union[NativePeriodScope, Erc20PeriodScope, Erc20TotalScope],
    Field(discriminator="type"),
]

_SCOPE_ADAPTER: TypeAdapter[Scope] = TypeAdapter(Scope)


def parse_scope(data: Mapping[str, Any]) -> Scope:
    """Validate a stored scope document into its typed variant.

    Legacy type names are mapped to their current equivalents.

    Raises
    ------
    pydantic.ValidationError
        If the document is not a valid scope of any known kind.
    """
    payload = dict(data)
    kind = payload.get("type")
    if isinstance(kind, str) and kind in _LEGACY_TYPES:
        payload["type"] = _LEGACY_TYPES[kind]
    return _SCOPE_ADAPTER.validate_python(payload)


def find_scope(scopes: list[Scope], asset_key: str) -> Scope | None:
    """Return the first scope for *asset_key* (``"native"`` or a token address)."""
    key = asset_key.lower()
    for scope in scopes:
        if scope.asset_key == key:
            return scope
    return None
