"""Caveat and Delegation records as consumed by the Delegation Framework.

Both records are immutable. Field values are normalised on construction:
addresses become EIP-55 checksummed strings, byte fields become ``bytes``
and the salt becomes a plain ``int``. Anything that cannot be normalised
raises :class:`MalformedDelegation` immediately instead of being truncated
later during hashing or encoding.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping

from eth_utils import decode_hex, encode_hex, is_address, is_hex, to_checksum_address

#: Authority value of a root delegation (granted directly by an EOA / smart account).
ROOT_AUTHORITY: bytes = b"\xff" * 32

UINT256_MAX: int = 2**256 - 1


class DelegationAuthorityError(Exception):
    """Base class for all structural errors raised by this package."""


class MalformedDelegation(DelegationAuthorityError, ValueError):
    """Raised when a delegation or caveat field cannot be normalised."""


# ------------------------------------------------------------------
# Field normalisation
# ------------------------------------------------------------------


def normalize_address(value: object, field_name: str = "address") -> str:
    """Return *value* as a checksummed address or raise MalformedDelegation."""
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 20:
            raise MalformedDelegation(
                f"{field_name} must be 20 bytes, got {len(value)}."
            )
        return to_checksum_address(bytes(value))
    if not isinstance(value, str) or not is_address(value):
        raise MalformedDelegation(f"{field_name} is not a valid address: {value!r}")
    return to_checksum_address(value)


def normalize_bytes(value: object, field_name: str = "bytes") -> bytes:
    """Return *value* as raw bytes. Accepts bytes or 0x-prefixed hex strings."""
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        if value in ("", "0x", "0X"):
            return b""
        if not is_hex(value) or len(value.removeprefix("0x").removeprefix("0X")) % 2:
            raise MalformedDelegation(f"{field_name} is not valid hex: {value!r}")
        return decode_hex(value)
    raise MalformedDelegation(
        f"{field_name} must be bytes or a hex string, got {type(value).__name__}."
    )


def normalize_bytes32(value: object, field_name: str = "bytes32") -> bytes:
    """Return *value* as exactly 32 raw bytes."""
    raw = normalize_bytes(value, field_name)
    if len(raw) != 32:
        raise MalformedDelegation(f"{field_name} must be 32 bytes, got {len(raw)}.")
    return raw


def normalize_uint256(value: object, field_name: str = "uint256") -> int:
    """Return *value* as an int in the uint256 range.

    Decimal strings and 0x-prefixed hex strings are accepted because stored
    records (JSON) carry large integers as strings.
    """
    if isinstance(value, bool):
        raise MalformedDelegation(f"{field_name} must be an integer, got bool.")
    if isinstance(value, str):
        text = value.strip()
        try:
            value = int(text, 16) if text.lower().startswith("0x") else int(text, 10)
        except ValueError:
            raise MalformedDelegation(f"{field_name} is not an integer: {text!r}") from None
    if not isinstance(value, int):
        raise MalformedDelegation(
            f"{field_name} must be an integer, got {type(value).__name__}."
        )
    if value < 0 or value > UINT256_MAX:
        raise MalformedDelegation(f"{field_name} is outside the uint256 range: {value}")
    return value


# ------------------------------------------------------------------
# Records
# ------------------------------------------------------------------


@dataclass(frozen=True)
class Caveat:
    """One narrowing condition attached to a delegation.

    Parameters
    ----------
    enforcer:
        Address of the on-chain enforcer contract that validates this caveat.
    terms:
        Enforcer-specific payload. Part of the delegation's identity (hashed).
    args:
        Execution-time data passed to the enforcer on redemption. Not hashed.
    """

    enforcer: str
    terms: bytes = b""
    args: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "enforcer", normalize_address(self.enforcer, "caveat.enforcer"))
        object.__setattr__(self, "terms", normalize_bytes(self.terms, "caveat.terms"))
        object.__setattr__(self, "args", normalize_bytes(self.args, "caveat.args"))

    def to_dict(self) -> dict[str, str]:
        """Serialize with hex-encoded byte fields."""
        return {
            "enforcer": self.enforcer,
            "terms": encode_hex(self.terms),
            "args": encode_hex(self.args),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Caveat":
        """Build a Caveat from a mapping as produced by :meth:`to_dict`."""
        try:
            enforcer = data["enforcer"]
        except KeyError:
            raise MalformedDelegation("caveat is missing 'enforcer'.") from None
        return cls(enforcer=enforcer, terms=data.get("terms"), args=data.get("args"))


def _coerce_caveats(caveats: Iterable[Any] | None) -> tuple[Caveat, ...]:
    if caveats is None:
        return ()
    coerced: list[Caveat] = []
    for item in caveats:
        if isinstance(item, Caveat):
            coerced.append(item)
        elif isinstance(item, Mapping):
            coerced.append(Caveat.from_dict(item))
        elif isinstance(item, (tuple, list)) and len(item) == 3:
            coerced.append(Caveat(*item))
        else:
            raise MalformedDelegation(f"Unsupported caveat representation: {item!r}")
    return tuple(coerced)


@dataclass(frozen=True)
class Delegation:
    """A signed grant from ``delegator`` to ``delegate``.

    ``authority`` is :data:`ROOT_AUTHORITY` for root grants, otherwise the
    structured hash of the parent delegation. ``caveats`` given as ``None``
    or omitted is normalised to an empty tuple so both spellings hash the
    same.
    """

    delegate: str
    delegator: str
    authority: bytes = ROOT_AUTHORITY
    caveats: tuple[Caveat, ...] = field(default_factory=tuple)
    salt: int = 0
    signature: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "delegate", normalize_address(self.delegate, "delegate"))
        object.__setattr__(self, "delegator", normalize_address(self.delegator, "delegator"))
        object.__setattr__(self, "authority", normalize_bytes32(self.authority, "authority"))
        object.__setattr__(self, "caveats", _coerce_caveats(self.caveats))
        object.__setattr__(self, "salt", normalize_uint256(self.salt, "salt"))
        object.__setattr__(self, "signature", normalize_bytes(self.signature, "signature"))

    @property
    def is_root(self) -> bool:
        """True when this delegation has no parent."""
        return self.authority == ROOT_AUTHORITY

    def with_signature(self, signature: bytes | str) -> "Delegation":
        """Return a copy of this delegation carrying *signature*."""
        return replace(self, signature=normalize_bytes(signature, "signature"))

    def to_dict(self) -> dict[str, object]:
        """Serialize to a JSON-friendly dictionary (salt as decimal string)."""
        return {
            "delegate": self.delegate,
            "delegator": self.delegator,
            "authority": encode_hex(self.authority),
            "caveats": [c.to_dict() for c in self.caveats],
            "salt": str(self.salt),
            "signature": encode_hex(self.signature),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Delegation":
        """Reconstruct a Delegation from a mapping.

        A missing ``caveats`` key is treated as an empty caveat list and a
        missing ``authority`` as a root grant.
        """
        try:
            delegate = data["delegate"]
            delegator = data["delegator"]
        except KeyError as exc:
            raise MalformedDelegation(f"delegation is missing {exc.args[0]!r}.") from None
        return cls(
            delegate=delegate,
            delegator=delegator,
            authority=data.get("authority", ROOT_AUTHORITY),
            caveats=data.get("caveats"),
            salt=data.get("salt", 0),
            signature=data.get("signature"),
        )
