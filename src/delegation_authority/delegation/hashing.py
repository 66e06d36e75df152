"""Structured (EIP-712) hashing of Delegation records.

The digest produced by :func:`hash_delegation` must match the on-chain
``DelegationManager`` byte for byte: it is both the value signed by the
delegator and the ``authority`` pointer a child delegation stores for its
parent. Caveat ``args`` are execution-time data and are not hashed.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from eth_abi import encode
from eth_utils import keccak

from delegation_authority.delegation.models import (
    Caveat,
    Delegation,
    normalize_address,
    normalize_uint256,
)

CAVEAT_TYPE: str = "Caveat(address enforcer,bytes terms)"
DELEGATION_TYPE: str = (
    "Delegation(address delegate,address delegator,bytes32 authority,"
    "Caveat[] caveats,uint256 salt)" + CAVEAT_TYPE
)
EIP712_DOMAIN_TYPE: str = (
    "EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)

CAVEAT_TYPEHASH: bytes = keccak(text=CAVEAT_TYPE)
DELEGATION_TYPEHASH: bytes = keccak(text=DELEGATION_TYPE)
EIP712_DOMAIN_TYPEHASH: bytes = keccak(text=EIP712_DOMAIN_TYPE)

DOMAIN_NAME: str = "DelegationManager"
DOMAIN_VERSION: str = "1"

#: EIP-712 type definitions, in the shape eth_account's encode_typed_data expects.
DELEGATION_TYPES: dict[str, list[dict[str, str]]] = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "Caveat": [
        {"name": "enforcer", "type": "address"},
        {"name": "terms", "type": "bytes"},
    ],
    "Delegation": [
        {"name": "delegate", "type": "address"},
        {"name": "delegator", "type": "address"},
        {"name": "authority", "type": "bytes32"},
        {"name": "caveats", "type": "Caveat[]"},
        {"name": "salt", "type": "uint256"},
    ],
}


@dataclass(frozen=True)
class DelegationDomain:
    """EIP-712 domain of a DelegationManager deployment.

    Two domains differing only in ``chain_id`` or ``verifying_contract``
    yield different digests for identical delegations, which is what stops
    a signature from being replayed on another chain or manager.
    """

    chain_id: int
    verifying_contract: str
    name: str = DOMAIN_NAME
    version: str = DOMAIN_VERSION

    def __post_init__(self) -> None:
        object.__setattr__(self, "chain_id", normalize_uint256(self.chain_id, "chain_id"))
        object.__setattr__(
            self,
            "verifying_contract",
            normalize_address(self.verifying_contract, "verifying_contract"),
        )

    def separator(self) -> bytes:
        """Return the 32-byte EIP-712 domain separator."""
        return keccak(
            encode(
                ["bytes32", "bytes32", "bytes32", "uint256", "address"],
                [
                    EIP712_DOMAIN_TYPEHASH,
                    keccak(text=self.name),
                    keccak(text=self.version),
                    self.chain_id,
                    self.verifying_contract,
                ],
            )
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }


def _as_delegation(delegation: Delegation | Mapping[str, Any]) -> Delegation:
    if isinstance(delegation, Delegation):
        return delegation
    return Delegation.from_dict(delegation)


def hash_caveat(caveat: Caveat) -> bytes:
    """Return the EIP-712 struct hash of a single caveat (enforcer + terms)."""
    return keccak(
        encode(
            ["bytes32", "address", "bytes32"],
            [CAVEAT_TYPEHASH, caveat.enforcer, keccak(caveat.terms)],
        )
    )


def hash_caveats(caveats: tuple[Caveat, ...] | list[Caveat] | None) -> bytes:
    """Hash a caveat list as the packed concatenation of its element hashes.

    An empty (or absent) list hashes the empty byte string.
    """
    return keccak(b"".join(hash_caveat(c) for c in (caveats or ())))


def hash_delegation(delegation: Delegation | Mapping[str, Any]) -> bytes:
    """Return the 32-byte structured hash of *delegation* (signature excluded).

    Mappings are accepted and normalised through :meth:`Delegation.from_dict`,
    so malformed fields raise ``MalformedDelegation`` before anything is hashed.
    """
    d = _as_delegation(delegation)
    return keccak(
        encode(
            ["bytes32", "address", "address", "bytes32", "bytes32", "uint256"],
            [
                DELEGATION_TYPEHASH,
                d.delegate,
                d.delegator,
                d.authority,
                hash_caveats(d.caveats),
                d.salt,
            ],
        )
    )


def typed_data_digest(delegation: Delegation | Mapping[str, Any], domain: DelegationDomain) -> bytes:
    """Return ``keccak(0x1901 || domainSeparator || hashStruct(delegation))``."""
    return keccak(b"\x19\x01" + domain.separator() + hash_delegation(delegation))


def typed_data_message(
    delegation: Delegation | Mapping[str, Any], domain: DelegationDomain
) -> dict[str, object]:
    """Build the full EIP-712 message for *delegation* under *domain*."""
    d = _as_delegation(delegation)
    return {
        "types": DELEGATION_TYPES,
        "primaryType": "Delegation",
        "domain": domain.to_dict(),
        "message": {
            "delegate": d.delegate,
            "delegator": d.delegator,
            "authority": d.authority,
            "caveats": [{"enforcer": c.enforcer, "terms": c.terms} for c in d.caveats],
            "salt": d.salt,
        },
    }
