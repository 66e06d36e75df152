"""Signing capability for delegations.

The chain builder never touches key material directly. It asks a
:class:`DelegationSigner` for its address and for a signature over a
delegation's EIP-712 digest under a given domain. :class:`LocalAccountSigner`
is the eth_account-backed implementation used by the CLI and tests.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from eth_account import Account
from eth_account.messages import encode_typed_data

from delegation_authority.delegation.hashing import DelegationDomain, typed_data_message
from delegation_authority.delegation.models import Delegation, DelegationAuthorityError


class SignatureMismatch(DelegationAuthorityError):
    """Raised when a delegation's signature does not recover to its delegator."""


@runtime_checkable
class DelegationSigner(Protocol):
    """Anything able to sign a delegation under an EIP-712 domain."""

    @property
    def address(self) -> str:
        """Checksummed address of the signing key."""
        ...

    def sign_delegation(self, delegation: Delegation, domain: DelegationDomain) -> bytes:
        """Return a 65-byte signature over the delegation's typed-data digest."""
        ...


class LocalAccountSigner:
    """DelegationSigner backed by an in-process eth_account key.

    Parameters
    ----------
    private_key:
        Hex-encoded (or raw bytes) secp256k1 private key.
    """

    def __init__(self, private_key: str | bytes) -> None:
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    def sign_delegation(self, delegation: Delegation, domain: DelegationDomain) -> bytes:
        signable = encode_typed_data(full_message=typed_data_message(delegation, domain))
        signed = self._account.sign_message(signable)
        return bytes(signed.signature)

    def __repr__(self) -> str:
        return f"LocalAccountSigner(address={self.address!r})"


def recover_delegation_signer(delegation: Delegation, domain: DelegationDomain) -> str:
    """Return the address that produced ``delegation.signature`` under *domain*."""
    if not delegation.signature:
        raise SignatureMismatch("Delegation carries no signature.")
    signable = encode_typed_data(full_message=typed_data_message(delegation, domain))
    try:
        return Account.recover_message(signable, signature=delegation.signature)
    except Exception as exc:
        raise SignatureMismatch(f"Signature cannot be recovered: {exc}") from exc


def verify_delegation_signature(delegation: Delegation, domain: DelegationDomain) -> None:
    """Raise SignatureMismatch unless the signature recovers to ``delegator``."""
    recovered = recover_delegation_signer(delegation, domain)
    if recovered.lower() != delegation.delegator.lower():
        raise SignatureMismatch(
            f"Signature recovers to {recovered}, expected delegator {delegation.delegator}."
        )
