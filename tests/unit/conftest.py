"""Shared fixtures: well-known test keys, a Sepolia enforcer table and a fake chain reader."""
from __future__ import annotations

import time
from typing import Callable, Iterable

import pytest

from delegation_authority.config import ChainConfig, get_chain_config
from delegation_authority.delegation import (
    Caveat,
    Delegation,
    LocalAccountSigner,
    encode_permission_context_hex,
    hash_delegation,
)
from delegation_authority.enforcers import (
    ChainQueryFailed,
    EnforcerRole,
    EnforcerTable,
    PeriodTransferAmount,
)

# Anvil / Hardhat development accounts #0 and #1. Never funded on a real chain.
AGENT_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
SUB_AGENT_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
USER_ADDRESS = "0x3c44cdddb6a900fa2b585dd299e03d12fa4293bc"
USDC_ADDRESS = "0x1c7d4b196cb0c7b01d743fbc6116a902379c7238"
USDT_ADDRESS = "0xaa8e23fb1079ea71e0a56f48a2aa51851d8433d0"

NOW = 1_760_000_000
SEPOLIA = 11155111


class FakeChainReader:
    """In-memory ChainReader.

    ``responses`` maps an asset key (``"native"`` or a lowercased token
    address, read from the caveat terms) to a PeriodTransferAmount or to an
    exception to raise. A ``0x``-prefixed delegation hash takes precedence
    over the asset key, for answering per chain entry.
    """

    def __init__(self, chain_id: int = SEPOLIA, delay: float = 0.0) -> None:
        self._chain_id = chain_id
        self.delay = delay
        self.responses: dict[str, PeriodTransferAmount | Exception] = {}
        self.calls: list[str] = []

    @property
    def chain_id(self) -> int:
        return self._chain_id

    def get_period_transfer_available_amount(
        self, enforcer_address: str, delegation: Delegation
    ) -> PeriodTransferAmount:
        caveat = next(
            c for c in delegation.caveats if c.enforcer.lower() == enforcer_address.lower()
        )
        key = "0x" + hash_delegation(delegation).hex()
        if key not in self.responses:
            key = "native" if len(caveat.terms) == 96 else "0x" + caveat.terms[:20].hex()
        self.calls.append(key)
        if self.delay:
            time.sleep(self.delay)
        response = self.responses.get(key)
        if response is None:
            raise ChainQueryFailed(f"no response configured for {key}")
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture()
def now() -> int:
    return NOW


@pytest.fixture()
def agent_signer() -> LocalAccountSigner:
    return LocalAccountSigner(AGENT_KEY)


@pytest.fixture()
def sub_agent_signer() -> LocalAccountSigner:
    return LocalAccountSigner(SUB_AGENT_KEY)


@pytest.fixture()
def chain_config() -> ChainConfig:
    return get_chain_config(SEPOLIA, environ={})


@pytest.fixture()
def enforcers(chain_config: ChainConfig) -> EnforcerTable:
    return chain_config.enforcer_table()


@pytest.fixture()
def caveat_for(enforcers: EnforcerTable) -> Callable[[EnforcerRole, bytes], Caveat]:
    def _make(role: EnforcerRole, terms: bytes) -> Caveat:
        return Caveat(enforcer=enforcers.address_of(role), terms=terms)

    return _make


@pytest.fixture()
def root_delegation(agent_signer: LocalAccountSigner) -> Delegation:
    return Delegation(
        delegate=agent_signer.address,
        delegator=USER_ADDRESS,
        caveats=(),
        salt=1,
        signature=b"\x11" * 65,
    )


@pytest.fixture()
def parent_context(root_delegation: Delegation) -> str:
    return encode_permission_context_hex([root_delegation])


@pytest.fixture()
def make_context(agent_signer: LocalAccountSigner) -> Callable[[Iterable[Caveat]], str]:
    """Return a builder of single-delegation contexts carrying the given caveats."""

    def _make(caveats: Iterable[Caveat] = ()) -> str:
        delegation = Delegation(
            delegate=agent_signer.address,
            delegator=USER_ADDRESS,
            caveats=tuple(caveats),
            salt=7,
            signature=b"\x22" * 65,
        )
        return encode_permission_context_hex([delegation])

    return _make


@pytest.fixture()
def fake_reader() -> FakeChainReader:
    return FakeChainReader()
