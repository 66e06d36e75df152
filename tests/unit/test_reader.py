"""Tests for delegation_authority.enforcers.reader: chain readers and the registry."""
from __future__ import annotations

import time
from types import SimpleNamespace
from typing import Any

import pytest

from delegation_authority.delegation import Delegation, hash_delegation
from delegation_authority.enforcers import (
    ChainMismatchError,
    ChainQueryFailed,
    ChainQueryTimeout,
    ChainReader,
    ChainReaderRegistry,
    EnforcerRole,
    PeriodTransferAmount,
    Web3ChainReader,
    call_with_timeout,
)
from delegation_authority.enforcers.terms import encode_native_period_terms

from conftest import NOW, SEPOLIA, FakeChainReader

MANAGER = "0xdb9b1e94b5b69df7e401ddbede43491141047db3"


class FakeEth:
    """Minimal stand-in for ``web3.eth``."""

    def __init__(self, chain_id: int, result: Any) -> None:
        self._chain_id = chain_id
        self.result = result
        self.chain_id_reads = 0
        self.calls: list[tuple[Any, ...]] = []

    @property
    def chain_id(self) -> int:
        self.chain_id_reads += 1
        return self._chain_id

    def contract(self, address: str, abi: list[dict[str, object]]) -> SimpleNamespace:
        def get_available_amount(*args: Any) -> SimpleNamespace:
            self.calls.append((address, *args))

            def call() -> Any:
                if isinstance(self.result, Exception):
                    raise self.result
                return self.result

            return SimpleNamespace(call=call)

        return SimpleNamespace(functions=SimpleNamespace(getAvailableAmount=get_available_amount))


@pytest.fixture()
def limited_delegation(caveat_for, root_delegation: Delegation) -> Delegation:
    caveat = caveat_for(
        EnforcerRole.NATIVE_TOKEN_PERIOD_TRANSFER, encode_native_period_terms(10**16, 86400, NOW)
    )
    return Delegation(
        delegate=root_delegation.delegate,
        delegator=root_delegation.delegator,
        caveats=(caveat,),
    )


class TestCallWithTimeout:
    def test_no_timeout_calls_directly(self) -> None:
        assert call_with_timeout(lambda: 5, None) == 5

    def test_fast_call_returns_value(self) -> None:
        assert call_with_timeout(lambda: "ok", 1.0) == "ok"

    def test_slow_call_times_out(self) -> None:
        with pytest.raises(ChainQueryTimeout, match="timed out"):
            call_with_timeout(lambda: time.sleep(0.5), 0.05, label="slow read")

    def test_timeout_is_a_query_failure(self) -> None:
        assert issubclass(ChainQueryTimeout, ChainQueryFailed)


class TestWeb3ChainReader:
    def test_returns_enforcer_state(self, limited_delegation: Delegation) -> None:
        eth = FakeEth(SEPOLIA, (123, True, 4))
        reader = Web3ChainReader(SimpleNamespace(eth=eth), SEPOLIA, MANAGER)
        enforcer = limited_delegation.caveats[0].enforcer

        state = reader.get_period_transfer_available_amount(enforcer, limited_delegation)

        assert state == PeriodTransferAmount(available_amount=123, is_new_period=True, current_period=4)
        address, delegation_hash, manager, terms = eth.calls[0]
        assert address == enforcer
        assert delegation_hash == hash_delegation(limited_delegation)
        assert manager.lower() == MANAGER
        assert terms == limited_delegation.caveats[0].terms

    def test_chain_mismatch_raises(self, limited_delegation: Delegation) -> None:
        reader = Web3ChainReader(SimpleNamespace(eth=FakeEth(1, (0, False, 0))), SEPOLIA, MANAGER)
        with pytest.raises(ChainMismatchError, match="connected to chain 1"):
            reader.get_period_transfer_available_amount(
                limited_delegation.caveats[0].enforcer, limited_delegation
            )

    def test_chain_id_checked_once(self, limited_delegation: Delegation) -> None:
        eth = FakeEth(SEPOLIA, (1, False, 0))
        reader = Web3ChainReader(SimpleNamespace(eth=eth), SEPOLIA, MANAGER)
        enforcer = limited_delegation.caveats[0].enforcer
        reader.get_period_transfer_available_amount(enforcer, limited_delegation)
        reader.get_period_transfer_available_amount(enforcer, limited_delegation)
        assert eth.chain_id_reads == 1

    def test_contract_error_becomes_query_failed(self, limited_delegation: Delegation) -> None:
        eth = FakeEth(SEPOLIA, RuntimeError("execution reverted"))
        reader = Web3ChainReader(SimpleNamespace(eth=eth), SEPOLIA, MANAGER)
        with pytest.raises(ChainQueryFailed, match="execution reverted"):
            reader.get_period_transfer_available_amount(
                limited_delegation.caveats[0].enforcer, limited_delegation
            )

    def test_missing_caveat_raises(self, root_delegation: Delegation) -> None:
        reader = Web3ChainReader(SimpleNamespace(eth=FakeEth(SEPOLIA, None)), SEPOLIA, MANAGER)
        with pytest.raises(ChainQueryFailed, match="no caveat"):
            reader.get_period_transfer_available_amount(MANAGER, root_delegation)

    def test_satisfies_protocol(self) -> None:
        reader = Web3ChainReader(SimpleNamespace(eth=FakeEth(SEPOLIA, None)), SEPOLIA, MANAGER)
        assert isinstance(reader, ChainReader)
        assert reader.chain_id == SEPOLIA


class TestChainReaderRegistry:
    def test_register_and_get(self) -> None:
        registry = ChainReaderRegistry()
        reader = FakeChainReader()
        registry.register(reader)
        assert registry.get(SEPOLIA) is reader
        assert SEPOLIA in registry

    def test_get_unknown_raises(self) -> None:
        with pytest.raises(KeyError):
            ChainReaderRegistry().get(SEPOLIA)

    def test_conflicting_registration_raises(self) -> None:
        registry = ChainReaderRegistry()
        registry.register(FakeChainReader())
        with pytest.raises(ValueError, match="already registered"):
            registry.register(FakeChainReader())

    def test_same_reader_may_register_twice(self) -> None:
        registry = ChainReaderRegistry()
        reader = FakeChainReader()
        registry.register(reader)
        registry.register(reader)
        assert registry.chain_ids() == [SEPOLIA]

    def test_replace_is_explicit(self) -> None:
        registry = ChainReaderRegistry()
        registry.register(FakeChainReader())
        replacement = FakeChainReader()
        registry.register(replacement, replace=True)
        assert registry.get(SEPOLIA) is replacement

    def test_get_or_create_builds_once(self) -> None:
        registry = ChainReaderRegistry()
        built: list[int] = []

        def factory(chain_id: int) -> FakeChainReader:
            built.append(chain_id)
            return FakeChainReader(chain_id)

        first = registry.get_or_create(1, factory)
        second = registry.get_or_create(1, factory)
        assert first is second
        assert built == [1]

    def test_factory_for_wrong_chain_raises(self) -> None:
        registry = ChainReaderRegistry()
        with pytest.raises(ChainMismatchError):
            registry.get_or_create(1, lambda _chain_id: FakeChainReader(SEPOLIA))
        assert 1 not in registry
