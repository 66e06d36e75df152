"""Read-only access to enforcer state on chain.

:class:`ChainReader` is the boundary the allowance logic depends on. The
web3 implementation calls the period-transfer enforcers' view function
``getAvailableAmount(bytes32,address,bytes)``. Readers are bound to one
chain id for their whole life and are handed out by a
:class:`ChainReaderRegistry` that is built once at startup.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Callable, Protocol, TypeVar, runtime_checkable

from web3 import Web3

from delegation_authority.delegation.hashing import hash_delegation
from delegation_authority.delegation.models import (
    Delegation,
    DelegationAuthorityError,
    normalize_address,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

PERIOD_TRANSFER_ENFORCER_ABI: list[dict[str, object]] = [
    {
        "name": "getAvailableAmount",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "_delegationHash", "type": "bytes32"},
            {"name": "_delegationManager", "type": "address"},
            {"name": "_terms", "type": "bytes"},
        ],
        "outputs": [
            {"name": "availableAmount_", "type": "uint256"},
            {"name": "isNewPeriod_", "type": "bool"},
            {"name": "currentPeriod_", "type": "uint256"},
        ],
    }
]


class ChainQueryFailed(DelegationAuthorityError):
    """A read-only chain call failed. Recovered per caveat by the allowance reader."""


class ChainQueryTimeout(ChainQueryFailed):
    """A read-only chain call exceeded its time budget."""


class ChainMismatchError(DelegationAuthorityError):
    """A client is connected to a different chain than the one it is bound to."""


class UnrecognizedEnforcer(DelegationAuthorityError):
    """A caveat's enforcer is not in the chain's enforcer table.

    Only ever recorded or logged; allowance queries do not raise it.
    """


@dataclass(frozen=True)
class PeriodTransferAmount:
    """Live state of a period-transfer enforcer for one delegation."""

    available_amount: int
    is_new_period: bool
    current_period: int


@runtime_checkable
class ChainReader(Protocol):
    """Read-only chain access bound to a single chain id."""

    @property
    def chain_id(self) -> int:
        ...

    def get_period_transfer_available_amount(
        self, enforcer_address: str, delegation: Delegation
    ) -> PeriodTransferAmount:
        """Return the remaining allowance tracked by *enforcer_address*.

        Raises
        ------
        ChainQueryFailed
            On any failure to obtain the value.
        """
        ...


def call_with_timeout(fn: Callable[[], T], timeout: float | None, label: str = "chain query") -> T:
    """Run *fn* and give up after *timeout* seconds.

    Raises
    ------
    ChainQueryTimeout
        If *fn* has not returned in time. The worker thread is abandoned,
        not interrupted.
    """
    if timeout is None:
        return fn()
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="chain-query")
    future = executor.submit(fn)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        raise ChainQueryTimeout(f"{label} timed out after {timeout:g}s") from None
    finally:
        executor.shutdown(wait=False)


class Web3ChainReader:
    """ChainReader backed by a web3 client.

    Parameters
    ----------
    w3:
        Connected web3 instance. It must not be repointed after construction.
    chain_id:
        The chain the instance is expected to serve. Checked against the node
        on first use; a mismatch raises ChainMismatchError on every call.
    delegation_manager:
        DelegationManager the enforcers keep their spend counters for.
    """

    def __init__(self, w3: Web3, chain_id: int, delegation_manager: str) -> None:
        self._w3 = w3
        self._chain_id = int(chain_id)
        self._delegation_manager = normalize_address(delegation_manager, "delegation_manager")
        self._verified = False
        self._lock = threading.Lock()

    @classmethod
    def from_rpc_url(
        cls,
        rpc_url: str,
        chain_id: int,
        delegation_manager: str,
        request_timeout: float = 20.0,
    ) -> "Web3ChainReader":
        """Create a reader over an HTTP provider with a request timeout."""
        w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))
        return cls(w3, chain_id, delegation_manager)

    @property
    def chain_id(self) -> int:
        return self._chain_id

    @property
    def delegation_manager(self) -> str:
        return self._delegation_manager

    def _ensure_chain(self) -> None:
        with self._lock:
            if self._verified:
                return
            try:
                actual = int(self._w3.eth.chain_id)
            except Exception as exc:
                raise ChainQueryFailed(f"Could not read chain id: {exc}") from exc
            if actual != self._chain_id:
                raise ChainMismatchError(
                    f"Reader bound to chain {self._chain_id} is connected to chain {actual}."
                )
            self._verified = True

    def get_period_transfer_available_amount(
        self, enforcer_address: str, delegation: Delegation
    ) -> PeriodTransferAmount:
        enforcer = normalize_address(enforcer_address, "enforcer_address")
        caveat = next(
            (c for c in delegation.caveats if c.enforcer.lower() == enforcer.lower()), None
        )
        if caveat is None:
            raise ChainQueryFailed(f"Delegation has no caveat for enforcer {enforcer}.")

        self._ensure_chain()
        contract = self._w3.eth.contract(address=enforcer, abi=PERIOD_TRANSFER_ENFORCER_ABI)
        try:
            available, is_new_period, current_period = contract.functions.getAvailableAmount(
                hash_delegation(delegation), self._delegation_manager, caveat.terms
            ).call()
        except Exception as exc:
            raise ChainQueryFailed(f"getAvailableAmount on {enforcer} failed: {exc}") from exc

        logger.debug(
            "period transfer state enforcer=%s available=%d new_period=%s period=%d",
            enforcer,
            available,
            is_new_period,
            current_period,
        )
        return PeriodTransferAmount(
            available_amount=int(available),
            is_new_period=bool(is_new_period),
            current_period=int(current_period),
        )

    def __repr__(self) -> str:
        return f"Web3ChainReader(chain_id={self._chain_id})"


class ChainReaderRegistry:
    """Chain readers keyed by chain id.

    Thread-safe. A chain id, once registered, keeps its reader; replacing it
    must be requested explicitly.
    """

    def __init__(self) -> None:
        self._readers: dict[int, ChainReader] = {}
        self._lock = threading.Lock()

    def register(self, reader: ChainReader, replace: bool = False) -> None:
        """Register *reader* under its own ``chain_id``.

        Raises
        ------
        ValueError
            If a different reader is already registered for that chain and
            *replace* is False.
        """
        with self._lock:
            existing = self._readers.get(reader.chain_id)
            if existing is not None and existing is not reader and not replace:
                raise ValueError(f"A reader for chain {reader.chain_id} is already registered.")
            self._readers[reader.chain_id] = reader

    def get(self, chain_id: int) -> ChainReader:
        """Return the reader for *chain_id*.

        Raises
        ------
        KeyError
            If no reader is registered for the chain.
        """
        with self._lock:
            try:
                return self._readers[int(chain_id)]
            except KeyError:
                raise KeyError(f"No chain reader registered for chain {chain_id}.") from None

    def get_or_create(self, chain_id: int, factory: Callable[[int], ChainReader]) -> ChainReader:
        """Return the reader for *chain_id*, creating it with *factory* if absent."""
        with self._lock:
            reader = self._readers.get(int(chain_id))
            if reader is None:
                reader = factory(int(chain_id))
                if reader.chain_id != int(chain_id):
                    raise ChainMismatchError(
                        f"Factory produced a reader for chain {reader.chain_id}, "
                        f"expected {chain_id}."
                    )
                self._readers[reader.chain_id] = reader
            return reader

    def chain_ids(self) -> list[int]:
        with self._lock:
            return sorted(self._readers)

    def __contains__(self, chain_id: object) -> bool:
        with self._lock:
            return chain_id in self._readers
