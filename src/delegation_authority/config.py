"""Chain configuration and runtime settings.

Each supported chain carries its RPC lookup rules, the DelegationManager
address and the enforcer address table. Enforcer addresses are data: they
can be overridden per chain from a JSON file without touching any code.

Environment variables
---------------------
``<CHAIN>_RPC_URL`` / ``RPC_URL``
    RPC endpoint, chain-specific variable first.
``DELEGATION_ENFORCERS_FILE``
    JSON file of ``{"<chainId>": {"<EnforcerRole>": "0x..."}}`` overrides.
``DELEGATION_QUERY_TIMEOUT_SECONDS``
    Upper bound on every read-only chain call (default 20).
``DELEGATION_MAX_WORKERS``
    Concurrency of per-token allowance queries (default 4).
``DELEGATION_STORE_DIR``
    Base directory of the filesystem sub-delegation store.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from delegation_authority.delegation.models import normalize_address
from delegation_authority.enforcers.table import EnforcerRole, EnforcerTable

# Delegation Framework v1.3.0 deterministic deployment, identical on every
# supported chain.
_FRAMEWORK_DELEGATION_MANAGER = "0xdb9b1e94b5b69df7e401ddbede43491141047db3"
_FRAMEWORK_ENFORCERS: dict[str, str] = {
    EnforcerRole.NATIVE_TOKEN_PERIOD_TRANSFER.value: "0x9bc0faf4aca5ae429f4c06aeeac517520cb16bd9",
    EnforcerRole.ERC20_PERIOD_TRANSFER.value: "0x474e3ae7e169e940607cc624da8a15eb120139ab",
    EnforcerRole.ERC20_TRANSFER_AMOUNT.value: "0xf100b0819427117ecf76ed94b358b1a5b5c6d2fc",
    EnforcerRole.TIMESTAMP.value: "0x1046bb45c8d673d4ea75321280db34899413c069",
    EnforcerRole.ALLOWED_TARGETS.value: "0x7f20f61b1f09b08d970938f6fa563634d65c4eeb",
}


def _normalize_enforcers(value: Mapping[str, str]) -> dict[str, str]:
    return {
        EnforcerRole(role).value: normalize_address(address, f"{role} address")
        for role, address in value.items()
    }


class ChainConfig(BaseModel):
    """Static configuration for one chain."""

    chain_id: int
    name: str
    rpc_env_key: str
    rpc_default: str
    delegation_manager: str
    enforcers: dict[str, str] = Field(default_factory=dict)
    explorer: str = ""

    @field_validator("delegation_manager")
    @classmethod
    def _checksum_manager(cls, value: str) -> str:
        return normalize_address(value, "delegation_manager")

    @field_validator("enforcers")
    @classmethod
    def _known_roles(cls, value: dict[str, str]) -> dict[str, str]:
        return _normalize_enforcers(value)

    def enforcer_table(self) -> EnforcerTable:
        """Return the enforcer table for this chain."""
        return EnforcerTable(self.enforcers)

    def with_enforcers(self, overrides: Mapping[str, str]) -> "ChainConfig":
        """Return a copy with *overrides* merged over the enforcer table."""
        merged = {**self.enforcers, **overrides}
        return self.model_copy(update={"enforcers": _normalize_enforcers(merged)})


class RuntimeSettings(BaseModel):
    """Process-wide knobs read from the environment."""

    query_timeout_seconds: float = 20.0
    max_workers: int = 4
    store_dir: Optional[Path] = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RuntimeSettings":
        env = os.environ if environ is None else environ
        data: dict[str, object] = {}
        if env.get("DELEGATION_QUERY_TIMEOUT_SECONDS"):
            data["query_timeout_seconds"] = float(env["DELEGATION_QUERY_TIMEOUT_SECONDS"])
        if env.get("DELEGATION_MAX_WORKERS"):
            data["max_workers"] = int(env["DELEGATION_MAX_WORKERS"])
        if env.get("DELEGATION_STORE_DIR"):
            data["store_dir"] = Path(env["DELEGATION_STORE_DIR"])
        return cls(**data)


CHAINS: dict[int, ChainConfig] = {
    1: ChainConfig(
        chain_id=1,
        name="Ethereum Mainnet",
        rpc_env_key="ETH_RPC_URL",
        rpc_default="https://ethereum-rpc.publicnode.com",
        delegation_manager=_FRAMEWORK_DELEGATION_MANAGER,
        enforcers=_FRAMEWORK_ENFORCERS,
        explorer="https://etherscan.io",
    ),
    11155111: ChainConfig(
        chain_id=11155111,
        name="Ethereum Sepolia",
        rpc_env_key="SEPOLIA_RPC_URL",
        rpc_default="https://rpc.sepolia.org",
        delegation_manager=_FRAMEWORK_DELEGATION_MANAGER,
        enforcers=_FRAMEWORK_ENFORCERS,
        explorer="https://sepolia.etherscan.io",
    ),
    8453: ChainConfig(
        chain_id=8453,
        name="Base",
        rpc_env_key="BASE_RPC_URL",
        rpc_default="https://mainnet.base.org",
        delegation_manager=_FRAMEWORK_DELEGATION_MANAGER,
        enforcers=_FRAMEWORK_ENFORCERS,
        explorer="https://basescan.org",
    ),
}


def load_enforcer_overrides(path: Path) -> dict[int, dict[str, str]]:
    """Read per-chain enforcer overrides from a JSON file."""
    raw: dict[str, dict[str, str]] = json.loads(path.read_text(encoding="utf-8"))
    return {int(chain_id): dict(roles) for chain_id, roles in raw.items()}


def get_chain_config(
    chain_id: int, environ: Mapping[str, str] | None = None
) -> ChainConfig:
    """Return the configuration for *chain_id*, with file overrides applied.

    Raises
    ------
    KeyError
        If the chain is not supported. There is no fallback to another chain.
    """
    try:
        config = CHAINS[int(chain_id)]
    except KeyError:
        raise KeyError(f"Unsupported chain id {chain_id}.") from None

    env = os.environ if environ is None else environ
    overrides_file = env.get("DELEGATION_ENFORCERS_FILE")
    if overrides_file:
        overrides = load_enforcer_overrides(Path(overrides_file)).get(config.chain_id)
        if overrides:
            config = config.with_enforcers(overrides)
    return config


def get_rpc_url(chain_id: int, environ: Mapping[str, str] | None = None) -> str:
    """Resolve the RPC endpoint: chain-specific env var, ``RPC_URL``, default."""
    env = os.environ if environ is None else environ
    config = get_chain_config(chain_id, environ=env)
    return env.get(config.rpc_env_key) or env.get("RPC_URL") or config.rpc_default
