#!/usr/bin/env python3
"""Example: Quickstart

Builds a root grant from a user to a primary agent, re-delegates it to a
sub-agent with a daily ETH cap, and verifies the resulting chain. Runs
entirely offline.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install delegation-authority
"""
from __future__ import annotations

from eth_account import Account

import delegation_authority
from delegation_authority import (
    CaveatConfig,
    Delegation,
    LocalAccountSigner,
    create_sub_delegation,
    decode_permission_context,
    encode_permission_context_hex,
    get_chain_config,
    verify_permission_context,
)


def main() -> None:
    print(f"delegation-authority version: {delegation_authority.__version__}")
    config = get_chain_config(11155111)

    # Step 1: A user grants the primary agent a root delegation
    user = Account.create()
    agent = LocalAccountSigner(Account.create().key)
    root = Delegation(delegate=agent.address, delegator=user.address, salt=1)
    parent_context = encode_permission_context_hex([root])
    print(f"Root grant: {user.address} -> {agent.address}")

    # Step 2: The agent re-delegates to a sub-agent, capped at 0.001 ETH per day
    sub_agent = Account.create()
    record = create_sub_delegation(
        parent_context,
        agent,
        sub_agent.address,
        config.chain_id,
        config.delegation_manager,
        caveat_config=CaveatConfig(amount="0.001", frequency="daily"),
        enforcers=config.enforcer_table(),
    )
    print(f"Sub-delegation to {record.to}, parent hash {record.parent_hash[:18]}...")

    # Step 3: Verify the chained context the sub-agent will redeem
    entries = verify_permission_context(decode_permission_context(record.chained_permissions_context))
    for entry in entries:
        print(f"  depth={entry.depth} delegate={entry.delegation.delegate}")

    print("\nQuickstart complete.")


if __name__ == "__main__":
    main()
