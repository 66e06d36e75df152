#!/usr/bin/env python3
"""Example: Limits report and failure diagnosis

Reads the remaining allowance of every token in a stored grant and
explains a failed execution against it. Requires an RPC endpoint for the
grant's chain (``SEPOLIA_RPC_URL`` or ``RPC_URL``).

Usage:
    python examples/02_limits_and_diagnosis.py grant.json "<error message>"

Requirements:
    pip install delegation-authority
"""
from __future__ import annotations

import sys
from pathlib import Path

from delegation_authority import (
    DelegationGrant,
    RuntimeSettings,
    Web3ChainReader,
    check_delegation_limits,
    check_limits_before_transaction,
    diagnose,
    get_chain_config,
    get_rpc_url,
)


def main(grant_path: str, error_message: str) -> None:
    grant = DelegationGrant.model_validate_json(Path(grant_path).read_text(encoding="utf-8"))
    settings = RuntimeSettings.from_env()
    config = get_chain_config(grant.chain_id)

    reader = Web3ChainReader.from_rpc_url(
        get_rpc_url(grant.chain_id),
        grant.chain_id,
        grant.delegation_manager or config.delegation_manager,
        request_timeout=settings.query_timeout_seconds,
    )

    # Step 1: Per-token limits, each with its own expiration
    report = check_delegation_limits(
        grant,
        config.enforcer_table(),
        reader,
        timeout=settings.query_timeout_seconds,
        max_workers=settings.max_workers,
    )
    print(f"Status: {report.status.value}")
    for line in report.lines:
        print(f"  {line}")

    # Step 2: Would 0.0005 ETH go through right now?
    preflight = check_limits_before_transaction(report, "ETH", 5 * 10**14)
    print(f"Pre-check: {preflight.decision.value} ({preflight.reason})")

    # Step 3: Explain the failure in terms of the live limits
    diagnosis = diagnose(error_message, report=report)
    print(f"\nDiagnosis: {diagnosis.code.value}")
    print(diagnosis.summary())


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print(__doc__)
        sys.exit(1)
    main(sys.argv[1], sys.argv[2])
