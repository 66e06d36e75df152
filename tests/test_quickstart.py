"""Test that the top-level quickstart API works for delegation-authority."""
from __future__ import annotations


def test_quickstart_import() -> None:
    import delegation_authority

    assert delegation_authority.__version__ == "0.1.0"


def test_quickstart_public_names_resolve() -> None:
    import delegation_authority

    for name in delegation_authority.__all__:
        assert hasattr(delegation_authority, name), name


def test_quickstart_sub_delegation_round_trip() -> None:
    from eth_account import Account

    from delegation_authority import (
        Delegation,
        LocalAccountSigner,
        create_sub_delegation,
        decode_permission_context,
        encode_permission_context_hex,
        get_chain_config,
        verify_permission_context,
    )

    config = get_chain_config(11155111, environ={})
    agent = LocalAccountSigner(Account.create().key)
    root = Delegation(delegate=agent.address, delegator=Account.create().address)
    record = create_sub_delegation(
        encode_permission_context_hex([root]),
        agent,
        Account.create().address,
        config.chain_id,
        config.delegation_manager,
    )
    entries = verify_permission_context(decode_permission_context(record.chained_permissions_context))
    assert [e.depth for e in entries] == [1, 0]


def test_quickstart_diagnose() -> None:
    from delegation_authority import DiagnosisCode, diagnose

    assert diagnose("AllowedTargetsEnforcer:target-address-not-allowed").code is DiagnosisCode.TARGET_NOT_ALLOWED
