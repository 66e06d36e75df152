"""CLI entry point for delegation-authority.

Invoked as::

    delegation-authority [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m delegation_authority.cli.main

Commands
--------
hash          Structured hash of a delegation JSON file
decode        List the delegations in a permission context
verify-chain  Check the authority linkage of a permission context
sub-delegate  Build, sign and optionally store a sub-delegation
limits        Live spending-limit report for a stored grant
diagnose      Classify a failed-execution error message
version       Show version information
"""
from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

console = Console()


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(package_name="delegation-authority")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def cli(log_level: str) -> None:
    """Scoped, re-delegatable spending authority for agents"""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from delegation_authority import __version__

    console.print(f"[bold]delegation-authority[/bold] v{__version__}")


# ------------------------------------------------------------------
# hash
# ------------------------------------------------------------------


@cli.command(name="hash")
@click.argument("delegation_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--chain-id", type=int, default=None, help="Also print the EIP-712 digest for this chain.")
@click.option(
    "--delegation-manager",
    default=None,
    help="Verifying contract of the EIP-712 domain (defaults to the chain's configured manager).",
)
def hash_command(delegation_file: str, chain_id: int | None, delegation_manager: str | None) -> None:
    """Print the structured hash of the delegation in DELEGATION_FILE."""
    from eth_utils import encode_hex

    from delegation_authority.delegation import Delegation, DelegationDomain, MalformedDelegation
    from delegation_authority.delegation.hashing import hash_delegation, typed_data_digest

    try:
        data = json.loads(Path(delegation_file).read_text(encoding="utf-8"))
        delegation = Delegation.from_dict(data)
    except (json.JSONDecodeError, MalformedDelegation, TypeError) as exc:
        console.print(f"[red]Error:[/red] could not read delegation: {exc}")
        sys.exit(1)

    console.print(f"  Hash:    [bold]{encode_hex(hash_delegation(delegation))}[/bold]")
    if chain_id is not None:
        manager = delegation_manager or _chain_config(chain_id).delegation_manager
        domain = DelegationDomain(chain_id=chain_id, verifying_contract=manager)
        console.print(f"  Digest:  {encode_hex(typed_data_digest(delegation, domain))}")


# ------------------------------------------------------------------
# decode
# ------------------------------------------------------------------


@cli.command(name="decode")
@click.argument("context")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON instead of a table.")
def decode_command(context: str, as_json: bool) -> None:
    """List the delegations in CONTEXT (hex, or a path to a file holding hex)."""
    from eth_utils import encode_hex

    from delegation_authority.delegation import DelegationAuthorityError, decode_permission_context
    from delegation_authority.delegation.hashing import hash_delegation

    try:
        delegations = decode_permission_context(_read_context(context))
    except DelegationAuthorityError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    if as_json:
        console.print_json(json.dumps([d.to_dict() for d in delegations]))
        return

    table = Table(title="Permission Context", show_header=True)
    table.add_column("#", justify="right")
    table.add_column("Delegate", style="cyan")
    table.add_column("Delegator")
    table.add_column("Authority")
    table.add_column("Caveats", justify="right")
    table.add_column("Hash")

    for index, delegation in enumerate(delegations):
        authority = "ROOT" if delegation.is_root else encode_hex(delegation.authority)[:18] + "..."
        table.add_row(
            str(index),
            delegation.delegate,
            delegation.delegator,
            authority,
            str(len(delegation.caveats)),
            encode_hex(hash_delegation(delegation))[:18] + "...",
        )

    console.print(table)
    console.print(f"\nTotal: {len(delegations)} delegation(s)")


# ------------------------------------------------------------------
# verify-chain
# ------------------------------------------------------------------


@cli.command(name="verify-chain")
@click.argument("context")
@click.option("--max-depth", type=int, default=2, show_default=True, help="Maximum hops below the root.")
@click.option(
    "--chain-id",
    type=int,
    default=None,
    help="Also verify every non-root signature under this chain's domain.",
)
def verify_chain_command(context: str, max_depth: int, chain_id: int | None) -> None:
    """Check the authority linkage of CONTEXT."""
    from delegation_authority.delegation import (
        DelegationAuthorityError,
        DelegationDomain,
        SignatureMismatch,
        decode_permission_context,
        verify_delegation_signature,
        verify_permission_context,
    )

    issues: list[str] = []
    passed: list[str] = []

    try:
        delegations = decode_permission_context(_read_context(context))
        entries = verify_permission_context(delegations, max_depth=max_depth)
        passed.append(f"Chain of {len(entries)} delegation(s) links back to a root grant.")
    except DelegationAuthorityError as exc:
        issues.append(str(exc))
        delegations = []

    if chain_id is not None and delegations:
        domain = DelegationDomain(
            chain_id=chain_id, verifying_contract=_chain_config(chain_id).delegation_manager
        )
        for index, delegation in enumerate(delegations):
            if delegation.is_root:
                continue
            try:
                verify_delegation_signature(delegation, domain)
                passed.append(f"Signature at index {index} recovers to its delegator.")
            except SignatureMismatch as exc:
                issues.append(f"Index {index}: {exc}")

    for item in passed:
        console.print(f"  [green]PASS[/green]  {item}")
    for item in issues:
        console.print(f"  [red]FAIL[/red]  {item}")

    if issues:
        sys.exit(1)


# ------------------------------------------------------------------
# sub-delegate
# ------------------------------------------------------------------


@cli.command(name="sub-delegate")
@click.option("--parent-context", required=True, help="Parent permission context (hex or file path).")
@click.option("--sub-agent", required=True, help="Address of the sub-agent receiving authority.")
@click.option("--chain-id", type=int, default=11155111, show_default=True)
@click.option(
    "--key",
    envvar="DELEGATION_SIGNER_KEY",
    required=True,
    help="Private key of the parent delegate (or env DELEGATION_SIGNER_KEY).",
)
@click.option("--amount", default=None, help="Optional per-period limit, e.g. 0.01.")
@click.option("--token", default="ETH", show_default=True, help="Token symbol the limit applies to.")
@click.option("--token-address", default=None, help="ERC-20 address when --token is not ETH.")
@click.option("--decimals", type=int, default=None, help="ERC-20 decimals (default 6).")
@click.option(
    "--frequency",
    type=click.Choice(["hourly", "daily", "weekly", "test"]),
    default="daily",
    show_default=True,
)
@click.option("--recipient", default=None, help="Restrict transfers to this recipient.")
@click.option("--expires-at", type=int, default=None, help="Unix time after which the sub-delegation is invalid.")
@click.option("--owner", default=None, help="Wallet address to store the record under.")
@click.option("--schedule-id", default=None, help="Schedule id to store the record under.")
@click.option(
    "--store-dir",
    type=click.Path(file_okay=False),
    envvar="DELEGATION_STORE_DIR",
    default=None,
    help="Filesystem store directory (or env DELEGATION_STORE_DIR).",
)
@click.option("--audit-log", type=click.Path(dir_okay=False), default=None, help="JSONL audit log path.")
@click.option("--output", type=click.Path(), default=None, help="Write the record JSON to this path.")
def sub_delegate_command(
    parent_context: str,
    sub_agent: str,
    chain_id: int,
    key: str,
    amount: str | None,
    token: str,
    token_address: str | None,
    decimals: int | None,
    frequency: str,
    recipient: str | None,
    expires_at: int | None,
    owner: str | None,
    schedule_id: str | None,
    store_dir: str | None,
    audit_log: str | None,
    output: str | None,
) -> None:
    """Build and sign a sub-delegation chained onto a parent permission context."""
    from pydantic import ValidationError

    from delegation_authority.audit import DelegationAuditLogger
    from delegation_authority.delegation import (
        CaveatConfig,
        DelegationAuthorityError,
        LocalAccountSigner,
        create_sub_delegation,
    )
    from delegation_authority.store import FilesystemSubDelegationStore

    config = _chain_config(chain_id)
    try:
        signer = LocalAccountSigner(key)
    except (ValueError, TypeError) as exc:
        console.print(f"[red]Error:[/red] invalid signer key: {exc}")
        sys.exit(1)

    caveat_config = None
    if amount is not None or recipient is not None or expires_at is not None:
        try:
            caveat_config = CaveatConfig(
                token=token,
                amount=amount,
                frequency=frequency,
                recipient=recipient,
                token_address=token_address,
                decimals=decimals,
                expires_at=expires_at,
            )
        except ValidationError as exc:
            console.print(f"[red]Error:[/red] {exc}")
            sys.exit(1)

    try:
        record = create_sub_delegation(
            _read_context(parent_context),
            signer,
            sub_agent,
            chain_id,
            config.delegation_manager,
            caveat_config=caveat_config,
            enforcers=config.enforcer_table(),
        )
    except (DelegationAuthorityError, ValueError, KeyError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    audit = DelegationAuditLogger(Path(audit_log)) if audit_log else None
    if audit is not None:
        audit.log_sub_delegation_created(record)

    record_json = json.dumps(record.to_dict(), indent=2)
    if output:
        Path(output).write_text(record_json, encoding="utf-8")
        console.print(f"[green]Record written to[/green] {output}")

    if owner and schedule_id:
        if not store_dir:
            console.print("[red]Error:[/red] --store-dir is required to store the record.")
            sys.exit(1)
        store = FilesystemSubDelegationStore(Path(store_dir))
        store.put(owner, schedule_id, record.to_dict())
        if audit is not None:
            audit.log_sub_delegation_stored(owner, schedule_id, record.to)
        console.print(f"[green]Stored[/green] under {owner.lower()} / {schedule_id}")

    console.print(f"\n  Parent hash:  [bold]{record.parent_hash}[/bold]")
    console.print(f"  Delegator:    {record.delegator}")
    console.print(f"  Delegate:     {record.to}")
    console.print(f"  Caveats:      {len(record.sub_delegation.caveats)}")
    console.print(f"  Chain:        {config.name} ({record.chain_id})")
    console.print(f"  Context:      {record.chained_permissions_context[:42]}...")


# ------------------------------------------------------------------
# limits
# ------------------------------------------------------------------


@cli.command(name="limits")
@click.argument("grant_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--rpc-url", default=None, help="RPC endpoint (defaults to the chain's configured one).")
@click.option("--token", default=None, help="Pre-check a spend of this token (ETH or address).")
@click.option("--amount", type=int, default=None, help="Pre-check amount in base units.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the report as JSON.")
def limits_command(
    grant_file: str,
    rpc_url: str | None,
    token: str | None,
    amount: int | None,
    as_json: bool,
) -> None:
    """Report remaining spending limits for the grant in GRANT_FILE."""
    from pydantic import ValidationError

    from delegation_authority.config import RuntimeSettings, get_rpc_url
    from delegation_authority.limits import (
        DelegationGrant,
        LimitStatus,
        check_delegation_limits,
        check_limits_before_transaction,
    )

    try:
        grant = DelegationGrant.model_validate_json(Path(grant_file).read_text(encoding="utf-8"))
    except ValidationError as exc:
        console.print(f"[red]Error:[/red] invalid grant file: {exc}")
        sys.exit(1)

    settings = RuntimeSettings.from_env()
    config = _chain_config(grant.chain_id)
    manager = grant.delegation_manager or config.delegation_manager
    reader = _make_reader(
        rpc_url or get_rpc_url(grant.chain_id),
        grant.chain_id,
        manager,
        settings.query_timeout_seconds,
    )
    report = check_delegation_limits(
        grant,
        config.enforcer_table(),
        reader,
        timeout=settings.query_timeout_seconds,
        max_workers=settings.max_workers,
    )

    if as_json:
        console.print_json(json.dumps(report.to_dict()))
    else:
        colour = "green" if report.status is LimitStatus.ACTIVE else "yellow"
        console.print(f"[bold]Status:[/bold] [{colour}]{report.status.value}[/{colour}]")
        console.print(f"  {report.message}")
        table = Table(title="Per-token Limits", show_header=True)
        table.add_column("Asset", style="cyan")
        table.add_column("Source")
        table.add_column("Summary")
        for (key, allowance), line in zip(report.allowances.allowances.items(), report.lines):
            table.add_row(key, allowance.source.value, line)
        if report.allowances.allowances:
            console.print(table)

    if amount is not None:
        result = check_limits_before_transaction(report, token, amount)
        console.print(f"\n[bold]Pre-check:[/bold] {result.decision.value}: {result.reason}")
        if not result.can_proceed:
            sys.exit(2)


# ------------------------------------------------------------------
# diagnose
# ------------------------------------------------------------------


@cli.command(name="diagnose")
@click.argument("message")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the diagnosis as JSON.")
def diagnose_command(message: str, as_json: bool) -> None:
    """Classify the failed-execution error MESSAGE."""
    from delegation_authority.diagnosis import diagnose

    diagnosis = diagnose(message)
    if as_json:
        console.print_json(json.dumps(diagnosis.to_dict()))
        return

    colour = "yellow" if diagnosis.matched else "red"
    console.print(f"[bold]Diagnosis:[/bold] [{colour}]{diagnosis.code.value}[/{colour}]")
    if diagnosis.revert_reason:
        console.print(f"  Revert reason: {diagnosis.revert_reason}")
    console.print(diagnosis.summary(), markup=False)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _chain_config(chain_id: int):  # type: ignore[no-untyped-def]
    from delegation_authority.config import get_chain_config

    try:
        return get_chain_config(chain_id)
    except KeyError as exc:
        console.print(f"[red]Error:[/red] {exc.args[0]}")
        sys.exit(1)


def _read_context(value: str) -> str:
    """Return *value* if it is hex, else the stripped contents of the file it names."""
    if value.startswith("0x") or value.startswith("0X"):
        return value
    path = Path(value)
    if not path.is_file():
        console.print(f"[red]Error:[/red] {value!r} is neither hex nor a readable file.")
        sys.exit(1)
    return path.read_text(encoding="utf-8").strip()


def _make_reader(rpc_url: str, chain_id: int, delegation_manager: str, timeout: float):  # type: ignore[no-untyped-def]
    from delegation_authority.enforcers.reader import Web3ChainReader

    return Web3ChainReader.from_rpc_url(
        rpc_url, chain_id, delegation_manager, request_timeout=timeout
    )


if __name__ == "__main__":
    cli()
