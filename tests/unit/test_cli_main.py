"""Tests for delegation_authority.cli.main: CLI commands via Click test runner."""
from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner
from eth_utils import encode_hex

from delegation_authority.cli import main as cli_main
from delegation_authority.cli.main import cli
from delegation_authority.delegation import create_sub_delegation, hash_delegation
from delegation_authority.enforcers import EnforcerRole, PeriodTransferAmount
from delegation_authority.enforcers.terms import encode_native_period_terms

from conftest import AGENT_KEY, NOW, SEPOLIA, SUB_AGENT_KEY, USER_ADDRESS

DAY = 86400


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "DELEGATION_ENFORCERS_FILE",
        "DELEGATION_STORE_DIR",
        "DELEGATION_SIGNER_KEY",
        "DELEGATION_QUERY_TIMEOUT_SECONDS",
        "DELEGATION_MAX_WORKERS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def chained_context(parent_context: str, agent_signer, sub_agent_signer, chain_config) -> str:
    record = create_sub_delegation(
        parent_context,
        agent_signer,
        sub_agent_signer.address,
        SEPOLIA,
        chain_config.delegation_manager,
    )
    return record.chained_permissions_context


@pytest.fixture()
def grant_file(tmp_path: Path, make_context, caveat_for) -> Path:
    context = make_context(
        [
            caveat_for(
                EnforcerRole.NATIVE_TOKEN_PERIOD_TRANSFER,
                encode_native_period_terms(10**16, DAY, NOW - 3600),
            )
        ]
    )
    path = tmp_path / "grant.json"
    path.write_text(
        json.dumps(
            {
                "walletAddress": USER_ADDRESS,
                "chainId": SEPOLIA,
                "allPermissionContexts": {"native": context},
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture()
def patched_reader(monkeypatch: pytest.MonkeyPatch, fake_reader):
    fake_reader.responses["native"] = PeriodTransferAmount(4 * 10**15, False, 0)
    monkeypatch.setattr(cli_main, "_make_reader", lambda *args, **kwargs: fake_reader)
    return fake_reader


# ---------------------------------------------------------------------------
# Root CLI
# ---------------------------------------------------------------------------


class TestRootCLI:
    def test_help_exits_zero(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "sub-delegate" in result.output

    def test_version_command(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert "delegation-authority" in result.output.lower()


# ---------------------------------------------------------------------------
# hash / decode / verify-chain
# ---------------------------------------------------------------------------


class TestHashCommand:
    def test_prints_structured_hash(self, runner: CliRunner, tmp_path: Path, root_delegation) -> None:
        path = tmp_path / "delegation.json"
        path.write_text(json.dumps(root_delegation.to_dict()), encoding="utf-8")
        result = runner.invoke(cli, ["hash", str(path)])
        assert result.exit_code == 0
        assert encode_hex(hash_delegation(root_delegation)) in result.output

    def test_prints_digest_for_chain(self, runner: CliRunner, tmp_path: Path, root_delegation) -> None:
        path = tmp_path / "delegation.json"
        path.write_text(json.dumps(root_delegation.to_dict()), encoding="utf-8")
        result = runner.invoke(cli, ["hash", str(path), "--chain-id", str(SEPOLIA)])
        assert result.exit_code == 0
        assert "Digest:" in result.output

    def test_invalid_file_exits_one(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "delegation.json"
        path.write_text(json.dumps({"delegate": "0x12"}), encoding="utf-8")
        result = runner.invoke(cli, ["hash", str(path)])
        assert result.exit_code == 1


class TestDecodeCommand:
    def test_json_output(self, runner: CliRunner, chained_context: str, sub_agent_signer) -> None:
        result = runner.invoke(cli, ["decode", chained_context, "--json"])
        assert result.exit_code == 0
        decoded = json.loads(result.output)
        assert len(decoded) == 2
        assert decoded[0]["delegate"] == sub_agent_signer.address

    def test_table_output(self, runner: CliRunner, chained_context: str) -> None:
        result = runner.invoke(cli, ["decode", chained_context])
        assert result.exit_code == 0
        assert "Total: 2 delegation(s)" in result.output

    def test_reads_context_from_file(self, runner: CliRunner, tmp_path: Path, chained_context: str) -> None:
        path = tmp_path / "context.hex"
        path.write_text(chained_context + "\n", encoding="utf-8")
        result = runner.invoke(cli, ["decode", str(path), "--json"])
        assert result.exit_code == 0

    def test_empty_context_exits_one(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["decode", "0x"])
        assert result.exit_code == 1

    def test_missing_file_exits_one(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["decode", str(tmp_path / "nope")])
        assert result.exit_code == 1


class TestVerifyChainCommand:
    def test_valid_chain_with_signatures(self, runner: CliRunner, chained_context: str) -> None:
        result = runner.invoke(cli, ["verify-chain", chained_context, "--chain-id", str(SEPOLIA)])
        assert result.exit_code == 0
        assert "PASS" in result.output
        assert "FAIL" not in result.output

    def test_wrong_chain_signature_fails(self, runner: CliRunner, chained_context: str) -> None:
        result = runner.invoke(cli, ["verify-chain", chained_context, "--chain-id", "1"])
        assert result.exit_code == 1
        assert "FAIL" in result.output

    def test_depth_limit(self, runner: CliRunner, chained_context: str) -> None:
        result = runner.invoke(cli, ["verify-chain", chained_context, "--max-depth", "0"])
        assert result.exit_code == 1

    def test_unknown_chain_exits_one(self, runner: CliRunner, chained_context: str) -> None:
        result = runner.invoke(cli, ["verify-chain", chained_context, "--chain-id", "999"])
        assert result.exit_code == 1


# ---------------------------------------------------------------------------
# sub-delegate
# ---------------------------------------------------------------------------


class TestSubDelegateCommand:
    def test_creates_stores_and_audits(
        self,
        runner: CliRunner,
        tmp_path: Path,
        parent_context: str,
        root_delegation,
        sub_agent_signer,
    ) -> None:
        output = tmp_path / "record.json"
        audit_log = tmp_path / "audit.jsonl"
        store_dir = tmp_path / "store"
        result = runner.invoke(
            cli,
            [
                "sub-delegate",
                "--parent-context",
                parent_context,
                "--sub-agent",
                sub_agent_signer.address,
                "--key",
                AGENT_KEY,
                "--amount",
                "0.001",
                "--owner",
                USER_ADDRESS,
                "--schedule-id",
                "daily-payout",
                "--store-dir",
                str(store_dir),
                "--audit-log",
                str(audit_log),
                "--output",
                str(output),
            ],
        )
        assert result.exit_code == 0, result.output
        record = json.loads(output.read_text(encoding="utf-8"))
        assert record["parentHash"] == encode_hex(hash_delegation(root_delegation))
        assert len(record["subDelegation"]["caveats"]) == 1
        stored = json.loads((store_dir / USER_ADDRESS / "daily-payout.json").read_text(encoding="utf-8"))
        assert stored["to"] == sub_agent_signer.address
        events = [json.loads(line)["event_type"] for line in audit_log.read_text().splitlines()]
        assert events == ["sub_delegation_created", "sub_delegation_stored"]

    def test_key_from_environment(
        self, runner: CliRunner, parent_context: str, sub_agent_signer
    ) -> None:
        result = runner.invoke(
            cli,
            ["sub-delegate", "--parent-context", parent_context, "--sub-agent", sub_agent_signer.address],
            env={"DELEGATION_SIGNER_KEY": AGENT_KEY},
        )
        assert result.exit_code == 0, result.output
        assert "Parent hash:" in result.output

    def test_wrong_key_exits_one(self, runner: CliRunner, parent_context: str, sub_agent_signer) -> None:
        result = runner.invoke(
            cli,
            [
                "sub-delegate",
                "--parent-context",
                parent_context,
                "--sub-agent",
                sub_agent_signer.address,
                "--key",
                SUB_AGENT_KEY,
            ],
        )
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_store_requires_directory(self, runner: CliRunner, parent_context: str, sub_agent_signer) -> None:
        result = runner.invoke(
            cli,
            [
                "sub-delegate",
                "--parent-context",
                parent_context,
                "--sub-agent",
                sub_agent_signer.address,
                "--key",
                AGENT_KEY,
                "--owner",
                USER_ADDRESS,
                "--schedule-id",
                "daily",
            ],
        )
        assert result.exit_code == 1


# ---------------------------------------------------------------------------
# limits
# ---------------------------------------------------------------------------


class TestLimitsCommand:
    def test_json_report(self, runner: CliRunner, grant_file: Path, patched_reader) -> None:
        result = runner.invoke(cli, ["limits", str(grant_file), "--json"])
        assert result.exit_code == 0, result.output
        report = json.loads(result.output)
        assert report["status"] == "ACTIVE"
        assert report["limits"]["native"]["availableAmount"] == str(4 * 10**15)

    def test_table_report(self, runner: CliRunner, grant_file: Path, patched_reader) -> None:
        result = runner.invoke(cli, ["limits", str(grant_file)])
        assert result.exit_code == 0
        assert "ACTIVE" in result.output

    def test_precheck_within_allowance(self, runner: CliRunner, grant_file: Path, patched_reader) -> None:
        result = runner.invoke(cli, ["limits", str(grant_file), "--token", "ETH", "--amount", "1000"])
        assert result.exit_code == 0
        assert "ALLOW" in result.output

    def test_precheck_over_allowance_exits_two(
        self, runner: CliRunner, grant_file: Path, patched_reader
    ) -> None:
        result = runner.invoke(cli, ["limits", str(grant_file), "--amount", str(10**18)])
        assert result.exit_code == 2
        assert "BLOCK" in result.output

    def test_unverified_precheck_exits_two(
        self, runner: CliRunner, grant_file: Path, patched_reader
    ) -> None:
        patched_reader.responses.clear()
        result = runner.invoke(cli, ["limits", str(grant_file), "--amount", "1"])
        assert result.exit_code == 2
        assert "UNVERIFIED" in result.output

    def test_invalid_grant_file(self, runner: CliRunner, tmp_path: Path, patched_reader) -> None:
        path = tmp_path / "grant.json"
        path.write_text("{}", encoding="utf-8")
        result = runner.invoke(cli, ["limits", str(path)])
        assert result.exit_code == 1


# ---------------------------------------------------------------------------
# diagnose
# ---------------------------------------------------------------------------


class TestDiagnoseCommand:
    def test_known_failure(self, runner: CliRunner) -> None:
        result = runner.invoke(
            cli, ["diagnose", "NativeTokenPeriodTransferEnforcer:transfer-amount-exceeded"]
        )
        assert result.exit_code == 0
        assert "NATIVE_TOKEN_LIMIT_EXCEEDED" in result.output

    def test_unknown_failure(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["diagnose", "garbled nonsense error xyz"])
        assert result.exit_code == 0
        assert "UNKNOWN" in result.output
        assert "Next steps:" in result.output

    def test_json_output(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["diagnose", "AllowedTargetsEnforcer:target-address-not-allowed", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["diagnosis"] == "TARGET_NOT_ALLOWED"
