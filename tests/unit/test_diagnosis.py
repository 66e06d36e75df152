"""Tests for delegation_authority.diagnosis: revert extraction and failure classification."""
from __future__ import annotations

import pytest
from eth_abi import encode

from delegation_authority.diagnosis import (
    RULES,
    DiagnosisCode,
    decode_error_string,
    diagnose,
    extract_revert_reason,
    match_rule,
)
from delegation_authority.diagnosis.revert import ERROR_STRING_SELECTOR
from delegation_authority.enforcers import EnforcerRole, PeriodTransferAmount
from delegation_authority.enforcers.terms import encode_native_period_terms
from delegation_authority.limits import DelegationGrant, LimitStatus, check_delegation_limits

from conftest import NOW, USER_ADDRESS

NATIVE_LIMIT = "NativeTokenPeriodTransferEnforcer:transfer-amount-exceeded"


def error_string(reason: str) -> bytes:
    return ERROR_STRING_SELECTOR + encode(["string"], [reason])


class TestExtractRevertReason:
    def test_enforcer_token_in_text(self) -> None:
        text = f"execution reverted: {NATIVE_LIMIT} (gas 21000)"
        assert extract_revert_reason(text) == NATIVE_LIMIT

    def test_error_string_bytes(self) -> None:
        assert extract_revert_reason(error_string(NATIVE_LIMIT)) == NATIVE_LIMIT

    def test_error_string_hex_embedded_in_text(self) -> None:
        text = f"call failed with data 0x{error_string(NATIVE_LIMIT).hex()}"
        assert extract_revert_reason(text) == NATIVE_LIMIT

    def test_plain_error_string_is_returned(self) -> None:
        assert extract_revert_reason(error_string("Ownable: caller is not the owner")) == (
            "Ownable: caller is not the owner"
        )

    def test_nothing_found(self) -> None:
        assert extract_revert_reason("insufficient funds for gas") is None
        assert extract_revert_reason(None) is None

    def test_decode_error_string_rejects_other_selectors(self) -> None:
        assert decode_error_string(b"\x4e\x48\x7b\x71" + b"\x00" * 32) is None

    def test_decode_error_string_rejects_truncated_payload(self) -> None:
        assert decode_error_string(error_string(NATIVE_LIMIT)[:40]) is None


class TestRuleTable:
    def test_token_specific_rules_precede_generic_limit_rule(self) -> None:
        codes = [rule.code for rule in RULES]
        generic = codes.index(DiagnosisCode.LIMIT_EXCEEDED)
        for specific in (
            DiagnosisCode.NATIVE_TOKEN_LIMIT_EXCEEDED,
            DiagnosisCode.ERC20_PERIOD_LIMIT_EXCEEDED,
            DiagnosisCode.ERC20_LIMIT_EXCEEDED,
        ):
            assert codes.index(specific) < generic

    def test_every_rule_has_remedy_and_steps(self) -> None:
        for rule in RULES:
            assert rule.remedy
            assert rule.next_steps

    def test_no_match(self) -> None:
        assert match_rule("all good") is None


class TestDiagnose:
    @pytest.mark.parametrize(
        ("message", "code"),
        [
            (NATIVE_LIMIT, DiagnosisCode.NATIVE_TOKEN_LIMIT_EXCEEDED),
            (
                "ERC20PeriodTransferEnforcer:transfer-amount-exceeded",
                DiagnosisCode.ERC20_PERIOD_LIMIT_EXCEEDED,
            ),
            ("ERC20TransferAmountEnforcer:allowance-exceeded", DiagnosisCode.ERC20_LIMIT_EXCEEDED),
            ("reverted: transfer-amount-exceeded", DiagnosisCode.LIMIT_EXCEEDED),
            ("the delegation has expired", DiagnosisCode.DELEGATION_EXPIRED),
            ("CaveatEnforcer: invalid delegation", DiagnosisCode.INVALID_DELEGATION),
            ("caller is unauthorized", DiagnosisCode.UNAUTHORIZED_DELEGATE),
            ("TimestampEnforcer:early-delegation", DiagnosisCode.TIMESTAMP_CONSTRAINT),
            ("ExactCalldataEnforcer:invalid-calldata", DiagnosisCode.INVALID_CALLDATA),
            ("AllowedCalldataEnforcer:invalid-calldata", DiagnosisCode.CALLDATA_NOT_ALLOWED),
            ("AllowedTargetsEnforcer:target-address-not-allowed", DiagnosisCode.TARGET_NOT_ALLOWED),
        ],
    )
    def test_classification(self, message: str, code: DiagnosisCode) -> None:
        assert diagnose(message).code is code

    def test_native_limit_remedies(self) -> None:
        result = diagnose(f"execution reverted: {NATIVE_LIMIT}")
        assert result.matched
        assert result.revert_reason == NATIVE_LIMIT
        assert result.affected_scope == "Native ETH transfers"
        assert result.remedies[0] == "Wait for the next period to reset, or grant higher limits."
        assert len(result.remedies) > 1

    def test_unmatched_input_is_unknown_with_remedies(self) -> None:
        result = diagnose("garbled nonsense error xyz")
        assert result.code is DiagnosisCode.UNKNOWN
        assert not result.matched
        assert result.remedies
        assert len(result.possible_causes) == 4

    @pytest.mark.parametrize("message", ["", None, 42, b""])
    def test_never_raises(self, message: object) -> None:
        assert diagnose(message).code is DiagnosisCode.UNKNOWN

    def test_raw_revert_bytes(self) -> None:
        result = diagnose(error_string(NATIVE_LIMIT))
        assert result.code is DiagnosisCode.NATIVE_TOKEN_LIMIT_EXCEEDED

    def test_summary_lists_next_steps(self) -> None:
        summary = diagnose(NATIVE_LIMIT).summary()
        assert "Next steps:" in summary
        assert "- Wait for the period to reset" in summary

    def test_to_dict(self) -> None:
        d = diagnose(NATIVE_LIMIT).to_dict()
        assert d["diagnosis"] == "NATIVE_TOKEN_LIMIT_EXCEEDED"
        assert d["revertReason"] == NATIVE_LIMIT
        assert d["currentLimits"] == []


class TestDiagnoseWithReport:
    def test_report_adds_live_limits_and_expiry(self, make_context, caveat_for, enforcers, fake_reader) -> None:
        context = make_context(
            [
                caveat_for(
                    EnforcerRole.NATIVE_TOKEN_PERIOD_TRANSFER,
                    encode_native_period_terms(10**16, 86400, NOW - 3600),
                )
            ]
        )
        grant = DelegationGrant(
            wallet_address=USER_ADDRESS, permissions_context=context, expires_at=NOW + 3 * 86400
        )
        fake_reader.responses["native"] = PeriodTransferAmount(0, False, 0)
        report = check_delegation_limits(grant, enforcers, fake_reader, now=NOW)

        result = diagnose(NATIVE_LIMIT, report=report, now=NOW)

        assert result.limits_status is LimitStatus.ACTIVE
        assert result.limit_lines == ["ETH: 0 available, resets in 23h 0m"]
        assert result.expires_in == "3d 0h"
        assert "Current limits:" in result.summary()
