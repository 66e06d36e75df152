"""Tests for delegation_authority.enforcers.terms and the enforcer table."""
from __future__ import annotations

import pytest

from delegation_authority.enforcers import EnforcerRole, EnforcerTable
from delegation_authority.enforcers.terms import (
    MAX_PLAUSIBLE_TIMESTAMP,
    MalformedTerms,
    PeriodTransferTerms,
    decode_allowed_targets_terms,
    decode_erc20_amount_terms,
    decode_erc20_period_terms,
    decode_expiration,
    decode_native_period_terms,
    encode_allowed_targets_terms,
    encode_erc20_amount_terms,
    encode_erc20_period_terms,
    encode_native_period_terms,
    encode_timestamp_terms,
)

from conftest import NOW, USDC_ADDRESS

YEAR_2200 = 7_258_118_400


class TestPeriodTerms:
    def test_native_layout(self) -> None:
        terms = encode_native_period_terms(10**16, 86400, NOW)
        assert len(terms) == 96
        decoded = decode_native_period_terms(terms)
        assert decoded == PeriodTransferTerms(10**16, 86400, NOW)

    def test_erc20_layout(self) -> None:
        terms = encode_erc20_period_terms(USDC_ADDRESS, 5_000_000, 3600, NOW)
        assert len(terms) == 116
        decoded = decode_erc20_period_terms(terms)
        assert decoded.token_address.lower() == USDC_ADDRESS
        assert decoded.period_amount == 5_000_000

    def test_wrong_length_raises(self) -> None:
        with pytest.raises(MalformedTerms):
            decode_native_period_terms(b"\x00" * 95)

    def test_next_reset_is_end_of_current_period(self) -> None:
        terms = PeriodTransferTerms(period_amount=1, period_duration=100, start_date=1000)
        assert terms.next_reset(1250) == 1300
        assert terms.next_reset(1000) == 1100

    def test_next_reset_before_start_is_none(self) -> None:
        terms = PeriodTransferTerms(period_amount=1, period_duration=100, start_date=1000)
        assert terms.next_reset(999) is None


class TestAmountTerms:
    def test_erc20_total_layout(self) -> None:
        terms = encode_erc20_amount_terms(USDC_ADDRESS, 10**9)
        assert len(terms) == 52
        assert decode_erc20_amount_terms(terms).max_amount == 10**9


class TestExpiration:
    def test_before_threshold_is_read(self) -> None:
        assert decode_expiration(encode_timestamp_terms(0, NOW)) == NOW

    def test_year_2200_is_rejected(self) -> None:
        assert decode_expiration(encode_timestamp_terms(0, YEAR_2200)) is None

    def test_bound_is_exclusive(self) -> None:
        assert decode_expiration(encode_timestamp_terms(0, MAX_PLAUSIBLE_TIMESTAMP)) is None
        assert decode_expiration(encode_timestamp_terms(0, MAX_PLAUSIBLE_TIMESTAMP - 1)) is not None

    def test_zero_is_rejected(self) -> None:
        assert decode_expiration(encode_timestamp_terms(0, 0)) is None

    def test_nonzero_after_threshold_reads_as_implausible(self) -> None:
        assert decode_expiration(encode_timestamp_terms(1, NOW)) is None

    def test_short_terms_are_rejected(self) -> None:
        assert decode_expiration(b"\x01" * 31) is None

    def test_timestamp_out_of_range_raises(self) -> None:
        with pytest.raises(MalformedTerms):
            encode_timestamp_terms(0, 2**128)


class TestAllowedTargets:
    def test_round_trip(self) -> None:
        terms = encode_allowed_targets_terms([USDC_ADDRESS])
        assert [t.lower() for t in decode_allowed_targets_terms(terms)] == [USDC_ADDRESS]

    def test_empty_target_list_raises(self) -> None:
        with pytest.raises(MalformedTerms):
            encode_allowed_targets_terms([])


class TestEnforcerTable:
    def test_role_lookup_ignores_case(self) -> None:
        table = EnforcerTable({EnforcerRole.TIMESTAMP: USDC_ADDRESS})
        assert table.role_of(USDC_ADDRESS.upper().replace("0X", "0x")) is EnforcerRole.TIMESTAMP

    def test_unknown_address_has_no_role(self) -> None:
        table = EnforcerTable({})
        assert table.role_of(USDC_ADDRESS) is None

    def test_missing_role_raises_key_error(self) -> None:
        with pytest.raises(KeyError):
            EnforcerTable({}).address_of(EnforcerRole.TIMESTAMP)

    def test_duplicate_address_raises(self) -> None:
        with pytest.raises(ValueError, match="both"):
            EnforcerTable(
                {
                    EnforcerRole.TIMESTAMP: USDC_ADDRESS,
                    EnforcerRole.ALLOWED_TARGETS: USDC_ADDRESS,
                }
            )

    def test_role_names_are_accepted(self) -> None:
        table = EnforcerTable({"TimestampEnforcer": USDC_ADDRESS})
        assert table.has_role(EnforcerRole.TIMESTAMP)
        assert table.to_dict() == {"TimestampEnforcer": table.address_of(EnforcerRole.TIMESTAMP)}
