"""Classification of failed delegation executions.

Quick start
-----------
::

    from delegation_authority.diagnosis import diagnose

    result = diagnose("NativeTokenPeriodTransferEnforcer:transfer-amount-exceeded")
    result.code        # DiagnosisCode.NATIVE_TOKEN_LIMIT_EXCEEDED
    result.remedies    # ordered list of suggested next steps
"""
from __future__ import annotations

from delegation_authority.diagnosis.engine import Diagnosis, diagnose
from delegation_authority.diagnosis.revert import decode_error_string, extract_revert_reason
from delegation_authority.diagnosis.rules import RULES, DiagnosisCode, DiagnosisRule, match_rule

__all__ = [
    "Diagnosis",
    "DiagnosisCode",
    "DiagnosisRule",
    "RULES",
    "decode_error_string",
    "diagnose",
    "extract_revert_reason",
    "match_rule",
]
