"""Classification of failed delegation executions.

:func:`diagnose` maps free-form failure text onto the ordered rule table
and, when a limits report is supplied, attaches the live remaining
allowances and reset times so the explanation is concrete. It is a pure
function and never raises for unrecognised input.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from delegation_authority.diagnosis.revert import extract_revert_reason
from delegation_authority.diagnosis.rules import (
    UNKNOWN_CAUSES,
    UNKNOWN_EXPLANATION,
    UNKNOWN_MEANING,
    UNKNOWN_REMEDIES,
    DiagnosisCode,
    match_rule,
)
from delegation_authority.limits import (
    LimitsReport,
    LimitStatus,
    describe_allowance,
    format_time_remaining,
)
from delegation_authority.scopes import find_scope

logger = logging.getLogger(__name__)


@dataclass
class Diagnosis:
    """Classified failure with optional live-allowance context."""

    error_message: str
    code: DiagnosisCode
    meaning: str
    user_explanation: str
    remedies: list[str]
    affected_scope: Optional[str] = None
    revert_reason: Optional[str] = None
    possible_causes: list[str] = field(default_factory=list)
    limit_lines: list[str] = field(default_factory=list)
    expires_in: Optional[str] = None
    limits_status: Optional[LimitStatus] = None

    @property
    def matched(self) -> bool:
        return self.code is not DiagnosisCode.UNKNOWN

    def summary(self) -> str:
        """Render a short multi-line explanation for display."""
        parts = [f"Reason: {self.user_explanation}", f"What happened: {self.meaning}"]
        if self.limit_lines:
            parts.append("Current limits:")
            parts.extend(f"- {line}" for line in self.limit_lines)
        if self.expires_in:
            parts.append(f"Delegation expires in: {self.expires_in}")
        if self.possible_causes:
            parts.append("Possible causes:")
            parts.extend(f"- {cause}" for cause in self.possible_causes)
        parts.append("Next steps:")
        parts.extend(f"- {step}" for step in self.remedies)
        return "\n".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "errorMessage": self.error_message,
            "diagnosis": self.code.value,
            "meaning": self.meaning,
            "userExplanation": self.user_explanation,
            "remedies": list(self.remedies),
            "affectedScope": self.affected_scope,
            "revertReason": self.revert_reason,
            "possibleCauses": list(self.possible_causes),
            "currentLimits": list(self.limit_lines),
            "expiresIn": self.expires_in,
            "limitsStatus": self.limits_status.value if self.limits_status else None,
        }


def _enrich(diagnosis: Diagnosis, report: LimitsReport, now: int) -> None:
    diagnosis.limits_status = report.status
    diagnosis.limit_lines = [
        describe_allowance(allowance, find_scope(report.scopes, key), now)
        for key, allowance in report.allowances.allowances.items()
    ]
    if report.expires_at is not None:
        diagnosis.expires_in = format_time_remaining(report.expires_at - now)


def diagnose(
    error_message: object,
    report: LimitsReport | None = None,
    now: int | None = None,
) -> Diagnosis:
    """Classify *error_message* and attach context from *report*.

    Parameters
    ----------
    error_message:
        Failure text (or raw revert data) from a rejected execution.
    report:
        Limits report already obtained by the caller. No chain reads are made
        here.
    now:
        Current unix time, for relative times in the explanation.

    Returns
    -------
    Diagnosis
        ``code`` is ``UNKNOWN`` when no rule matches.
    """
    now = int(time.time()) if now is None else now
    if isinstance(error_message, (bytes, bytearray)):
        text = "0x" + bytes(error_message).hex()
    else:
        text = "" if error_message is None else str(error_message)

    revert_reason = extract_revert_reason(text)
    haystack = text if revert_reason is None else f"{revert_reason}\n{text}"
    rule = match_rule(haystack)

    if rule is None:
        diagnosis = Diagnosis(
            error_message=text,
            code=DiagnosisCode.UNKNOWN,
            meaning=UNKNOWN_MEANING,
            user_explanation=UNKNOWN_EXPLANATION,
            remedies=list(UNKNOWN_REMEDIES),
            revert_reason=revert_reason,
            possible_causes=list(UNKNOWN_CAUSES),
        )
    else:
        diagnosis = Diagnosis(
            error_message=text,
            code=rule.code,
            meaning=rule.meaning,
            user_explanation=rule.user_explanation,
            remedies=[rule.remedy, *rule.next_steps],
            affected_scope=rule.scope,
            revert_reason=revert_reason,
        )

    if report is not None:
        _enrich(diagnosis, report, now)

    logger.debug("diagnosis code=%s reason=%s", diagnosis.code.value, revert_reason)
    return diagnosis
