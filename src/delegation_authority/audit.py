"""DelegationAuditLogger: JSONL audit trail for delegation events.

Every sub-delegation built or stored, every allowance check and every
failure diagnosis is appended as one JSON line to the configured file.
Signatures and key material are never written; delegations are identified
by their hashes.

If no file path is configured the logger keeps events in an in-memory
buffer that can be drained via :meth:`drain_buffer`.
"""
from __future__ import annotations

import datetime
import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from delegation_authority.delegation.builder import SubDelegationRecord
    from delegation_authority.diagnosis.engine import Diagnosis
    from delegation_authority.limits import LimitsReport


@dataclass
class AuditEvent:
    """A single auditable delegation event.

    Parameters
    ----------
    event_type:
        Short snake_case string identifying the event.
    subject:
        Address the event is about (usually the wallet owner or delegate).
    actor:
        Address or component that triggered the event. Defaults to "system".
    details:
        Arbitrary JSON-compatible metadata.
    timestamp:
        UTC datetime of the event. Defaults to now.
    """

    event_type: str
    subject: str
    actor: str = "system"
    details: dict[str, object] = field(default_factory=dict)
    timestamp: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type,
            "subject": self.subject,
            "actor": self.actor,
            "details": self.details,
        }


class DelegationAuditLogger:
    """Append-only JSONL audit logger.

    Thread-safe.

    Parameters
    ----------
    log_path:
        Path to the JSONL file; parent directories are created. If None,
        events are buffered in memory only.
    """

    def __init__(self, log_path: Path | None = None) -> None:
        self._log_path = log_path
        self._buffer: list[str] = []
        self._lock = threading.Lock()

        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, event: AuditEvent) -> None:
        line = json.dumps(event.to_dict(), separators=(",", ":"), default=str)
        with self._lock:
            if self._log_path is not None:
                with self._log_path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
            else:
                self._buffer.append(line)

    def log_event(
        self,
        event_type: str,
        subject: str,
        actor: str = "system",
        **details: object,
    ) -> None:
        """Log a simple event without constructing an AuditEvent."""
        self.log(
            AuditEvent(event_type=event_type, subject=subject, actor=actor, details=dict(details))
        )

    # ------------------------------------------------------------------
    # Delegation events
    # ------------------------------------------------------------------

    def log_sub_delegation_created(self, record: "SubDelegationRecord") -> None:
        """Log a sub_delegation_created event (no signature is recorded)."""
        self.log_event(
            "sub_delegation_created",
            subject=record.to,
            actor=record.delegator,
            parent_hash=record.parent_hash,
            chain_id=record.chain_id,
            delegation_manager=record.delegation_manager,
            caveat_count=len(record.sub_delegation.caveats),
            created_at=record.created_at,
        )

    def log_sub_delegation_stored(self, owner: str, schedule_id: str, delegate: str) -> None:
        self.log_event(
            "sub_delegation_stored",
            subject=owner.lower(),
            schedule_id=schedule_id,
            delegate=delegate,
        )

    def log_allowance_queried(self, report: "LimitsReport") -> None:
        self.log_event(
            "allowance_queried",
            subject=report.wallet_address,
            chain_id=report.chain_id,
            status=report.status.value,
            sources={k: a.source.value for k, a in report.allowances.allowances.items()},
            has_multiple_expirations=report.has_multiple_expirations,
        )

    def log_failure_diagnosed(self, subject: str, diagnosis: "Diagnosis") -> None:
        self.log_event(
            "failure_diagnosed",
            subject=subject,
            diagnosis=diagnosis.code.value,
            revert_reason=diagnosis.revert_reason,
        )

    # ------------------------------------------------------------------
    # Buffer access
    # ------------------------------------------------------------------

    def drain_buffer(self) -> list[str]:
        """Return and clear the in-memory event buffer, oldest first."""
        with self._lock:
            events = list(self._buffer)
            self._buffer.clear()
        return events

    def read_log(self, tail: int | None = None) -> list[dict[str, object]]:
        """Return parsed events, optionally only the last *tail* of them."""
        if self._log_path is None or not self._log_path.exists():
            with self._lock:
                lines = list(self._buffer)
        else:
            with self._lock:
                lines = self._log_path.read_text(encoding="utf-8").splitlines()

        parsed: list[dict[str, object]] = []
        for line in lines:
            stripped = line.strip()
            if not stripped:
                continue
            try:
                parsed.append(json.loads(stripped))
            except json.JSONDecodeError:
                continue

        if tail is not None:
            return parsed[-tail:]
        return parsed
