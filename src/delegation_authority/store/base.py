"""Sub-delegation storage contract.

Records are opaque JSON-compatible mappings addressed by the owner's wallet
address and a caller-chosen schedule id. Writes merge into any existing
record: fields present in the new write overwrite, fields absent from it
persist. Owner addresses are compared case-insensitively.
"""
from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def document_key(owner: str, schedule_id: str) -> str:
    """Return the storage key of the (owner, schedule) pair."""
    if not owner:
        raise ValueError("owner must not be empty")
    if not schedule_id:
        raise ValueError("schedule_id must not be empty")
    return f"{owner.lower()}_{schedule_id}"


def merge_record(
    existing: Optional[Mapping[str, Any]],
    owner: str,
    schedule_id: str,
    record: Mapping[str, Any],
    updated_at: int,
) -> dict[str, Any]:
    """Return the document that results from writing *record* over *existing*."""
    merged: dict[str, Any] = dict(existing or {})
    merged.update(record)
    merged["walletAddress"] = owner.lower()
    merged["scheduleId"] = schedule_id
    merged["updatedAt"] = updated_at
    return merged


class SubDelegationStore(ABC):
    """Abstract base class for sub-delegation storage backends."""

    @abstractmethod
    def put(self, owner: str, schedule_id: str, record: Mapping[str, Any]) -> dict[str, Any]:
        """Merge *record* into the stored document and return the result.

        Parameters
        ----------
        owner:
            Wallet address the sub-delegation acts for.
        schedule_id:
            Caller-chosen identity of the automation schedule.
        record:
            Fields to write, typically ``SubDelegationRecord.to_dict()``.
        """

    @abstractmethod
    def get(self, owner: str, schedule_id: str) -> Optional[dict[str, Any]]:
        """Return the stored document, or None if there is none."""

    @abstractmethod
    def list_for_owner(self, owner: str) -> list[dict[str, Any]]:
        """Return every document stored for *owner*, ordered by schedule id."""
