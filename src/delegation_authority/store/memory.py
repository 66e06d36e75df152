"""In-process sub-delegation store."""
from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Callable, Mapping, Optional

from delegation_authority.store.base import (
    SubDelegationStore,
    _now_ms,
    document_key,
    merge_record,
)

logger = logging.getLogger(__name__)


class InMemorySubDelegationStore(SubDelegationStore):
    """Dictionary-backed store. Thread-safe; documents are copied on the way in and out.

    Parameters
    ----------
    clock_ms:
        Source of the ``updatedAt`` timestamp.
    """

    def __init__(self, clock_ms: Callable[[], int] = _now_ms) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._clock_ms = clock_ms

    def put(self, owner: str, schedule_id: str, record: Mapping[str, Any]) -> dict[str, Any]:
        key = document_key(owner, schedule_id)
        with self._lock:
            merged = merge_record(
                self._documents.get(key),
                owner,
                schedule_id,
                copy.deepcopy(dict(record)),
                self._clock_ms(),
            )
            self._documents[key] = merged
            logger.info("sub-delegation stored key=%s", key)
            return copy.deepcopy(merged)

    def get(self, owner: str, schedule_id: str) -> Optional[dict[str, Any]]:
        key = document_key(owner, schedule_id)
        with self._lock:
            document = self._documents.get(key)
            return copy.deepcopy(document) if document is not None else None

    def list_for_owner(self, owner: str) -> list[dict[str, Any]]:
        wallet = owner.lower()
        with self._lock:
            documents = [
                copy.deepcopy(doc)
                for doc in self._documents.values()
                if doc.get("walletAddress") == wallet
            ]
        return sorted(documents, key=lambda d: str(d.get("scheduleId", "")))

    def __len__(self) -> int:
        with self._lock:
            return len(self._documents)
