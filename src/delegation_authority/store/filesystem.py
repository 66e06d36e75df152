"""Filesystem-backed sub-delegation store.

Documents are stored as JSON under *base_dir*, one subdirectory per owner
and one file per schedule id::

    <base_dir>/<owner lowercased>/<schedule id>.json

Writes go to a temporary file that is then renamed over the target, so a
reader never observes a half-written document.
"""
from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from delegation_authority.store.base import (
    SubDelegationStore,
    _now_ms,
    document_key,
    merge_record,
)

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def _safe_name(value: str) -> str:
    cleaned = _UNSAFE.sub("_", value)
    if cleaned in ("", ".", ".."):
        raise ValueError(f"Unusable storage name: {value!r}")
    return cleaned


class FilesystemSubDelegationStore(SubDelegationStore):
    """JSON-file store.

    Parameters
    ----------
    base_dir:
        Root directory for stored documents. Created if missing.
    clock_ms:
        Source of the ``updatedAt`` timestamp.
    """

    def __init__(self, base_dir: Path, clock_ms: Callable[[], int] = _now_ms) -> None:
        self._base_dir = Path(base_dir)
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._clock_ms = clock_ms
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # SubDelegationStore interface
    # ------------------------------------------------------------------

    def put(self, owner: str, schedule_id: str, record: Mapping[str, Any]) -> dict[str, Any]:
        key = document_key(owner, schedule_id)
        path = self._path(owner, schedule_id)
        with self._lock:
            merged = merge_record(self._read(path), owner, schedule_id, record, self._clock_ms())
            self._write(path, merged)
        logger.info("sub-delegation stored key=%s", key)
        return merged

    def get(self, owner: str, schedule_id: str) -> Optional[dict[str, Any]]:
        document_key(owner, schedule_id)
        with self._lock:
            return self._read(self._path(owner, schedule_id))

    def list_for_owner(self, owner: str) -> list[dict[str, Any]]:
        owner_dir = self._base_dir / _safe_name(owner.lower())
        if not owner_dir.is_dir():
            return []
        with self._lock:
            documents = [self._read(path) for path in sorted(owner_dir.glob("*.json"))]
        return sorted(
            (doc for doc in documents if doc is not None),
            key=lambda d: str(d.get("scheduleId", "")),
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _path(self, owner: str, schedule_id: str) -> Path:
        return self._base_dir / _safe_name(owner.lower()) / f"{_safe_name(schedule_id)}.json"

    @staticmethod
    def _read(path: Path) -> Optional[dict[str, Any]]:
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    @staticmethod
    def _write(path: Path, document: Mapping[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
