"""Persistence of created sub-delegations.

Quick start
-----------
::

    from delegation_authority.store import InMemorySubDelegationStore

    store = InMemorySubDelegationStore()
    store.put("0xAbC...", "schedule-1", record.to_dict())
    store.get("0xabc...", "schedule-1")
"""
from __future__ import annotations

from delegation_authority.store.base import SubDelegationStore, document_key, merge_record
from delegation_authority.store.filesystem import FilesystemSubDelegationStore
from delegation_authority.store.memory import InMemorySubDelegationStore

__all__ = [
    "FilesystemSubDelegationStore",
    "InMemorySubDelegationStore",
    "SubDelegationStore",
    "document_key",
    "merge_record",
]
