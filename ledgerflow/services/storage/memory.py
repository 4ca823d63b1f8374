"""
In-Memory Storage Implementation

Used by the test-suite and for local runs without a Google Sheets
spreadsheet. Behaves like the remote store where the engine cares:
- ids are opaque strings assigned on insert
- inserts refuse a sequence_number that is already taken
- updates are partial (only given fields change); None unsets a field

None of the coroutines below await anything, so each one runs to
completion without interleaving and needs no lock.
"""

import copy
from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from ledgerflow.models.audit import AuditEvent
from ledgerflow.services.storage.interface import (
    AuditStorageInterface,
    DocumentStorageInterface,
    NotFoundError,
    SequenceConflictError,
    key_matches,
)


class InMemoryDocumentStorage(DocumentStorageInterface):
    """Dict-backed document store."""

    def __init__(self, collections: Optional[dict[str, list[dict[str, Any]]]] = None):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        for name, documents in (collections or {}).items():
            self.add_documents(name, documents)

    def add_documents(self, collection: str, documents: list[dict[str, Any]]) -> list[str]:
        """Seed documents directly, bypassing constraints. Returns their ids."""
        store = self._collections.setdefault(collection, {})
        ids = []
        for document in documents:
            doc = copy.deepcopy(document)
            doc_id = str(doc.pop("id", None) or uuid4())
            store[doc_id] = doc
            ids.append(doc_id)
        return ids

    def _collection(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    async def list_documents(self, collection: str) -> list[dict[str, Any]]:
        return [
            {**copy.deepcopy(doc), "id": doc_id}
            for doc_id, doc in self._collection(collection).items()
        ]

    async def find_by_natural_key(
        self,
        collection: str,
        key: dict[str, Any],
    ) -> Optional[dict[str, Any]]:
        for doc_id, doc in self._collection(collection).items():
            if key_matches(doc, key):
                return {**copy.deepcopy(doc), "id": doc_id}
        return None

    async def insert(self, collection: str, fields: dict[str, Any]) -> str:
        store = self._collection(collection)
        sequence_number = fields.get("sequence_number")
        if sequence_number is not None:
            for doc in store.values():
                existing = doc.get("sequence_number")
                if existing is not None and int(existing) == int(sequence_number):
                    raise SequenceConflictError(
                        f"Sequence number {sequence_number} already used in {collection}"
                    )

        doc_id = uuid4().hex
        now = datetime.utcnow().isoformat()
        doc = {k: v for k, v in copy.deepcopy(fields).items() if v is not None}
        doc.pop("id", None)
        doc.setdefault("created_at", now)
        doc["updated_at"] = now
        store[doc_id] = doc
        return doc_id

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
    ) -> None:
        store = self._collection(collection)
        if doc_id not in store:
            raise NotFoundError(f"Document not found in {collection}: {doc_id}")
        changes = copy.deepcopy(fields)
        changes.pop("id", None)
        for field, value in changes.items():
            if value is None:
                store[doc_id].pop(field, None)
            else:
                store[doc_id][field] = value
        store[doc_id]["updated_at"] = datetime.utcnow().isoformat()

    async def max_sequence_number(self, collection: str) -> int:
        numbers = [
            int(doc["sequence_number"])
            for doc in self._collection(collection).values()
            if doc.get("sequence_number") is not None
        ]
        return max(numbers, default=0)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events
