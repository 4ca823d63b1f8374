"""
Abstract Storage Interface

DESIGN DECISION: The engine talks to a document store through this
interface only. This allows us to:
1. Swap Google Sheets for a real document database later
2. Use in-memory storage for testing
3. Keep reconciliation logic decoupled from storage implementation

Documents are plain dicts of JSON-friendly values keyed by an opaque id.
Single-document operations are assumed atomic; batches are NOT atomic,
which is why batch_write reports an outcome per operation.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ledgerflow.models.audit import AuditEvent


class WriteOperation(BaseModel):
    """One insert or partial update inside a batch."""

    kind: str = Field(..., pattern="^(insert|update)$")
    doc_id: Optional[str] = Field(
        default=None,
        description="Target document for updates"
    )
    fields: dict[str, Any] = Field(default_factory=dict)
    tag: Optional[int] = Field(
        default=None,
        description="Caller correlation key, e.g. the original row index"
    )


class WriteResult(BaseModel):
    """Outcome of one WriteOperation."""

    success: bool
    doc_id: Optional[str] = None
    error: Optional[str] = None
    sequence_conflict: bool = False
    tag: Optional[int] = None


class DocumentStorageInterface(ABC):
    """
    Abstract interface for the document store holding transactions,
    account-chart entries and reference data.
    """

    @abstractmethod
    async def list_documents(self, collection: str) -> list[dict[str, Any]]:
        """
        Return every document in a collection.

        Each returned dict carries its id under the "id" key.

        Raises:
            StorageError: If the collection cannot be read
        """
        pass

    @abstractmethod
    async def find_by_natural_key(
        self,
        collection: str,
        key: dict[str, Any],
    ) -> Optional[dict[str, Any]]:
        """
        Find the document whose fields equal every entry of `key`.

        Returns:
            The document (with "id") if found, None otherwise

        Raises:
            StorageError: If the lookup cannot complete
        """
        pass

    @abstractmethod
    async def insert(self, collection: str, fields: dict[str, Any]) -> str:
        """
        Insert a new document.

        Returns:
            The id assigned to the document

        Raises:
            SequenceConflictError: If fields carry a sequence_number already in use
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
    ) -> None:
        """
        Overwrite only the given fields of an existing document.
        A field given as None is removed.

        Raises:
            NotFoundError: If the document does not exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def max_sequence_number(self, collection: str) -> int:
        """Highest sequence_number in the collection, 0 when there is none."""
        pass

    async def batch_write(
        self,
        collection: str,
        operations: list[WriteOperation],
    ) -> list[WriteResult]:
        """
        Apply operations in order, reporting success or failure for each.

        One failing operation never stops the rest. Backends with a native
        batch primitive may override this.
        """
        results = []
        for op in operations:
            try:
                if op.kind == "insert":
                    doc_id = await self.insert(collection, op.fields)
                else:
                    await self.update(collection, op.doc_id, op.fields)
                    doc_id = op.doc_id
                results.append(WriteResult(success=True, doc_id=doc_id, tag=op.tag))
            except SequenceConflictError as e:
                results.append(WriteResult(
                    success=False,
                    doc_id=op.doc_id,
                    error=str(e),
                    sequence_conflict=True,
                    tag=op.tag,
                ))
            except StorageError as e:
                results.append(WriteResult(
                    success=False,
                    doc_id=op.doc_id,
                    error=str(e),
                    tag=op.tag,
                ))
        return results


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one import batch).

        Returns:
            List of related events in chronological order
        """
        pass


def key_matches(document: dict[str, Any], key: dict[str, Any]) -> bool:
    """Compare natural-key fields as text, so typed and string-only stores agree."""
    for field, value in key.items():
        stored = document.get(field)
        if stored is None or value is None:
            if stored is None and value is None:
                continue
            return False
        if str(stored) != str(value):
            return False
    return True


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class SequenceConflictError(DuplicateError):
    """The sequence number being written is already taken."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
