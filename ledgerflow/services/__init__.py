"""Services package."""

from ledgerflow.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DocumentStorageInterface,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStorage,
    InMemoryAuditStorage,
    InMemoryDocumentStorage,
    NotFoundError,
    SequenceConflictError,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "DocumentStorageInterface",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStorage",
    "InMemoryAuditStorage",
    "InMemoryDocumentStorage",
    "NotFoundError",
    "SequenceConflictError",
    "StorageError",
]
