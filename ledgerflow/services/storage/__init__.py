"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the remote backend; the in-memory store serves tests and
local runs. Business logic only ever sees the interfaces.
"""

from ledgerflow.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DocumentStorageInterface,
    DuplicateError,
    NotFoundError,
    SequenceConflictError,
    StorageError,
    WriteOperation,
    WriteResult,
)
from ledgerflow.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryDocumentStorage,
)
from ledgerflow.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "DocumentStorageInterface",
    "WriteOperation",
    "WriteResult",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "SequenceConflictError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryDocumentStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStorage",
]
