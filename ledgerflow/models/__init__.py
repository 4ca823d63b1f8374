"""
Data Models Package

This package contains all Pydantic models used by ledgerflow.
All data flowing through the import pipeline must conform to these schemas.
"""

from ledgerflow.models.records import (
    BOD_CATEGORIES,
    AccountType,
    BalanceRow,
    BankAccount,
    Candidate,
    ChartAccount,
    DefaultedFrom,
    FailedWrite,
    ImportSummary,
    InvalidRow,
    NormalizedRow,
    ParsedValue,
    ProjectAccount,
    ProjectSummary,
    RawRow,
    ResolvedRecord,
    Resolution,
    RowOutcome,
    StoredChartAccount,
    StoredTransaction,
    TransactionStatus,
    ValidatedRecord,
)
from ledgerflow.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Record models
    "BOD_CATEGORIES",
    "AccountType",
    "BalanceRow",
    "BankAccount",
    "Candidate",
    "ChartAccount",
    "DefaultedFrom",
    "FailedWrite",
    "ImportSummary",
    "InvalidRow",
    "NormalizedRow",
    "ParsedValue",
    "ProjectAccount",
    "ProjectSummary",
    "RawRow",
    "ResolvedRecord",
    "Resolution",
    "RowOutcome",
    "StoredChartAccount",
    "StoredTransaction",
    "TransactionStatus",
    "ValidatedRecord",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
