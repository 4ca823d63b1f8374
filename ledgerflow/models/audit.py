"""
Audit Models for ledgerflow

Every import, reorder and write failure is recorded so an operator can
reconstruct what happened to a pasted batch after the fact.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Import lifecycle
    IMPORT_STARTED = "import_started"
    IMPORT_COMPLETED = "import_completed"
    IMPORT_ABORTED = "import_aborted"

    # Per-row outcomes
    ROW_INVALID = "row_invalid"
    VALUE_DEFAULTED = "value_defaulted"
    WRITE_FAILED = "write_failed"
    SEQUENCE_CONFLICT = "sequence_conflict"

    # Ordering
    REORDER_COMPLETED = "reorder_completed"
    SEQUENCE_BACKFILLED = "sequence_backfilled"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - which collection / record is this about?
    collection: Optional[str] = Field(
        default=None,
        description="Collection the event relates to (e.g., 'transactions')"
    )
    record_id: Optional[str] = Field(
        default=None,
        description="Stored record id, when there is one"
    )
    row_index: Optional[int] = Field(
        default=None,
        description="Original input line number, for per-row events"
    )

    # Correlation - all events of one import share this
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all rows of one import)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "collection": self.collection,
            "record_id": self.record_id,
            "row_index": self.row_index,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, collection, record_id,
         row_index, correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.collection or "",
            self.record_id or "",
            str(self.row_index) if self.row_index is not None else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.import_started("transactions", 12, correlation_id)
        event = AuditEventBuilder.row_invalid("transactions", 4, errors, correlation_id)
    """

    @staticmethod
    def import_started(
        collection: str,
        row_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_STARTED,
            collection=collection,
            correlation_id=correlation_id,
            description=f"Import started: {row_count} rows into {collection}",
            details={"row_count": row_count},
        )

    @staticmethod
    def import_completed(
        collection: str,
        inserted: int,
        updated: int,
        duplicates: int,
        invalid: int,
        failed: int,
        correlation_id: UUID
    ) -> AuditEvent:
        severity = AuditSeverity.WARNING if (invalid or failed) else AuditSeverity.INFO
        return AuditEvent(
            event_type=AuditEventType.IMPORT_COMPLETED,
            severity=severity,
            collection=collection,
            correlation_id=correlation_id,
            description=(
                f"Import completed: {inserted} inserted, {updated} updated, "
                f"{duplicates} duplicates, {invalid} invalid, {failed} failed"
            ),
            details={
                "inserted": inserted,
                "updated": updated,
                "duplicates": duplicates,
                "invalid": invalid,
                "failed": failed,
            },
        )

    @staticmethod
    def import_aborted(
        collection: str,
        reason: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_ABORTED,
            severity=AuditSeverity.ERROR,
            collection=collection,
            correlation_id=correlation_id,
            description=f"Import aborted before any write: {collection}",
            error_message=reason,
        )

    @staticmethod
    def row_invalid(
        collection: str,
        row_index: int,
        errors: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ROW_INVALID,
            severity=AuditSeverity.WARNING,
            collection=collection,
            row_index=row_index,
            correlation_id=correlation_id,
            description=f"Row {row_index} rejected with {len(errors)} errors",
            details={"errors": errors},
        )

    @staticmethod
    def value_defaulted(
        collection: str,
        row_index: int,
        field: str,
        raw_input: str,
        substituted: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALUE_DEFAULTED,
            severity=AuditSeverity.WARNING,
            collection=collection,
            row_index=row_index,
            correlation_id=correlation_id,
            description=f"Row {row_index}: {field} defaulted to {substituted}",
            details={
                "field": field,
                "raw_input": raw_input,
                "substituted": substituted,
            },
        )

    @staticmethod
    def write_failed(
        collection: str,
        row_index: int,
        operation: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            collection=collection,
            row_index=row_index,
            correlation_id=correlation_id,
            description=f"Row {row_index}: {operation} failed",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def sequence_conflict(
        collection: str,
        attempt: int,
        conflicts: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SEQUENCE_CONFLICT,
            severity=AuditSeverity.WARNING,
            collection=collection,
            correlation_id=correlation_id,
            description=f"{conflicts} sequence number collisions on attempt {attempt}",
            details={"attempt": attempt, "conflicts": conflicts},
        )

    @staticmethod
    def reorder_completed(
        collection: str,
        record_count: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REORDER_COMPLETED,
            collection=collection,
            correlation_id=correlation_id,
            description=f"Reordered {record_count} records in {collection}",
            details={"record_count": record_count},
        )

    @staticmethod
    def sequence_backfilled(
        collection: str,
        assigned: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SEQUENCE_BACKFILLED,
            collection=collection,
            correlation_id=correlation_id,
            description=f"Assigned sequence numbers to {assigned} legacy records",
            details={"assigned": assigned},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
