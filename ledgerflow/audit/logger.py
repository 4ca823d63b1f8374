"""
Audit Logger

DESIGN DECISION: Every import and reorder is logged.
This provides:
1. Complete traceability of what each pasted batch did
2. A record of every lenient default that replaced bad input
3. Debugging capability for write failures

The audit logger:
- Is async to not block the import flow
- Gracefully handles failures (an audit write never fails an import)
- Supports correlation IDs to trace all rows of one import
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledgerflow.models.audit import AuditEvent, AuditEventBuilder
from ledgerflow.models.records import DefaultedFrom
from ledgerflow.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Attach a stdlib handler so structlog output is actually emitted."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and operator visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("ledgerflow.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_import_started(
        self,
        collection: str,
        row_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.import_started(
            collection=collection,
            row_count=row_count,
            correlation_id=correlation_id,
        ))

    async def log_import_completed(
        self,
        collection: str,
        inserted: int,
        updated: int,
        duplicates: int,
        invalid: int,
        failed: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.import_completed(
            collection=collection,
            inserted=inserted,
            updated=updated,
            duplicates=duplicates,
            invalid=invalid,
            failed=failed,
            correlation_id=correlation_id,
        ))

    async def log_import_aborted(
        self,
        collection: str,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.import_aborted(
            collection=collection,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_row_invalid(
        self,
        collection: str,
        row_index: int,
        errors: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.row_invalid(
            collection=collection,
            row_index=row_index,
            errors=errors,
            correlation_id=correlation_id,
        ))

    async def log_value_defaulted(
        self,
        collection: str,
        row_index: int,
        note: DefaultedFrom,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.value_defaulted(
            collection=collection,
            row_index=row_index,
            field=note.field,
            raw_input=note.raw_input,
            substituted=note.substituted,
            correlation_id=correlation_id,
        ))

    async def log_write_failed(
        self,
        collection: str,
        row_index: int,
        operation: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.write_failed(
            collection=collection,
            row_index=row_index,
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_sequence_conflict(
        self,
        collection: str,
        attempt: int,
        conflicts: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.sequence_conflict(
            collection=collection,
            attempt=attempt,
            conflicts=conflicts,
            correlation_id=correlation_id,
        ))

    async def log_reorder_completed(
        self,
        collection: str,
        record_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.reorder_completed(
            collection=collection,
            record_count=record_count,
            correlation_id=correlation_id,
        ))

    async def log_sequence_backfilled(
        self,
        collection: str,
        assigned: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.sequence_backfilled(
            collection=collection,
            assigned=assigned,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of an import or reorder and pass it through
    all subsequent operations.
    """
    return uuid4()
