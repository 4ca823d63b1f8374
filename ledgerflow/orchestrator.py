"""
Main Orchestrator for ledgerflow

This module ties together all the components and defines the
end-to-end flows for:
1. Import (text → rows → normalize → validate → resolve → write)
2. Reorder (new display order → dense sequence numbers)
3. Ledger (stored transactions → ledger order → running balances)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Invalid rows are reported, never written
- Nothing is written until every valid row has been classified
- Once writing starts, the batch runs to the end
- Every step is audited

Concurrency: normalization and validation may run on a thread pool
(they are pure). Sequence allocation and writes are strictly sequential
within one batch.
"""

import asyncio
from datetime import date
from decimal import Decimal
from functools import partial
from typing import Any, Callable, Optional
from uuid import UUID

import structlog

from ledgerflow.audit import AuditLogger, configure_logging, create_correlation_id
from ledgerflow.balances import ledger_order, running_balances
from ledgerflow.config import ImportSettings, get_settings
from ledgerflow.matching import ProjectMatcher
from ledgerflow.models.records import (
    BalanceRow,
    BankAccount,
    Candidate,
    FailedWrite,
    ImportSummary,
    InvalidRow,
    NormalizedRow,
    ProjectAccount,
    ProjectSummary,
    RawRow,
    ResolvedRecord,
    Resolution,
    RowOutcome,
    StoredTransaction,
    ValidatedRecord,
)
from ledgerflow.parsing import (
    normalize_account_row,
    normalize_rows,
    normalize_transaction_row,
    split_rows,
)
from ledgerflow.reconciliation import (
    CHART_ACCOUNT_PROFILE,
    TRANSACTION_PROFILE,
    EntityProfile,
    ReconciliationReadError,
    ReconciliationResolver,
)
from ledgerflow.sequencing import SequenceAllocator, display_order
from ledgerflow.services.storage import (
    DocumentStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStorage,
    InMemoryAuditStorage,
    InMemoryDocumentStorage,
    NotFoundError,
    StorageError,
    WriteOperation,
)
from ledgerflow.validation import AccountValidator, RecordValidator


logger = structlog.get_logger(__name__)

PROJECTS_COLLECTION = "projects"
BANK_ACCOUNTS_COLLECTION = "bank_accounts"


class ImportTooLargeError(ValueError):
    """The pasted text has more data rows than an import accepts."""
    pass


class ImportFlow:
    """
    Orchestrates a paste/upload import for one entity type.

    Flow:
    1. Split → RawRows with their original line numbers
    2. Normalize → lenient parse, defaults marked
    3. Validate → every rule, every message
    4. Resolve → INSERT / UPDATE / DUPLICATE (reads only)
    5. Write → inserts (with fresh sequence numbers), then updates

    preview() stops after step 4.
    """

    def __init__(
        self,
        storage: DocumentStorageInterface,
        profile: EntityProfile = TRANSACTION_PROFILE,
        normalizer: Optional[Callable[[RawRow], NormalizedRow]] = None,
        validator: Optional[Any] = None,
        matcher: Optional[ProjectMatcher] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[ImportSettings] = None,
        today: Optional[date] = None,
    ):
        self._storage = storage
        self._profile = profile
        self._settings = settings or get_settings().imports
        self._audit = audit_logger or AuditLogger()
        self._resolver = ReconciliationResolver(storage, profile)
        self._allocator = SequenceAllocator(storage, profile.collection)

        is_transactions = profile.collection == TRANSACTION_PROFILE.collection
        if normalizer is None:
            normalizer = (
                partial(normalize_transaction_row, today=today)
                if is_transactions else normalize_account_row
            )
        self._normalizer = normalizer
        self._validator = validator or (RecordValidator() if is_transactions else AccountValidator())
        self._matcher = matcher if matcher is not None else (
            ProjectMatcher() if is_transactions else None
        )

    @property
    def collection(self) -> str:
        return self._profile.collection

    def _prepare(self, text: str, skip_header: Optional[bool]) -> list[ValidatedRecord]:
        """Split, normalize and validate. Pure; touches no storage."""
        if skip_header is None:
            skip_header = self._settings.skip_header
        rows = split_rows(text, skip_header=skip_header)
        if len(rows) > self._settings.max_rows:
            raise ImportTooLargeError(
                f"{len(rows)} rows pasted; at most {self._settings.max_rows} are accepted per import"
            )

        concurrency = 1
        if len(rows) > self._settings.parallel_threshold:
            concurrency = self._settings.normalize_concurrency
        normalized = normalize_rows(rows, self._normalizer, concurrency=concurrency)
        return self._validator.validate_many(normalized)

    async def _load_projects(self) -> list[ProjectAccount]:
        if self._matcher is None:
            return []
        try:
            documents = await self._storage.list_documents(PROJECTS_COLLECTION)
            return [ProjectAccount.model_validate(doc) for doc in documents]
        except Exception as e:
            raise ReconciliationReadError(f"Could not read project accounts: {e}") from e

    async def preview(self, text: str, skip_header: Optional[bool] = None) -> ImportSummary:
        """
        Show what an import would do without writing anything.

        Raises:
            ReconciliationReadError: If existing records cannot be read
        """
        validated = self._prepare(text, skip_header)
        resolved = await self._resolver.resolve(validated)
        by_row = {r.record.row_index: r for r in resolved}

        summary = ImportSummary(dry_run=True)
        for record in validated:
            summary.notes.extend(record.notes)
            if not record.valid:
                summary.invalid_rows.append(InvalidRow(
                    original_row_index=record.row_index,
                    errors=record.errors,
                ))
                summary.outcomes.append(RowOutcome(
                    row_index=record.row_index,
                    outcome="invalid",
                    errors=record.errors,
                    warnings=record.warnings,
                ))
                continue

            item = by_row[record.row_index]
            if item.resolution == Resolution.INSERT:
                summary.inserted_count += 1
                outcome = "planned_insert"
            elif item.resolution == Resolution.UPDATE:
                summary.updated_count += 1
                outcome = "planned_update"
            else:
                summary.duplicate_count += 1
                outcome = "duplicate"
            summary.outcomes.append(RowOutcome(
                row_index=record.row_index,
                outcome=outcome,
                record_id=item.existing_id,
                warnings=record.warnings,
            ))
        return summary

    async def import_text(self, text: str, skip_header: Optional[bool] = None) -> ImportSummary:
        """
        Import pasted or uploaded text.

        Returns an ImportSummary even when some rows failed; counts always
        reflect what was actually written.

        Raises:
            ImportTooLargeError: If the text has too many rows
            ReconciliationReadError: If existing records cannot be read
                (nothing has been written in that case)
        """
        correlation_id = create_correlation_id()
        validated = self._prepare(text, skip_header)

        await self._audit.log_import_started(self.collection, len(validated), correlation_id)
        for record in validated:
            if not record.valid:
                await self._audit.log_row_invalid(
                    self.collection, record.row_index, record.errors, correlation_id
                )
            for note in record.notes:
                await self._audit.log_value_defaulted(
                    self.collection, record.row_index, note, correlation_id
                )

        try:
            resolved = await self._resolver.resolve(validated)
            projects = await self._load_projects()
        except ReconciliationReadError as e:
            await self._audit.log_import_aborted(self.collection, str(e), correlation_id)
            raise

        # Writes are not atomic; once started the batch completes even if
        # the caller is cancelled.
        try:
            summary = await asyncio.shield(
                self._write(validated, resolved, projects, correlation_id)
            )
        except Exception as e:
            await self._audit.log_error(
                type(e).__name__,
                str(e),
                details={"collection": self.collection},
                correlation_id=correlation_id,
            )
            raise

        await self._audit.log_import_completed(
            self.collection,
            inserted=summary.inserted_count,
            updated=summary.updated_count,
            duplicates=summary.duplicate_count,
            invalid=len(summary.invalid_rows),
            failed=len(summary.failed_writes),
            correlation_id=correlation_id,
        )
        return summary

    def _insert_fields(
        self,
        item: ResolvedRecord,
        sequence_number: Optional[int],
        projects: list[ProjectAccount],
    ) -> dict[str, Any]:
        fields = item.record.candidate.to_document()
        if sequence_number is not None:
            fields["sequence_number"] = sequence_number
        if self._matcher is not None and isinstance(item.record.candidate, Candidate):
            fields.update(self._matcher.link(item.record.candidate, projects))
        return fields

    def _update_fields(
        self,
        item: ResolvedRecord,
        projects: list[ProjectAccount],
    ) -> dict[str, Any]:
        fields = dict(item.changes)
        if (
            "project_id" in fields
            and self._matcher is not None
            and isinstance(item.record.candidate, Candidate)
        ):
            fields.update(self._matcher.link(item.record.candidate, projects))
        return fields

    async def _write_inserts(
        self,
        inserts: list[ResolvedRecord],
        projects: list[ProjectAccount],
        correlation_id: UUID,
    ) -> tuple[dict[int, tuple[str, Optional[int]]], list[FailedWrite]]:
        """
        Insert new records, re-allocating sequence numbers on conflict.

        Returns ({row_index: (id, sequence_number)}, failures).
        """
        written: dict[int, tuple[str, Optional[int]]] = {}
        failures: list[FailedWrite] = []
        pending = list(inserts)
        attempt = 0

        while pending:
            attempt += 1
            try:
                if self._profile.sequenced:
                    numbers = await self._allocator.allocate(len(pending))
                else:
                    numbers = [None] * len(pending)
                operations = [
                    WriteOperation(
                        kind="insert",
                        fields=self._insert_fields(item, number, projects),
                        tag=item.record.row_index,
                    )
                    for item, number in zip(pending, numbers)
                ]
                results = await self._storage.batch_write(self.collection, operations)
            except StorageError as e:
                for item in pending:
                    failures.append(FailedWrite(
                        original_row_index=item.record.row_index,
                        resolution=Resolution.INSERT,
                        error=str(e),
                    ))
                break

            conflicted = []
            for item, number, result in zip(pending, numbers, results):
                if result.success:
                    written[item.record.row_index] = (result.doc_id, number)
                elif result.sequence_conflict:
                    conflicted.append(item)
                else:
                    failures.append(FailedWrite(
                        original_row_index=item.record.row_index,
                        resolution=Resolution.INSERT,
                        error=result.error or "Insert failed",
                    ))

            if conflicted:
                await self._audit.log_sequence_conflict(
                    self.collection, attempt, len(conflicted), correlation_id
                )
                if attempt >= self._settings.sequence_retry_attempts:
                    for item in conflicted:
                        failures.append(FailedWrite(
                            original_row_index=item.record.row_index,
                            resolution=Resolution.INSERT,
                            error=f"Sequence number still taken after {attempt} attempts",
                        ))
                    break
            pending = conflicted

        return written, failures

    async def _write_updates(
        self,
        updates: list[ResolvedRecord],
        written: dict[int, tuple[str, Optional[int]]],
        projects: list[ProjectAccount],
    ) -> tuple[dict[int, str], list[FailedWrite]]:
        """Apply partial updates. Repeats of rows inserted in this batch target the new id."""
        updated: dict[int, str] = {}
        failures: list[FailedWrite] = []
        operations = []

        for item in updates:
            target = item.existing_id
            if target is None and item.planned_row in written:
                target = written[item.planned_row][0]
            if target is None:
                failures.append(FailedWrite(
                    original_row_index=item.record.row_index,
                    resolution=Resolution.UPDATE,
                    error=f"Line {item.planned_row} this row updates was not written",
                ))
                continue
            operations.append(WriteOperation(
                kind="update",
                doc_id=target,
                fields=self._update_fields(item, projects),
                tag=item.record.row_index,
            ))

        if not operations:
            return updated, failures

        try:
            results = await self._storage.batch_write(self.collection, operations)
        except StorageError as e:
            for op in operations:
                failures.append(FailedWrite(
                    original_row_index=op.tag,
                    resolution=Resolution.UPDATE,
                    error=str(e),
                ))
            return updated, failures

        for op, result in zip(operations, results):
            if result.success:
                updated[op.tag] = op.doc_id
            else:
                failures.append(FailedWrite(
                    original_row_index=op.tag,
                    resolution=Resolution.UPDATE,
                    error=result.error or "Update failed",
                ))
        return updated, failures

    @staticmethod
    def _settle_duplicates(
        resolved: list[ResolvedRecord],
        written: dict[int, tuple[str, Optional[int]]],
    ) -> tuple[dict[int, Optional[str]], list[FailedWrite]]:
        """Point each duplicate at its stored record. Repeats of failed inserts fail too."""
        duplicates: dict[int, Optional[str]] = {}
        failures: list[FailedWrite] = []

        for item in resolved:
            if item.resolution != Resolution.DUPLICATE:
                continue
            target = item.existing_id
            if target is None and item.planned_row in written:
                target = written[item.planned_row][0]
            if target is None:
                failures.append(FailedWrite(
                    original_row_index=item.record.row_index,
                    resolution=Resolution.DUPLICATE,
                    error=f"Line {item.planned_row} this row repeats was not written",
                ))
                continue
            duplicates[item.record.row_index] = target
        return duplicates, failures

    async def _write(
        self,
        validated: list[ValidatedRecord],
        resolved: list[ResolvedRecord],
        projects: list[ProjectAccount],
        correlation_id: UUID,
    ) -> ImportSummary:
        inserts = [r for r in resolved if r.resolution == Resolution.INSERT]
        updates = [r for r in resolved if r.resolution == Resolution.UPDATE]

        written, insert_failures = await self._write_inserts(inserts, projects, correlation_id)
        updated, update_failures = await self._write_updates(updates, written, projects)
        duplicates, duplicate_failures = self._settle_duplicates(resolved, written)

        failures = {
            f.original_row_index: f
            for f in insert_failures + update_failures + duplicate_failures
        }
        for failure in failures.values():
            await self._audit.log_write_failed(
                self.collection,
                failure.original_row_index,
                failure.resolution.value,
                failure.error,
                correlation_id,
            )

        summary = ImportSummary(
            inserted_count=len(written),
            updated_count=len(updated),
            duplicate_count=len(duplicates),
        )

        for record in validated:
            summary.notes.extend(record.notes)
            row = record.row_index

            if not record.valid:
                summary.invalid_rows.append(InvalidRow(original_row_index=row, errors=record.errors))
                outcome = RowOutcome(row_index=row, outcome="invalid", errors=record.errors)
            elif row in failures:
                summary.failed_writes.append(failures[row])
                outcome = RowOutcome(row_index=row, outcome="failed", errors=[failures[row].error])
            elif row in written:
                doc_id, number = written[row]
                outcome = RowOutcome(
                    row_index=row, outcome="inserted", record_id=doc_id, sequence_number=number
                )
            elif row in updated:
                outcome = RowOutcome(row_index=row, outcome="updated", record_id=updated[row])
            else:
                outcome = RowOutcome(row_index=row, outcome="duplicate", record_id=duplicates[row])

            outcome.warnings = record.warnings
            summary.outcomes.append(outcome)

        logger.info(
            "import_written",
            collection=self.collection,
            inserted=summary.inserted_count,
            updated=summary.updated_count,
            duplicates=summary.duplicate_count,
            invalid=len(summary.invalid_rows),
            failed=len(summary.failed_writes),
        )
        return summary


class ReorderFlow:
    """Persists user reordering and repairs legacy records without numbers."""

    def __init__(
        self,
        storage: DocumentStorageInterface,
        collection: str = TRANSACTION_PROFILE.collection,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._collection = collection
        self._allocator = SequenceAllocator(storage, collection)
        self._audit = audit_logger or AuditLogger()

    async def list_in_display_order(self) -> list[StoredTransaction]:
        documents = await self._storage.list_documents(self._collection)
        records = [StoredTransaction.from_document(doc["id"], doc) for doc in documents]
        return display_order(records)

    async def reorder(self, ordered_ids: list[str]) -> bool:
        """
        Raises:
            PartialReorderError: If ordered_ids is not the whole collection
            StorageError: If any write failed
        """
        result = await self._allocator.reorder(ordered_ids)
        await self._audit.log_reorder_completed(self._collection, len(ordered_ids))
        return result

    async def backfill(self) -> dict[str, int]:
        assigned = await self._allocator.backfill_missing()
        if assigned:
            await self._audit.log_sequence_backfilled(self._collection, len(assigned))
        return assigned


class LedgerFlow:
    """Read side: ledgers with running balances and project spending."""

    def __init__(
        self,
        storage: DocumentStorageInterface,
        matcher: Optional[ProjectMatcher] = None,
        default_currency: Optional[str] = None,
    ):
        self._storage = storage
        self._matcher = matcher or ProjectMatcher()
        self._default_currency = default_currency or get_settings().app.default_currency

    async def load_transactions(
        self,
        bank_account_id: Optional[str] = None,
    ) -> list[StoredTransaction]:
        documents = await self._storage.list_documents(TRANSACTION_PROFILE.collection)
        transactions = [StoredTransaction.from_document(doc["id"], doc) for doc in documents]
        if bank_account_id is not None:
            transactions = [t for t in transactions if t.bank_account_id == bank_account_id]
        return transactions

    async def get_bank_account(self, bank_account_id: str) -> BankAccount:
        documents = await self._storage.list_documents(BANK_ACCOUNTS_COLLECTION)
        for doc in documents:
            if doc["id"] == bank_account_id:
                return BankAccount.model_validate({"currency": self._default_currency, **doc})
        raise NotFoundError(f"Bank account not found: {bank_account_id}")

    async def read_ledger(
        self,
        bank_account_id: Optional[str] = None,
        starting_balance: Optional[Decimal] = None,
    ) -> list[BalanceRow]:
        """
        Transactions in ledger order with the balance after each.

        For a single bank account the account's stored balance is the
        starting balance unless one is given.
        """
        if starting_balance is None:
            starting_balance = Decimal("0")
            if bank_account_id is not None:
                starting_balance = (await self.get_bank_account(bank_account_id)).balance

        transactions = await self.load_transactions(bank_account_id)
        return running_balances(ledger_order(transactions), starting_balance)

    async def project_summary(self, project_id: str) -> ProjectSummary:
        """
        Spending against one project.

        Raises:
            NotFoundError: If no project, or more than one, has this identifier
        """
        documents = await self._storage.list_documents(PROJECTS_COLLECTION)
        projects = [
            ProjectAccount.model_validate(doc)
            for doc in documents
            if doc.get("project_id") == project_id
        ]
        if len(projects) != 1:
            raise NotFoundError(
                f"Expected exactly one project with id {project_id}, found {len(projects)}"
            )
        transactions = await self.load_transactions()
        return self._matcher.summarize(projects[0], transactions)


def create_app_components(
    use_storage: bool = True,
) -> tuple[ImportFlow, ImportFlow, ReorderFlow, LedgerFlow, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use the configured remote backend.
                    Set to False for an in-memory store.

    Returns:
        (transaction_import, account_import, reorder_flow, ledger_flow, sheets_client)
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)

    sheets_client = None
    storage: DocumentStorageInterface
    audit_logger: AuditLogger

    if use_storage and settings.storage.backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            storage = GoogleSheetsDocumentStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            storage = InMemoryDocumentStorage()
            audit_logger = AuditLogger(InMemoryAuditStorage())
    else:
        storage = InMemoryDocumentStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    transaction_import = ImportFlow(
        storage,
        profile=TRANSACTION_PROFILE,
        audit_logger=audit_logger,
        settings=settings.imports,
    )
    account_import = ImportFlow(
        storage,
        profile=CHART_ACCOUNT_PROFILE,
        audit_logger=audit_logger,
        settings=settings.imports,
    )
    reorder_flow = ReorderFlow(storage, audit_logger=audit_logger)
    ledger_flow = LedgerFlow(storage, default_currency=settings.app.default_currency)

    return transaction_import, account_import, reorder_flow, ledger_flow, sheets_client
