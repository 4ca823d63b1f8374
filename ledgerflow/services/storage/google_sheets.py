"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the document store because:
1. Treasurers can view their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (fine for a club's books)
- No transactions (we handle this with careful ordering)
- Limited query capabilities (we filter in Python)

One worksheet per collection, one document per row. A blank cell means
the field is absent, which matches how the engine writes documents.
"""

import json
from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from ledgerflow.config import get_settings
from ledgerflow.models.audit import AuditEvent, AuditEventType, AuditSeverity
from ledgerflow.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DocumentStorageInterface,
    NotFoundError,
    SequenceConflictError,
    StorageError,
    WriteOperation,
    WriteResult,
    key_matches,
)


logger = structlog.get_logger(__name__)


# Column layout per collection; "id" is always first
COLLECTION_COLUMNS: dict[str, list[str]] = {
    "transactions": [
        "id",
        "date",
        "description",
        "description2",
        "expense",
        "income",
        "status",
        "project_id",
        "project_name",
        "category",
        "bank_account_id",
        "sequence_number",
        "created_at",
        "updated_at",
    ],
    "accounts": [
        "id",
        "code",
        "name",
        "account_type",
        "financial_statement",
        "description",
        "balance",
        "created_at",
        "updated_at",
    ],
    "projects": [
        "id",
        "project_id",
        "name",
        "bod_category",
        "budget",
        "status",
    ],
    "bank_accounts": [
        "id",
        "name",
        "balance",
        "currency",
        "account_number",
        "is_active",
    ],
}

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "collection",
    "record_id",
    "row_index",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_sheet(self, collection: str) -> gspread.Worksheet:
        """Get or create the worksheet backing a collection."""
        columns = AUDIT_COLUMNS if collection == "audit" else COLLECTION_COLUMNS.get(collection)
        if columns is None:
            raise StorageError(f"No sheet layout for collection: {collection}")

        spreadsheet = self.get_spreadsheet()
        title = self._settings.sheet_name_for(collection)
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=5000 if collection == "audit" else 1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


def _cell(value: Any) -> str:
    return "" if value is None else str(value)


class GoogleSheetsDocumentStorage(DocumentStorageInterface):
    """
    Google Sheets implementation of the document store.

    Every read goes to the sheet; nothing is cached between calls, so two
    processes see each other's writes (eventually, per the Sheets API).
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _columns(self, collection: str) -> list[str]:
        try:
            return COLLECTION_COLUMNS[collection]
        except KeyError:
            raise StorageError(f"No sheet layout for collection: {collection}")

    def _document_to_row(
        self,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
    ) -> list[str]:
        """Convert a document to a spreadsheet row."""
        row = []
        for column in self._columns(collection):
            if column == "id":
                row.append(doc_id)
            else:
                row.append(_cell(fields.get(column)))
        return row

    def _row_to_document(self, collection: str, row: list) -> dict[str, Any]:
        """Convert a spreadsheet row to a document, dropping blank cells."""
        document: dict[str, Any] = {}
        for index, column in enumerate(self._columns(collection)):
            try:
                value = row[index]
            except IndexError:
                continue
            if value != "":
                document[column] = value
        return document

    def _read_rows(self, collection: str) -> list[tuple[int, dict[str, Any]]]:
        """Return (sheet row number, document) pairs, skipping the header."""
        sheet = self._client.get_sheet(collection)
        rows = sheet.get_all_values()[1:]
        documents = []
        for row_number, row in enumerate(rows, start=2):  # Row 1 is the header
            if not row or not row[0]:
                continue
            documents.append((row_number, self._row_to_document(collection, row)))
        return documents

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append_rows(self, collection: str, rows: list[list[str]]) -> None:
        sheet = self._client.get_sheet(collection)
        sheet.append_rows(rows, value_input_option="RAW")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _write_rows(self, collection: str, updates: list[tuple[int, list[str]]]) -> None:
        sheet = self._client.get_sheet(collection)
        sheet.batch_update(
            [{"range": f"A{row_number}", "values": [row]} for row_number, row in updates],
            value_input_option="RAW",
        )

    @staticmethod
    def _sequence_taken(documents: list[tuple[int, dict[str, Any]]], sequence_number: Any) -> bool:
        target = str(sequence_number)
        return any(doc.get("sequence_number") == target for _, doc in documents)

    async def list_documents(self, collection: str) -> list[dict[str, Any]]:
        try:
            return [doc for _, doc in self._read_rows(collection)]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list {collection}: {e}")

    async def find_by_natural_key(
        self,
        collection: str,
        key: dict[str, Any],
    ) -> Optional[dict[str, Any]]:
        documents = await self.list_documents(collection)
        for doc in documents:
            if key_matches(doc, key):
                return doc
        return None

    async def insert(self, collection: str, fields: dict[str, Any]) -> str:
        results = await self.batch_write(
            collection,
            [WriteOperation(kind="insert", fields=fields)],
        )
        result = results[0]
        if result.sequence_conflict:
            raise SequenceConflictError(result.error)
        if not result.success:
            raise StorageError(result.error)
        return result.doc_id

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
    ) -> None:
        results = await self.batch_write(
            collection,
            [WriteOperation(kind="update", doc_id=doc_id, fields=fields)],
        )
        result = results[0]
        if not result.success:
            if result.error and result.error.startswith("Document not found"):
                raise NotFoundError(result.error)
            raise StorageError(result.error)

    async def max_sequence_number(self, collection: str) -> int:
        documents = await self.list_documents(collection)
        numbers = []
        for doc in documents:
            try:
                numbers.append(int(doc["sequence_number"]))
            except (KeyError, ValueError):
                continue
        return max(numbers, default=0)

    async def batch_write(
        self,
        collection: str,
        operations: list[WriteOperation],
    ) -> list[WriteResult]:
        """
        Write a batch with two API calls: one append for inserts, one
        batch update for updates.

        Each call is all-or-nothing on the Sheets side, so a failed call
        marks every operation it carried as failed.
        """
        try:
            documents = self._read_rows(collection)
        except Exception as e:
            raise StorageError(f"Failed to read {collection} before writing: {e}")

        by_id = {doc["id"]: (row_number, doc) for row_number, doc in documents}
        now = datetime.utcnow().isoformat()

        results: list[Optional[WriteResult]] = [None] * len(operations)
        inserts: list[tuple[int, str, list[str]]] = []
        updates: list[tuple[int, str, int, list[str]]] = []
        claimed_sequences: set[str] = set()

        for index, op in enumerate(operations):
            if op.kind == "insert":
                sequence_number = op.fields.get("sequence_number")
                if sequence_number is not None and (
                    self._sequence_taken(documents, sequence_number)
                    or str(sequence_number) in claimed_sequences
                ):
                    results[index] = WriteResult(
                        success=False,
                        error=f"Sequence number {sequence_number} already used in {collection}",
                        sequence_conflict=True,
                        tag=op.tag,
                    )
                    continue
                if sequence_number is not None:
                    claimed_sequences.add(str(sequence_number))
                doc_id = uuid4().hex
                fields = {"created_at": now, **op.fields, "updated_at": now}
                inserts.append((index, doc_id, self._document_to_row(collection, doc_id, fields)))
            else:
                if op.doc_id not in by_id:
                    results[index] = WriteResult(
                        success=False,
                        doc_id=op.doc_id,
                        error=f"Document not found in {collection}: {op.doc_id}",
                        tag=op.tag,
                    )
                    continue
                row_number, existing = by_id[op.doc_id]
                merged = {**existing, **op.fields, "updated_at": now}
                # Later updates to the same row build on this one
                by_id[op.doc_id] = (row_number, merged)
                updates.append((index, op.doc_id, row_number, self._document_to_row(collection, op.doc_id, merged)))

        if inserts:
            try:
                self._append_rows(collection, [row for _, _, row in inserts])
                for index, doc_id, _ in inserts:
                    results[index] = WriteResult(success=True, doc_id=doc_id, tag=operations[index].tag)
            except Exception as e:
                logger.error("sheets_append_failed", collection=collection, error=str(e))
                for index, _, _ in inserts:
                    results[index] = WriteResult(success=False, error=str(e), tag=operations[index].tag)

        if updates:
            try:
                self._write_rows(collection, [(row_number, row) for _, _, row_number, row in updates])
                for index, doc_id, _, _ in updates:
                    results[index] = WriteResult(success=True, doc_id=doc_id, tag=operations[index].tag)
            except Exception as e:
                logger.error("sheets_update_failed", collection=collection, error=str(e))
                for index, doc_id, _, _ in updates:
                    results[index] = WriteResult(
                        success=False, doc_id=doc_id, error=str(e), tag=operations[index].tag
                    )

        return results


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            collection=safe_get(4) or None,
            record_id=safe_get(5) or None,
            row_index=int(safe_get(6)) if safe_get(6) else None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append(self, row: list) -> None:
        sheet = self._client.get_sheet("audit")
        sheet.append_row(row, value_input_option="RAW")

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._append(event.to_sheets_row())
            return True
        except Exception as e:
            # Audit logging must not break the import itself
            logger.warning("audit_append_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            sheet = self._client.get_sheet("audit")
            all_rows = sheet.get_all_values()[1:]

            events = []
            for row in all_rows:
                if row and len(row) > 7 and row[7] == str(correlation_id):
                    try:
                        events.append(self._row_to_event(row))
                    except (ValueError, KeyError):
                        continue

            # Sort chronologically
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
