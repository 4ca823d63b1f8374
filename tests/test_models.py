"""
Tests for ledgerflow

Test strategy:
1. Unit tests for individual components (models, normalizer, validator)
2. Integration tests for flows (with in-memory storage)
3. No real API calls in tests (fake gspread objects instead)
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from ledgerflow.models.records import (
    AccountType,
    BOD_CATEGORIES,
    Candidate,
    ChartAccount,
    DefaultedFrom,
    ImportSummary,
    InvalidRow,
    ParsedValue,
    ProjectAccount,
    ProjectSummary,
    StoredTransaction,
    TransactionStatus,
)
from ledgerflow.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestRecordModels:
    """Tests for transaction and reference Pydantic models."""

    def test_candidate_defaults(self):
        """Test Candidate fills amounts and status when omitted."""
        candidate = Candidate(date=date(2024, 1, 15), description="Office supplies")
        assert candidate.expense == Decimal("0")
        assert candidate.income == Decimal("0")
        assert candidate.status == TransactionStatus.PENDING
        assert candidate.project_id is None

    def test_candidate_strips_whitespace(self):
        """Test that whitespace is stripped from descriptions."""
        candidate = Candidate(date=date(2024, 1, 15), description="  Rent  ")
        assert candidate.description == "Rent"

    def test_to_document_omits_absent_fields(self):
        """Absent optional fields are never written as empty values."""
        candidate = Candidate(
            date=date(2024, 1, 15),
            description="Rent",
            expense=Decimal("1200.00"),
        )
        document = candidate.to_document()
        assert document["date"] == "2024-01-15"
        assert document["expense"] == "1200.00"
        assert "description2" not in document
        assert "project_id" not in document

    def test_net_amount(self):
        candidate = Candidate(
            date=date(2024, 1, 15),
            description="Refund",
            expense=Decimal("10"),
            income=Decimal("25"),
        )
        assert candidate.net_amount == Decimal("15")

    def test_stored_transaction_from_string_document(self):
        """Documents read from a spreadsheet arrive as strings."""
        stored = StoredTransaction.from_document("abc", {
            "date": "2024-01-15",
            "description": "Rent",
            "expense": "1200.00",
            "status": "Completed",
            "sequence_number": "7",
        })
        assert stored.id == "abc"
        assert stored.sequence_number == 7
        assert stored.expense == Decimal("1200.00")
        assert stored.status == TransactionStatus.COMPLETED

    def test_stored_transaction_rejects_zero_sequence(self):
        """Sequence numbers are strictly positive."""
        with pytest.raises(ValueError):
            StoredTransaction(
                id="x",
                date=date(2024, 1, 15),
                description="Rent",
                sequence_number=0,
            )

    def test_project_account_bod_display_name(self):
        project = ProjectAccount(project_id="P-2024-01", name="Gala Dinner", bod_category="VPC")
        assert project.bod_display_name == "VP Community"
        assert "HT" in BOD_CATEGORIES

    def test_project_account_rejects_unknown_status(self):
        with pytest.raises(ValueError):
            ProjectAccount(project_id="P1", name="Gala", bod_category="P", status="Archived")

    def test_project_summary_remaining(self):
        project = ProjectAccount(
            project_id="P1", name="Gala", bod_category="P", budget=Decimal("500")
        )
        summary = ProjectSummary(project=project, spent=Decimal("120.50"))
        assert summary.remaining == Decimal("379.50")

    def test_account_type_financial_statement(self):
        assert AccountType.ASSET.financial_statement == "Balance Sheet"
        assert AccountType.EQUITY.financial_statement == "Balance Sheet"
        assert AccountType.REVENUE.financial_statement == "Income Statement"
        assert AccountType.EXPENSE.financial_statement == "Income Statement"

    def test_chart_account_document(self):
        account = ChartAccount(code="1001", name="Cash", account_type=AccountType.ASSET)
        assert account.to_document() == {
            "code": "1001",
            "name": "Cash",
            "account_type": "Asset",
        }


class TestParsingModels:
    """Tests for ParsedValue and DefaultedFrom."""

    def test_parsed_value_without_default(self):
        parsed = ParsedValue[Decimal](value=Decimal("5"))
        assert parsed.was_defaulted is False

    def test_parsed_value_with_default(self):
        marker = DefaultedFrom(field="date", raw_input="someday", substituted="2024-03-01")
        parsed = ParsedValue[date](value=date(2024, 3, 1), defaulted=marker)
        assert parsed.was_defaulted is True
        assert "someday" in marker.describe()
        assert "2024-03-01" in marker.describe()


class TestImportSummary:
    """Tests for the import result model."""

    def test_has_failures_with_invalid_rows(self):
        summary = ImportSummary(
            inserted_count=2,
            invalid_rows=[InvalidRow(original_row_index=3, errors=["Description is required"])],
        )
        assert summary.has_failures is True

    def test_clean_summary(self):
        summary = ImportSummary(inserted_count=2)
        assert summary.has_failures is False
        assert summary.total_rows == 0


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.IMPORT_STARTED,
            description="Import started",
        )
        assert event.event_type == AuditEventType.IMPORT_STARTED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.ROW_INVALID,
            description="Row rejected",
            details={"errors": ["Description is required"]},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "row_invalid"
        assert log_dict["details"]["errors"] == ["Description is required"]

    def test_audit_event_to_sheets_row(self):
        """Test conversion to Sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.WRITE_FAILED,
            collection="transactions",
            row_index=4,
            description="Write failed",
        )
        row = event.to_sheets_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "write_failed"  # event_type
        assert row[4] == "transactions"
        assert row[6] == "4"  # row_index

    def test_audit_event_builder_import_completed(self):
        """Failures in a batch raise the severity of the completion event."""
        correlation_id = uuid4()
        event = AuditEventBuilder.import_completed(
            collection="transactions",
            inserted=3,
            updated=1,
            duplicates=0,
            invalid=1,
            failed=0,
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.IMPORT_COMPLETED
        assert event.severity == AuditSeverity.WARNING
        assert event.correlation_id == correlation_id
        assert event.details["inserted"] == 3

    def test_audit_event_builder_value_defaulted(self):
        correlation_id = uuid4()
        event = AuditEventBuilder.value_defaulted(
            collection="transactions",
            row_index=2,
            field="date",
            raw_input="yesterday",
            substituted="2024-03-01",
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.VALUE_DEFAULTED
        assert event.row_index == 2
        assert event.details["raw_input"] == "yesterday"
