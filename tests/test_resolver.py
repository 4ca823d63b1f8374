"""
Tests for reconciliation (INSERT / UPDATE / DUPLICATE).
"""

import asyncio
import pytest
from datetime import date
from decimal import Decimal

from ledgerflow.models.records import (
    AccountType,
    Candidate,
    ChartAccount,
    Resolution,
    TransactionStatus,
    ValidatedRecord,
)
from ledgerflow.reconciliation import (
    CHART_ACCOUNT_PROFILE,
    ReconciliationReadError,
    ReconciliationResolver,
)
from ledgerflow.services.storage import InMemoryDocumentStorage, StorageError


def record(row_index=2, valid=True, **fields):
    values = {"date": date(2024, 1, 15), "description": "Rent", "expense": Decimal("1200")}
    values.update(fields)
    return ValidatedRecord(
        row_index=row_index,
        candidate=Candidate(**values),
        valid=valid,
        errors=[] if valid else ["Description is required"],
    )


def stored_rent(**overrides):
    document = {
        "id": "rent-1",
        "date": "2024-01-15",
        "description": "Rent",
        "expense": "1200.00",
        "income": "0",
        "status": "Pending",
        "sequence_number": 1,
    }
    document.update(overrides)
    return document


class FailingStorage(InMemoryDocumentStorage):
    async def list_documents(self, collection):
        raise StorageError("sheet unavailable")


class CountingStorage(InMemoryDocumentStorage):
    """Counts collection reads."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.reads = 0

    async def list_documents(self, collection):
        self.reads += 1
        return await super().list_documents(collection)

    async def find_by_natural_key(self, collection, key):
        raise AssertionError("per-key lookup during a batch")


class TestReconciliationResolver:
    """Tests for classifying records against stored data."""

    def test_insert_into_empty_collection(self):
        resolver = ReconciliationResolver(InMemoryDocumentStorage())
        resolved = asyncio.run(resolver.resolve([record()]))
        assert len(resolved) == 1
        assert resolved[0].resolution == Resolution.INSERT
        assert resolved[0].existing_id is None

    def test_duplicate_of_stored_record(self):
        """Equal amounts in different text forms are still equal."""
        storage = InMemoryDocumentStorage({"transactions": [stored_rent()]})
        resolved = asyncio.run(ReconciliationResolver(storage).resolve([record()]))
        assert resolved[0].resolution == Resolution.DUPLICATE
        assert resolved[0].existing_id == "rent-1"
        assert resolved[0].changes == {}

    def test_update_carries_only_changed_fields(self):
        storage = InMemoryDocumentStorage({"transactions": [stored_rent(category="Office")]})
        resolved = asyncio.run(ReconciliationResolver(storage).resolve([
            record(expense=Decimal("1300"), status=TransactionStatus.COMPLETED),
        ]))
        item = resolved[0]
        assert item.resolution == Resolution.UPDATE
        assert item.existing_id == "rent-1"
        assert item.changes == {"expense": "1300", "status": "Completed"}

    def test_absent_fields_are_not_compared(self):
        """A stored category is left alone when the row carries none."""
        storage = InMemoryDocumentStorage({"transactions": [stored_rent(category="Office")]})
        resolved = asyncio.run(ReconciliationResolver(storage).resolve([record()]))
        assert resolved[0].resolution == Resolution.DUPLICATE

    def test_in_batch_repeat_is_duplicate(self):
        resolver = ReconciliationResolver(InMemoryDocumentStorage())
        resolved = asyncio.run(resolver.resolve([record(row_index=2), record(row_index=3)]))
        assert [r.resolution for r in resolved] == [Resolution.INSERT, Resolution.DUPLICATE]
        assert resolved[1].planned_row == 2

    def test_in_batch_change_is_update_of_planned_row(self):
        resolver = ReconciliationResolver(InMemoryDocumentStorage())
        resolved = asyncio.run(resolver.resolve([
            record(row_index=2),
            record(row_index=3, expense=Decimal("99")),
        ]))
        assert resolved[1].resolution == Resolution.UPDATE
        assert resolved[1].existing_id is None
        assert resolved[1].planned_row == 2
        assert resolved[1].changes == {"expense": "99"}

    def test_invalid_records_are_skipped(self):
        resolver = ReconciliationResolver(InMemoryDocumentStorage())
        resolved = asyncio.run(resolver.resolve([record(valid=False), record(row_index=3)]))
        assert [r.record.row_index for r in resolved] == [3]

    def test_rerun_is_idempotent(self):
        """Classifying stored data against itself yields only duplicates."""
        storage = InMemoryDocumentStorage({"transactions": [
            stored_rent(),
            stored_rent(id="food-1", description="Food", expense="12.5", sequence_number=2),
        ]})
        resolved = asyncio.run(ReconciliationResolver(storage).resolve([
            record(row_index=2),
            record(row_index=3, description="Food", expense=Decimal("12.50")),
        ]))
        assert all(r.resolution == Resolution.DUPLICATE for r in resolved)

    def test_read_failure_aborts(self):
        resolver = ReconciliationResolver(FailingStorage())
        with pytest.raises(ReconciliationReadError):
            asyncio.run(resolver.resolve([record()]))

    def test_one_read_per_batch(self):
        storage = CountingStorage({"transactions": [stored_rent()]})
        resolved = asyncio.run(ReconciliationResolver(storage).resolve([
            record(),
            record(row_index=3, description="Water"),
            record(row_index=4, description="Power"),
        ]))
        assert storage.reads == 1
        assert [r.resolution for r in resolved] == [
            Resolution.DUPLICATE, Resolution.INSERT, Resolution.INSERT,
        ]

    def test_no_read_without_valid_records(self):
        storage = CountingStorage()
        assert asyncio.run(ReconciliationResolver(storage).resolve([record(valid=False)])) == []
        assert storage.reads == 0

    def test_malformed_unrelated_row_does_not_abort(self):
        storage = InMemoryDocumentStorage({"transactions": [
            stored_rent(),
            {"id": "bad", "date": "not a date", "description": "Legacy"},
        ]})
        resolved = asyncio.run(ReconciliationResolver(storage).resolve([record()]))
        assert resolved[0].resolution == Resolution.DUPLICATE

    def test_chart_account_profile(self):
        storage = InMemoryDocumentStorage({"accounts": [
            {"id": "a1", "code": "1001", "name": "Cash", "account_type": "Asset",
             "financial_statement": "Balance Sheet"},
        ]})
        resolver = ReconciliationResolver(storage, CHART_ACCOUNT_PROFILE)
        resolved = asyncio.run(resolver.resolve([
            ValidatedRecord(
                row_index=2,
                candidate=ChartAccount(
                    code="1001",
                    name="Cash at bank",
                    account_type=AccountType.ASSET,
                    financial_statement="Balance Sheet",
                ),
                valid=True,
            ),
        ]))
        assert resolved[0].resolution == Resolution.UPDATE
        assert resolved[0].changes == {"name": "Cash at bank"}
