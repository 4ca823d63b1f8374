"""
Tests for sequence allocation, reordering and display order.
"""

import asyncio
import pytest
from datetime import date

from ledgerflow.models.records import StoredTransaction
from ledgerflow.sequencing import PartialReorderError, SequenceAllocator, display_order
from ledgerflow.services.storage import (
    InMemoryDocumentStorage,
    StorageError,
    WriteResult,
)


def seeded(*numbers):
    documents = []
    for i, number in enumerate(numbers):
        doc = {"id": f"t{i}", "date": f"2024-01-{10 + i}", "description": f"Row {i}"}
        if number is not None:
            doc["sequence_number"] = number
        documents.append(doc)
    return InMemoryDocumentStorage({"transactions": documents})


def numbers_by_id(storage):
    documents = asyncio.run(storage.list_documents("transactions"))
    return {doc["id"]: doc.get("sequence_number") for doc in documents}


class RejectingStorage(InMemoryDocumentStorage):
    async def batch_write(self, collection, operations):
        return [WriteResult(success=False, error="quota exceeded", tag=op.tag) for op in operations]


class TestAllocate:
    """Tests for handing out new numbers."""

    def test_empty_collection_starts_at_one(self):
        allocator = SequenceAllocator(InMemoryDocumentStorage())
        assert asyncio.run(allocator.allocate()) == [1]

    def test_continues_after_maximum(self):
        allocator = SequenceAllocator(seeded(3, 7, None))
        assert asyncio.run(allocator.allocate(3)) == [8, 9, 10]

    def test_never_reuses_a_present_number(self):
        storage = seeded(1, 2, 5)
        taken = set(numbers_by_id(storage).values())
        allocated = asyncio.run(SequenceAllocator(storage).allocate(4))
        assert taken.isdisjoint(allocated)

    def test_zero_count(self):
        assert asyncio.run(SequenceAllocator(seeded(1)).allocate(0)) == []


class TestReorder:
    """Tests for persisting a new display order."""

    def test_reorder_rewrites_dense_numbers(self):
        storage = seeded(1, 2, 3)
        assert asyncio.run(SequenceAllocator(storage).reorder(["t2", "t0", "t1"])) is True
        assert numbers_by_id(storage) == {"t2": 1, "t0": 2, "t1": 3}

    def test_partial_reorder_is_refused(self):
        storage = seeded(1, 2, 3)
        with pytest.raises(PartialReorderError):
            asyncio.run(SequenceAllocator(storage).reorder(["t2", "t0"]))
        assert numbers_by_id(storage) == {"t0": 1, "t1": 2, "t2": 3}

    def test_unknown_id_is_refused(self):
        with pytest.raises(PartialReorderError):
            asyncio.run(SequenceAllocator(seeded(1)).reorder(["t0", "nope"]))

    def test_repeated_id_is_refused(self):
        with pytest.raises(PartialReorderError):
            asyncio.run(SequenceAllocator(seeded(1, 2)).reorder(["t0", "t0"]))

    def test_write_failure_raises(self):
        storage = RejectingStorage({"transactions": [{"id": "a", "date": "2024-01-01"}]})
        with pytest.raises(StorageError):
            asyncio.run(SequenceAllocator(storage).reorder(["a"]))


class TestBackfill:
    """Tests for numbering legacy records."""

    def test_assigns_oldest_first_after_maximum(self):
        storage = InMemoryDocumentStorage({"transactions": [
            {"id": "new", "date": "2024-03-01", "description": "c"},
            {"id": "numbered", "date": "2024-02-01", "description": "b", "sequence_number": 4},
            {"id": "old", "date": "2024-01-01", "description": "a"},
        ]})
        assigned = asyncio.run(SequenceAllocator(storage).backfill_missing())
        assert assigned == {"old": 5, "new": 6}
        assert numbers_by_id(storage)["numbered"] == 4

    def test_nothing_to_do(self):
        assert asyncio.run(SequenceAllocator(seeded(1, 2)).backfill_missing()) == {}


class TestDisplayOrder:
    """Tests for the user-visible ordering rule."""

    def _tx(self, id, day, sequence_number=None):
        return StoredTransaction(
            id=id,
            date=date(2024, 1, day),
            description=id,
            sequence_number=sequence_number,
        )

    def test_sequenced_first_then_newest(self):
        records = [
            self._tx("late-unsequenced", 20),
            self._tx("second", 1, sequence_number=2),
            self._tx("early-unsequenced", 5),
            self._tx("first", 30, sequence_number=1),
        ]
        ordered = [r.id for r in display_order(records)]
        assert ordered == ["first", "second", "late-unsequenced", "early-unsequenced"]
