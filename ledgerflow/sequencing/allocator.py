"""
Sequence Allocator

Every stored transaction gets a sequence_number: its position in the
user-visible list. Numbers are unique within a collection and strictly
positive.

DESIGN DECISION: Allocation is max + 1, not a counter document.
The store is the single source of truth. Two writers allocating at the
same moment can pick the same number; the store rejects the second
insert with SequenceConflictError and the import flow re-allocates and
retries. This is best-effort for a single logical writer, not a
distributed lock.

Reordering rewrites the numbers of the WHOLE collection so that they
stay a dense 1..N permutation. A partial reorder could collide with the
numbers of records that were left out, so it is refused.
"""


import structlog

from ledgerflow.models.records import StoredTransaction
from ledgerflow.services.storage import (
    DocumentStorageInterface,
    StorageError,
    WriteOperation,
)


logger = structlog.get_logger(__name__)


class PartialReorderError(ValueError):
    """The requested order is not a permutation of the whole collection."""
    pass


class SequenceAllocator:
    """Hands out and rewrites sequence numbers for one collection."""

    def __init__(
        self,
        storage: DocumentStorageInterface,
        collection: str = "transactions",
    ):
        self._storage = storage
        self._collection = collection

    async def allocate(self, count: int = 1) -> list[int]:
        """
        Reserve `count` consecutive numbers after the current maximum.

        Nothing is written; the numbers are only claimed when the insert
        carrying them succeeds.
        """
        if count < 0:
            raise ValueError("count must not be negative")
        current = await self._storage.max_sequence_number(self._collection)
        return list(range(current + 1, current + 1 + count))

    async def reorder(self, ordered_ids: list[str]) -> bool:
        """
        Persist a new display order.

        Args:
            ordered_ids: Every id of the collection, in the desired order

        Raises:
            PartialReorderError: If ids are missing, unknown or repeated
            StorageError: If any of the writes failed
        """
        documents = await self._storage.list_documents(self._collection)
        stored_ids = {doc["id"] for doc in documents}

        if len(set(ordered_ids)) != len(ordered_ids):
            raise PartialReorderError("Reorder contains repeated ids")
        missing = stored_ids - set(ordered_ids)
        unknown = set(ordered_ids) - stored_ids
        if missing or unknown:
            raise PartialReorderError(
                f"Reorder must list every record exactly once "
                f"({len(missing)} missing, {len(unknown)} unknown)"
            )

        operations = [
            WriteOperation(
                kind="update",
                doc_id=doc_id,
                fields={"sequence_number": index + 1},
                tag=index + 1,
            )
            for index, doc_id in enumerate(ordered_ids)
        ]
        results = await self._storage.batch_write(self._collection, operations)

        failed = [r for r in results if not r.success]
        if failed:
            logger.error(
                "reorder_failed",
                collection=self._collection,
                failed=len(failed),
                first_error=failed[0].error,
            )
            raise StorageError(
                f"Reorder wrote {len(results) - len(failed)} of {len(results)} records; "
                f"first error: {failed[0].error}"
            )

        logger.info("reorder_completed", collection=self._collection, records=len(ordered_ids))
        return True

    async def backfill_missing(self) -> dict[str, int]:
        """
        Give legacy records without a sequence number one, oldest first.

        New numbers go after the current maximum, so existing numbers are
        never touched.

        Returns:
            Mapping of record id to the number it was given
        """
        documents = await self._storage.list_documents(self._collection)
        unsequenced = [doc for doc in documents if doc.get("sequence_number") in (None, "")]
        if not unsequenced:
            return {}

        unsequenced.sort(key=lambda doc: (str(doc.get("date") or ""), str(doc.get("created_at") or "")))
        start = max(
            (int(doc["sequence_number"]) for doc in documents
             if doc.get("sequence_number") not in (None, "")),
            default=0,
        ) + 1

        assigned = {doc["id"]: start + i for i, doc in enumerate(unsequenced)}
        operations = [
            WriteOperation(kind="update", doc_id=doc_id, fields={"sequence_number": number}, tag=number)
            for doc_id, number in assigned.items()
        ]
        results = await self._storage.batch_write(self._collection, operations)

        failed = [r for r in results if not r.success]
        if failed:
            raise StorageError(
                f"Backfill failed for {len(failed)} records; first error: {failed[0].error}"
            )

        logger.info("sequence_backfilled", collection=self._collection, assigned=len(assigned))
        return assigned


def display_order(records: list[StoredTransaction]) -> list[StoredTransaction]:
    """
    Order records for display.

    Sequenced records come first, ascending; records without a number
    follow, newest date first.
    """
    sequenced = sorted(
        (r for r in records if r.sequence_number is not None),
        key=lambda r: r.sequence_number,
    )
    unsequenced = sorted(
        (r for r in records if r.sequence_number is None),
        key=lambda r: r.date,
        reverse=True,
    )
    return sequenced + unsequenced

