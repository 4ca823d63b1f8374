"""
Reconciliation Resolver

Decides, for every valid record of a batch, whether it is new (INSERT),
a changed version of something already stored (UPDATE) or a repeat
(DUPLICATE). The decision is made against the natural key of the entity
type, never against the store's opaque id.

DESIGN DECISION: Classification happens before any write.
The collection is read once per batch and indexed by natural key; if
that read fails the whole batch is aborted with ReconciliationReadError
and nothing has been written. Writing a
half-classified batch could insert records that should have been updates.

DESIGN DECISION: Records earlier in the same batch count as existing.
Pasting the same line twice (even with the date in two formats) yields
one INSERT and one DUPLICATE, so re-running any input is idempotent.

Partial updates: only fields the row actually carries are compared, and
only the fields that differ end up in `changes`.
"""

from typing import Any, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ledgerflow.models.records import (
    ResolvedRecord,
    Resolution,
    StoredChartAccount,
    StoredTransaction,
    ValidatedRecord,
)
from ledgerflow.services.storage import DocumentStorageInterface


logger = structlog.get_logger(__name__)


class EntityProfile(BaseModel):
    """How one entity type is keyed, compared and stored."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    collection: str = Field(..., min_length=1)
    natural_key: tuple[str, ...] = Field(..., min_length=1)
    comparable_fields: tuple[str, ...]
    sequenced: bool = False
    stored_type: type = Field(
        ...,
        description="Model with a from_document(doc_id, document) constructor"
    )

    def key_for(self, document: dict[str, Any]) -> dict[str, Any]:
        return {field: document.get(field) for field in self.natural_key}


TRANSACTION_PROFILE = EntityProfile(
    collection="transactions",
    natural_key=("date", "description"),
    comparable_fields=(
        "description2",
        "expense",
        "income",
        "status",
        "project_id",
        "category",
        "bank_account_id",
    ),
    sequenced=True,
    stored_type=StoredTransaction,
)

CHART_ACCOUNT_PROFILE = EntityProfile(
    collection="accounts",
    natural_key=("code",),
    comparable_fields=("name", "account_type", "financial_statement", "description"),
    sequenced=False,
    stored_type=StoredChartAccount,
)


class ReconciliationReadError(Exception):
    """Looking up existing records failed; the batch must not be written."""
    pass


class _Known(BaseModel):
    """What the batch believes a key currently holds."""

    existing_id: Optional[str] = None
    planned_row: Optional[int] = None
    values: dict[str, Any] = Field(default_factory=dict)


class ReconciliationResolver:
    """
    Classifies valid records as INSERT, UPDATE or DUPLICATE.

    One instance per batch is not required; all batch state lives in
    resolve().
    """

    def __init__(
        self,
        storage: DocumentStorageInterface,
        profile: EntityProfile = TRANSACTION_PROFILE,
    ):
        self._storage = storage
        self._profile = profile

    @property
    def profile(self) -> EntityProfile:
        return self._profile

    def _key_tuple(self, key: dict[str, Any]) -> tuple:
        return tuple(None if v is None else str(v) for v in key.values())

    async def _snapshot(self) -> dict[tuple, dict[str, Any]]:
        """Read the collection once and index it by natural key."""
        try:
            documents = await self._storage.list_documents(self._profile.collection)
        except Exception as e:
            raise ReconciliationReadError(
                f"Could not read {self._profile.collection}: {e}"
            ) from e

        index: dict[tuple, dict[str, Any]] = {}
        for document in documents:
            index.setdefault(self._key_tuple(self._profile.key_for(document)), document)
        return index

    def _known_from(self, document: dict[str, Any]) -> _Known:
        try:
            stored = self._profile.stored_type.from_document(document["id"], document)
        except Exception as e:
            raise ReconciliationReadError(
                f"Could not read {self._profile.collection} record {document.get('id')}: {e}"
            ) from e
        return _Known(
            existing_id=stored.id,
            values={f: getattr(stored, f, None) for f in self._profile.comparable_fields},
        )

    def _compare(self, record: ValidatedRecord, known: _Known) -> dict[str, Any]:
        """Present candidate fields that differ from what is known, as document values."""
        document = record.candidate.to_document()
        changes = {}
        for field in self._profile.comparable_fields:
            value = getattr(record.candidate, field, None)
            if value is None:
                continue
            if known.values.get(field) != value:
                changes[field] = document[field]
        return changes

    async def resolve(self, records: list[ValidatedRecord]) -> list[ResolvedRecord]:
        """
        Classify every valid record, in input order.

        Invalid records are skipped.

        Raises:
            ReconciliationReadError: If any lookup fails
        """
        stored: Optional[dict[tuple, dict[str, Any]]] = None
        known: dict[tuple, _Known] = {}
        resolved = []

        for record in records:
            if not record.valid:
                continue

            key = self._profile.key_for(record.candidate.to_document())
            key_id = self._key_tuple(key)

            if stored is None:
                stored = await self._snapshot()

            if key_id not in known:
                document = stored.get(key_id)
                if document is None:
                    known[key_id] = _Known(
                        planned_row=record.row_index,
                        values={
                            f: getattr(record.candidate, f, None)
                            for f in self._profile.comparable_fields
                        },
                    )
                    resolved.append(ResolvedRecord(
                        record=record,
                        resolution=Resolution.INSERT,
                    ))
                    continue
                known[key_id] = self._known_from(document)

            current = known[key_id]
            changes = self._compare(record, current)

            if not changes:
                resolution = Resolution.DUPLICATE
            else:
                resolution = Resolution.UPDATE
                for field in changes:
                    current.values[field] = getattr(record.candidate, field)

            resolved.append(ResolvedRecord(
                record=record,
                resolution=resolution,
                existing_id=current.existing_id,
                planned_row=None if current.existing_id else current.planned_row,
                changes=changes,
            ))

        logger.info(
            "batch_resolved",
            collection=self._profile.collection,
            inserts=sum(1 for r in resolved if r.resolution == Resolution.INSERT),
            updates=sum(1 for r in resolved if r.resolution == Resolution.UPDATE),
            duplicates=sum(1 for r in resolved if r.resolution == Resolution.DUPLICATE),
        )
        return resolved
