"""
Core Data Models for ledgerflow

These models define the schemas for everything flowing through the
import pipeline:

    RawRow → NormalizedRow(Candidate) → ValidatedRecord → ResolvedRecord
           → StoredTransaction → BalanceRow

DESIGN DECISION: Optional fields use None for "not set".
Documents are produced with exclude_none, so an absent field is never
written as an empty sentinel value and a partial update never blanks
a field the user did not provide.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field


T = TypeVar("T")


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionStatus(str, Enum):
    """Lifecycle status of a bank transaction."""
    DRAFT = "Draft"
    PENDING = "Pending"
    COMPLETED = "Completed"


class AccountType(str, Enum):
    """Chart-of-accounts account types."""
    ASSET = "Asset"
    LIABILITY = "Liability"
    EQUITY = "Equity"
    REVENUE = "Revenue"
    EXPENSE = "Expense"

    @property
    def financial_statement(self) -> str:
        """Statement an account of this type reports on by default."""
        if self in (AccountType.ASSET, AccountType.LIABILITY, AccountType.EQUITY):
            return "Balance Sheet"
        return "Income Statement"


class Resolution(str, Enum):
    """
    How a valid record relates to what is already stored.

    INSERT:    nothing shares the natural key
    UPDATE:    a stored record shares the key and some field differs
    DUPLICATE: a stored record shares the key and nothing differs
    """
    INSERT = "insert"
    UPDATE = "update"
    DUPLICATE = "duplicate"


# Board-of-directors portfolio codes used to group projects
BOD_CATEGORIES: dict[str, str] = {
    "P": "President",
    "HT": "Honorary Treasurer",
    "EVP": "Executive Vice President",
    "LS": "Local Secretary",
    "GLC": "General Legal Counsel",
    "VPI": "VP Individual",
    "VPB": "VP Business",
    "VPIA": "VP International",
    "VPC": "VP Community",
    "VPLOM": "VP Local Organisation Management",
}


# =============================================================================
# PARSING MODELS
# =============================================================================

class DefaultedFrom(BaseModel):
    """
    Marker left behind when lenient parsing substituted a default.

    Callers decide whether to surface or suppress it; the parser never
    hides the substitution.
    """

    field: str = Field(..., description="Field that was defaulted")
    raw_input: str = Field(..., description="The text that could not be parsed")
    substituted: str = Field(..., description="The value used instead")

    def describe(self) -> str:
        return (
            f"{self.field} '{self.raw_input}' could not be parsed; "
            f"used {self.substituted}"
        )


class ParsedValue(BaseModel, Generic[T]):
    """Result of a best-effort parse: the value plus an optional default marker."""

    value: T
    defaulted: Optional[DefaultedFrom] = None

    @property
    def was_defaulted(self) -> bool:
        return self.defaulted is not None


class RawRow(BaseModel):
    """One line of pasted/uploaded text split into cells."""

    line_number: int = Field(
        ...,
        ge=1,
        description="1-based line number in the original text"
    )
    cells: list[str] = Field(default_factory=list)


# =============================================================================
# TRANSACTION MODELS
# =============================================================================

class Candidate(BaseModel):
    """
    A parsed-but-not-yet-validated transaction.

    Amounts are kept as parsed (possibly negative) so the validator can
    explain what is wrong instead of the model refusing to exist.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    date: date
    description: str = ""
    description2: Optional[str] = None
    expense: Decimal = Field(default=Decimal("0"))
    income: Decimal = Field(default=Decimal("0"))
    status: TransactionStatus = TransactionStatus.PENDING
    project_id: Optional[str] = Field(
        default=None,
        description="External key into the project account set"
    )
    category: Optional[str] = None
    bank_account_id: Optional[str] = Field(
        default=None,
        description="Bank account this transaction belongs to"
    )

    @property
    def net_amount(self) -> Decimal:
        """Signed amount for display: income minus expense."""
        return self.income - self.expense

    def to_document(self) -> dict[str, Any]:
        """Serialize for the document store, omitting absent fields."""
        return self.model_dump(mode="json", exclude_none=True)


class StoredTransaction(Candidate):
    """A transaction that has been persisted and given an identity."""

    id: str = Field(..., description="Opaque id assigned by the store")
    sequence_number: Optional[int] = Field(
        default=None,
        ge=1,
        description="Display position; unique within the collection"
    )
    project_name: Optional[str] = Field(
        default=None,
        description="Name of the linked project, kept for display and search"
    )
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc_id: str, document: dict[str, Any]) -> "StoredTransaction":
        return cls.model_validate({**document, "id": doc_id})


# =============================================================================
# REFERENCE DATA
# =============================================================================

class ProjectAccount(BaseModel):
    """
    A project/ledger account a transaction may be linked to.

    Read-only reference data for the engine.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    project_id: str = Field(
        ...,
        min_length=1,
        description="Exact identifier transactions are matched on"
    )
    name: str = Field(..., min_length=1, max_length=200)
    bod_category: str = Field(
        ...,
        description="Board portfolio code, see BOD_CATEGORIES"
    )
    budget: Decimal = Field(default=Decimal("0"), ge=0)
    status: str = Field(
        default="Active",
        pattern="^(Active|Completed|On Hold)$"
    )

    @property
    def bod_display_name(self) -> str:
        return BOD_CATEGORIES.get(self.bod_category, self.bod_category)


class BankAccount(BaseModel):
    """A bank account; its balance is the opening balance of its ledger."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str
    name: str = Field(..., min_length=1)
    balance: Decimal = Field(default=Decimal("0"))
    currency: str = Field(..., min_length=3, max_length=3)
    account_number: Optional[str] = None
    is_active: bool = True


# =============================================================================
# CHART OF ACCOUNTS
# =============================================================================

class ChartAccount(BaseModel):
    """
    An account-chart entry as imported.

    `account_type` is None when the pasted type was not recognised;
    the validator reports it.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    code: str = ""
    name: str = ""
    account_type: Optional[AccountType] = None
    financial_statement: Optional[str] = None
    description: Optional[str] = None

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class StoredChartAccount(ChartAccount):
    """A persisted account-chart entry."""

    id: str
    balance: Decimal = Field(default=Decimal("0"))

    @classmethod
    def from_document(cls, doc_id: str, document: dict[str, Any]) -> "StoredChartAccount":
        return cls.model_validate({**document, "id": doc_id})


# =============================================================================
# PIPELINE MODELS
# =============================================================================

CandidateLike = Union[Candidate, ChartAccount]


class NormalizedRow(BaseModel):
    """Output of the normalizer for one raw row."""

    row_index: int = Field(..., ge=1, description="Original line number")
    field_count: int = Field(..., ge=0)
    candidate: CandidateLike
    notes: list[DefaultedFrom] = Field(default_factory=list)
    raw: dict[str, str] = Field(
        default_factory=dict,
        description="Raw cell text for fields the validator must explain"
    )


class ValidatedRecord(BaseModel):
    """
    A candidate with its validity verdict.

    Invalid records are never persisted; they are returned for display.
    """

    row_index: int = Field(..., ge=1)
    candidate: CandidateLike
    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    notes: list[DefaultedFrom] = Field(default_factory=list)


class ResolvedRecord(BaseModel):
    """A valid record classified against the stored collection."""

    record: ValidatedRecord
    resolution: Resolution
    existing_id: Optional[str] = None
    planned_row: Optional[int] = Field(
        default=None,
        description="Earlier row of the same batch this record repeats"
    )
    changes: dict[str, Any] = Field(
        default_factory=dict,
        description="Fields to write on UPDATE (only those that differ)"
    )


# =============================================================================
# RESULT MODELS
# =============================================================================

class InvalidRow(BaseModel):
    """A row rejected by validation."""

    original_row_index: int
    errors: list[str]


class FailedWrite(BaseModel):
    """A row that was classified but could not be written."""

    original_row_index: int
    resolution: Resolution
    error: str


class RowOutcome(BaseModel):
    """What happened to one input row, reported in input order."""

    row_index: int
    outcome: str = Field(
        ...,
        pattern="^(inserted|updated|duplicate|invalid|failed|planned_insert|planned_update)$"
    )
    record_id: Optional[str] = None
    sequence_number: Optional[int] = None
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ImportSummary(BaseModel):
    """
    Result of one import call.

    Counts are always reported, even when some rows failed, so partial
    success is visible.
    """

    inserted_count: int = 0
    updated_count: int = 0
    duplicate_count: int = 0
    invalid_rows: list[InvalidRow] = Field(default_factory=list)
    failed_writes: list[FailedWrite] = Field(default_factory=list)
    outcomes: list[RowOutcome] = Field(default_factory=list)
    notes: list[DefaultedFrom] = Field(default_factory=list)
    dry_run: bool = False

    @property
    def total_rows(self) -> int:
        return len(self.outcomes)

    @property
    def has_failures(self) -> bool:
        return bool(self.invalid_rows or self.failed_writes)


class BalanceRow(BaseModel):
    """A transaction with the cumulative balance after it."""

    transaction: StoredTransaction
    balance: Decimal


class ProjectSummary(BaseModel):
    """Spending against one project, from exactly-linked transactions."""

    project: ProjectAccount
    transaction_count: int = 0
    spent: Decimal = Decimal("0")
    received: Decimal = Decimal("0")

    @property
    def remaining(self) -> Decimal:
        return self.project.budget - self.spent
