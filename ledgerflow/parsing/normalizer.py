"""
Field Normalizer

DESIGN DECISION: Parsing is lenient, but never silent.
Pasted spreadsheet data is messy: dates come in four different shapes,
amounts carry currency symbols and thousands separators. Instead of
rejecting a whole row we substitute a safe default and leave a
DefaultedFrom marker behind, which the validator turns into a warning.

Recognised date formats, tried in this order:
- yyyy-mm-dd
- yyyy/mm/dd
- dd/mm/yyyy
- mm/dd/yyyy (only when the dd/mm reading is not a real calendar date)
- d Mon yyyy (e.g. "5 Feb 2025")

Nothing in this module raises on bad input.
"""

import re
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional, TypeVar

import structlog

from ledgerflow.models.records import (
    AccountType,
    Candidate,
    ChartAccount,
    DefaultedFrom,
    NormalizedRow,
    ParsedValue,
    RawRow,
    TransactionStatus,
)


logger = structlog.get_logger(__name__)

R = TypeVar("R")

_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_YMD_SLASH = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$")
_DMY_SLASH = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_DAY_MONTH_NAME = re.compile(r"^(\d{1,2})\s+([A-Za-z]{3})\s+(\d{4})$")
_NON_NUMERIC = re.compile(r"[^0-9.\-]")

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

_STATUS_ALIASES = {
    "completed": TransactionStatus.COMPLETED,
    "pending": TransactionStatus.PENDING,
    "draft": TransactionStatus.DRAFT,
    "已完成": TransactionStatus.COMPLETED,
    "待处理": TransactionStatus.PENDING,
    "草稿": TransactionStatus.DRAFT,
}

# Cell order for each supported paste layout
_FULL_LAYOUT = (
    "date", "description", "description2", "expense", "income",
    "status", "project_id", "category", "bank_account_id",
)
_NO_DESCRIPTION2_LAYOUT = (
    "date", "description", "expense", "income", "status", "project_id", "category",
)
_MINIMAL_LAYOUT = ("date", "description", "description2", "expense", "income")

_ACCOUNT_LAYOUT = ("code", "type", "name", "financial_statement", "description")


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _parse_date(text: str) -> Optional[date]:
    match = _ISO_DATE.match(text) or _YMD_SLASH.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return _safe_date(year, month, day)

    match = _DMY_SLASH.match(text)
    if match:
        first, second, year = (int(part) for part in match.groups())
        return _safe_date(year, second, first) or _safe_date(year, first, second)

    match = _DAY_MONTH_NAME.match(text)
    if match:
        month = _MONTHS.get(match.group(2).lower())
        if month is None:
            return None
        return _safe_date(int(match.group(3)), month, int(match.group(1)))

    return None


def normalize_date(raw: Optional[str], today: Optional[date] = None) -> ParsedValue[date]:
    """
    Parse a date in any supported format.

    Unparsable or impossible dates fall back to today, marked as defaulted.
    """
    text = (raw or "").strip()
    parsed = _parse_date(text)
    if parsed is not None:
        return ParsedValue[date](value=parsed)

    fallback = today or date.today()
    logger.warning(
        "date_defaulted",
        raw_input=text,
        substituted=fallback.isoformat(),
    )
    return ParsedValue[date](
        value=fallback,
        defaulted=DefaultedFrom(
            field="date",
            raw_input=text,
            substituted=fallback.isoformat(),
        ),
    )


def normalize_amount(raw: Optional[str], field: str = "amount") -> ParsedValue[Decimal]:
    """
    Parse a monetary amount.

    Everything except digits, '-' and '.' is dropped first, so "RM 1,234.50"
    reads as 1234.50. Empty input is simply zero; non-empty garbage is zero
    with a marker.
    """
    text = (raw or "").strip()
    if not text:
        return ParsedValue[Decimal](value=Decimal("0"))

    cleaned = _NON_NUMERIC.sub("", text)
    try:
        value = Decimal(cleaned)
        if not value.is_finite():
            raise InvalidOperation(cleaned)
        return ParsedValue[Decimal](value=value)
    except InvalidOperation:
        logger.warning(
            "amount_defaulted",
            field=field,
            raw_input=text,
            substituted="0",
        )
        return ParsedValue[Decimal](
            value=Decimal("0"),
            defaulted=DefaultedFrom(field=field, raw_input=text, substituted="0"),
        )


def normalize_optional_text(raw: Optional[str]) -> Optional[str]:
    """Trimmed text, or None when nothing is left."""
    text = (raw or "").strip()
    return text or None


def normalize_status(raw: Optional[str]) -> TransactionStatus:
    """Case-insensitive status lookup; anything unrecognised is Pending."""
    text = (raw or "").strip().lower()
    return _STATUS_ALIASES.get(text, TransactionStatus.PENDING)


def _layout_for(field_count: int) -> tuple[str, ...]:
    if field_count >= 8:
        return _FULL_LAYOUT
    if field_count == 7:
        return _NO_DESCRIPTION2_LAYOUT
    # 5-6 cells and short rows are both read positionally
    return _MINIMAL_LAYOUT


def _assign(cells: list[str], layout: tuple[str, ...]) -> dict[str, str]:
    return {name: cells[i] if i < len(cells) else "" for i, name in enumerate(layout)}


def normalize_transaction_row(raw_row: RawRow, today: Optional[date] = None) -> NormalizedRow:
    """Map one raw row onto a transaction Candidate."""
    cells = [cell.strip() for cell in raw_row.cells]
    values = _assign(cells, _layout_for(len(cells)))

    parsed_date = normalize_date(values.get("date"), today=today)
    expense = normalize_amount(values.get("expense"), field="expense")
    income = normalize_amount(values.get("income"), field="income")

    notes = [
        parsed.defaulted
        for parsed in (parsed_date, expense, income)
        if parsed.defaulted is not None
    ]

    candidate = Candidate(
        date=parsed_date.value,
        description=values.get("description", ""),
        description2=normalize_optional_text(values.get("description2")),
        expense=expense.value,
        income=income.value,
        status=normalize_status(values.get("status")),
        project_id=normalize_optional_text(values.get("project_id")),
        category=normalize_optional_text(values.get("category")),
        bank_account_id=normalize_optional_text(values.get("bank_account_id")),
    )

    return NormalizedRow(
        row_index=raw_row.line_number,
        field_count=len(cells),
        candidate=candidate,
        notes=notes,
        raw={
            "date": values.get("date", ""),
            "expense": values.get("expense", ""),
            "income": values.get("income", ""),
        },
    )


def normalize_account_row(raw_row: RawRow) -> NormalizedRow:
    """Map one raw row onto a ChartAccount (code, type, name, statement, description)."""
    cells = [cell.strip() for cell in raw_row.cells]
    values = _assign(cells, _ACCOUNT_LAYOUT)

    type_text = values["type"]
    account_type = None
    for member in AccountType:
        if member.value.lower() == type_text.lower():
            account_type = member
            break

    financial_statement = normalize_optional_text(values["financial_statement"])
    if financial_statement is None and account_type is not None:
        financial_statement = account_type.financial_statement

    candidate = ChartAccount(
        code=values["code"],
        name=values["name"],
        account_type=account_type,
        financial_statement=financial_statement,
        description=normalize_optional_text(values["description"]),
    )

    return NormalizedRow(
        row_index=raw_row.line_number,
        field_count=len(cells),
        candidate=candidate,
        raw={"type": type_text},
    )


def normalize_rows(
    rows: list[RawRow],
    normalize: Callable[[RawRow], R],
    concurrency: int = 1,
) -> list[R]:
    """
    Apply `normalize` to every row, keeping input order.

    With concurrency > 1 the rows are spread over a thread pool;
    Executor.map yields results in submission order.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be a positive integer")
    if concurrency == 1 or len(rows) <= 1:
        return [normalize(row) for row in rows]

    with ThreadPoolExecutor(max_workers=concurrency) as pool:
        return list(pool.map(normalize, rows))
