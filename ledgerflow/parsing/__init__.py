"""Parsing package: raw text to normalized rows."""

from ledgerflow.parsing.normalizer import (
    normalize_account_row,
    normalize_amount,
    normalize_date,
    normalize_optional_text,
    normalize_rows,
    normalize_status,
    normalize_transaction_row,
)
from ledgerflow.parsing.rows import detect_delimiter, split_rows

__all__ = [
    "detect_delimiter",
    "normalize_account_row",
    "normalize_amount",
    "normalize_date",
    "normalize_optional_text",
    "normalize_rows",
    "normalize_status",
    "normalize_transaction_row",
    "split_rows",
]
