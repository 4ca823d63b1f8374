"""
Tests for row splitting and field normalization.
"""

import pytest
from datetime import date
from decimal import Decimal

from ledgerflow.models.records import AccountType, RawRow, TransactionStatus
from ledgerflow.parsing import (
    detect_delimiter,
    normalize_account_row,
    normalize_amount,
    normalize_date,
    normalize_optional_text,
    normalize_rows,
    normalize_status,
    normalize_transaction_row,
    split_rows,
)


TODAY = date(2024, 6, 30)


class TestSplitRows:
    """Tests for turning pasted text into RawRows."""

    def test_detects_tab_delimiter(self):
        assert detect_delimiter("date\tdescription\n2024-01-15\tRent") == "\t"

    def test_defaults_to_comma(self):
        assert detect_delimiter("date,description") == ","
        assert detect_delimiter("") == ","

    def test_skips_header_and_keeps_line_numbers(self):
        """Line numbers count the header and blank lines."""
        text = "date,description,expense\n2024-01-15,Rent,1200\n\n2024-01-16,Food,12"
        rows = split_rows(text, skip_header=True)
        assert [r.line_number for r in rows] == [2, 4]
        assert rows[0].cells == ["2024-01-15", "Rent", "1200"]

    def test_without_header(self):
        rows = split_rows("2024-01-15,Rent,1200", skip_header=False)
        assert len(rows) == 1
        assert rows[0].line_number == 1

    def test_quoted_cells_keep_commas(self):
        rows = split_rows('2024-01-15,"Rent, March",1200', skip_header=False)
        assert rows[0].cells == ["2024-01-15", "Rent, March", "1200"]

    def test_tab_separated_paste(self):
        text = "Date\tDescription\n15/01/2024\tRent\t\t1,200.00"
        rows = split_rows(text)
        assert rows[0].cells == ["15/01/2024", "Rent", "", "1,200.00"]

    def test_nul_bytes_are_dropped(self):
        rows = split_rows("2024-01-15,Re\x00nt,1200\x00", skip_header=False)
        assert rows[0].cells == ["2024-01-15", "Rent", "1200"]


class TestNormalizeDate:
    """Tests for lenient date parsing."""

    @pytest.mark.parametrize("raw", [
        "2024-01-15",
        "2024/01/15",
        "15/01/2024",
        "01/15/2024",
        "15 Jan 2024",
        "15 jan 2024",
        "2024-1-15",
    ])
    def test_all_formats_agree(self, raw):
        """Every supported format of the same day yields the same date."""
        parsed = normalize_date(raw, today=TODAY)
        assert parsed.value == date(2024, 1, 15)
        assert parsed.was_defaulted is False

    def test_single_digit_components(self):
        assert normalize_date("5 Feb 2025", today=TODAY).value == date(2025, 2, 5)
        assert normalize_date("5/2/2025", today=TODAY).value == date(2025, 2, 5)

    def test_day_first_wins_when_both_readings_are_valid(self):
        """03/04/2024 is 3 April, not 4 March."""
        assert normalize_date("03/04/2024", today=TODAY).value == date(2024, 4, 3)

    @pytest.mark.parametrize("raw", [
        "not a date",
        "",
        None,
        "2024-02-30",
        "31/31/2024",
        "15 Foo 2024",
        "2024-13-01",
    ])
    def test_malformed_dates_default_to_today(self, raw):
        """Malformed input never raises; it yields today with a marker."""
        parsed = normalize_date(raw, today=TODAY)
        assert parsed.value == TODAY
        assert parsed.defaulted is not None
        assert parsed.defaulted.field == "date"
        assert parsed.defaulted.substituted == "2024-06-30"

    def test_canonical_output(self):
        assert normalize_date("5/2/2025", today=TODAY).value.isoformat() == "2025-02-05"


class TestNormalizeAmount:
    """Tests for amount parsing."""

    @pytest.mark.parametrize("raw,expected", [
        ("1234.50", Decimal("1234.50")),
        ("1,234.50", Decimal("1234.50")),
        ("RM 1,234.50", Decimal("1234.50")),
        ("$12", Decimal("12")),
        ("-5.25", Decimal("-5.25")),
        ("  42  ", Decimal("42")),
    ])
    def test_parses_messy_amounts(self, raw, expected):
        parsed = normalize_amount(raw)
        assert parsed.value == expected
        assert parsed.was_defaulted is False

    def test_empty_is_zero_without_marker(self):
        parsed = normalize_amount("")
        assert parsed.value == Decimal("0")
        assert parsed.was_defaulted is False

    @pytest.mark.parametrize("raw", ["abc", "1.2.3", "-", "12-"])
    def test_garbage_is_zero_with_marker(self, raw):
        parsed = normalize_amount(raw, field="expense")
        assert parsed.value == Decimal("0")
        assert parsed.defaulted.field == "expense"
        assert parsed.defaulted.raw_input == raw

    @pytest.mark.parametrize("raw", ["RM 1,234.50", "0.10", "-7", "1000000"])
    def test_idempotent(self, raw):
        """Normalizing the canonical text again gives the same value."""
        once = normalize_amount(raw).value
        twice = normalize_amount(str(once)).value
        assert once == twice


class TestNormalizeTextAndStatus:
    """Tests for optional text and status handling."""

    def test_optional_text(self):
        assert normalize_optional_text("  note ") == "note"
        assert normalize_optional_text("   ") is None
        assert normalize_optional_text(None) is None

    @pytest.mark.parametrize("raw,expected", [
        ("Completed", TransactionStatus.COMPLETED),
        ("completed", TransactionStatus.COMPLETED),
        ("DRAFT", TransactionStatus.DRAFT),
        ("pending", TransactionStatus.PENDING),
        ("已完成", TransactionStatus.COMPLETED),
        ("草稿", TransactionStatus.DRAFT),
        ("待处理", TransactionStatus.PENDING),
    ])
    def test_known_statuses(self, raw, expected):
        assert normalize_status(raw) == expected

    @pytest.mark.parametrize("raw", ["", None, "Paid", "done"])
    def test_unknown_status_is_pending(self, raw):
        assert normalize_status(raw) == TransactionStatus.PENDING


class TestNormalizeTransactionRow:
    """Tests for mapping cells onto transaction fields by layout."""

    def test_full_layout(self):
        row = RawRow(line_number=2, cells=[
            "15/01/2024", "Hall rental", "Deposit", "500", "", "Completed", "P-01", "Venue",
        ])
        normalized = normalize_transaction_row(row, today=TODAY)
        candidate = normalized.candidate
        assert normalized.row_index == 2
        assert normalized.field_count == 8
        assert candidate.date == date(2024, 1, 15)
        assert candidate.description2 == "Deposit"
        assert candidate.expense == Decimal("500")
        assert candidate.status == TransactionStatus.COMPLETED
        assert candidate.project_id == "P-01"
        assert candidate.category == "Venue"
        assert candidate.bank_account_id is None

    def test_ninth_cell_is_bank_account(self):
        row = RawRow(line_number=2, cells=[
            "2024-01-15", "Rent", "", "1200", "0", "Pending", "", "", "maybank-1",
        ])
        assert normalize_transaction_row(row, today=TODAY).candidate.bank_account_id == "maybank-1"

    def test_seven_cells_have_no_description2(self):
        row = RawRow(line_number=3, cells=[
            "2024-01-15", "Rent", "1200", "0", "Draft", "P-02", "Office",
        ])
        candidate = normalize_transaction_row(row, today=TODAY).candidate
        assert candidate.description2 is None
        assert candidate.expense == Decimal("1200")
        assert candidate.status == TransactionStatus.DRAFT
        assert candidate.project_id == "P-02"

    def test_five_cells(self):
        row = RawRow(line_number=2, cells=["2024-01-15", "Sponsorship", "", "", "300"])
        candidate = normalize_transaction_row(row, today=TODAY).candidate
        assert candidate.income == Decimal("300")
        assert candidate.status == TransactionStatus.PENDING

    def test_short_row_is_read_positionally(self):
        row = RawRow(line_number=2, cells=["2024-01-15", "Rent"])
        normalized = normalize_transaction_row(row, today=TODAY)
        assert normalized.field_count == 2
        assert normalized.candidate.description == "Rent"
        assert normalized.candidate.expense == Decimal("0")

    def test_defaults_are_noted(self):
        row = RawRow(line_number=5, cells=["soon", "Rent", "", "lots", ""])
        normalized = normalize_transaction_row(row, today=TODAY)
        fields = [note.field for note in normalized.notes]
        assert fields == ["date", "expense"]
        assert normalized.candidate.date == TODAY


class TestNormalizeAccountRow:
    """Tests for account-chart rows."""

    def test_account_row(self):
        row = RawRow(line_number=2, cells=["1001", "asset", "Cash at bank", "", "Main account"])
        candidate = normalize_account_row(row).candidate
        assert candidate.code == "1001"
        assert candidate.account_type == AccountType.ASSET
        assert candidate.financial_statement == "Balance Sheet"
        assert candidate.description == "Main account"

    def test_explicit_statement_is_kept(self):
        row = RawRow(line_number=2, cells=["4001", "Revenue", "Fees", "Custom Statement"])
        assert normalize_account_row(row).candidate.financial_statement == "Custom Statement"

    def test_unknown_type(self):
        row = RawRow(line_number=2, cells=["9", "Widget", "Thing"])
        normalized = normalize_account_row(row)
        assert normalized.candidate.account_type is None
        assert normalized.raw["type"] == "Widget"


class TestNormalizeRows:
    """Tests for the order-preserving parallel map."""

    def _rows(self, count):
        return [
            RawRow(line_number=i + 2, cells=["2024-01-15", f"Row {i}", "", str(i)])
            for i in range(count)
        ]

    def test_parallel_preserves_order(self):
        rows = self._rows(50)
        normalized = normalize_rows(rows, normalize_transaction_row, concurrency=4)
        assert [n.row_index for n in normalized] == [r.line_number for r in rows]
        assert [n.candidate.description for n in normalized] == [f"Row {i}" for i in range(50)]

    def test_sequential_matches_parallel(self):
        rows = self._rows(10)
        sequential = normalize_rows(rows, normalize_transaction_row, concurrency=1)
        parallel = normalize_rows(rows, normalize_transaction_row, concurrency=3)
        assert sequential == parallel

    def test_rejects_bad_concurrency(self):
        with pytest.raises(ValueError):
            normalize_rows(self._rows(2), normalize_transaction_row, concurrency=0)
