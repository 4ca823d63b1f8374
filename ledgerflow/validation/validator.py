"""
Record Validation

DESIGN DECISION: Every rule runs, every failure is reported.
A pasted row with an empty description AND a negative expense gets two
messages, not one, so the user can fix the line in a single pass.

ERRORS vs WARNINGS:
- Errors make a record invalid. Invalid records are never persisted.
- Warnings are shown to the user but the record is still imported.
  Lenient-parse substitutions (a date that became today, an amount that
  became zero) always surface as warnings.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for human review.
"""

from decimal import Decimal

from ledgerflow.models.records import (
    AccountType,
    Candidate,
    ChartAccount,
    NormalizedRow,
    ValidatedRecord,
)


MIN_TRANSACTION_FIELDS = 3
MAX_DESCRIPTION_LENGTH = 500
MAX_ACCOUNT_CODE_LENGTH = 10
MAX_ACCOUNT_NAME_LENGTH = 100


class RecordValidator:
    """
    Validates normalized transaction rows.

    Stateless; safe to share between threads.
    """

    def _check_fields(self, row: NormalizedRow, candidate: Candidate) -> list[str]:
        errors = []

        if row.field_count < MIN_TRANSACTION_FIELDS:
            errors.append(
                f"Too few fields: need at least {MIN_TRANSACTION_FIELDS} "
                f"(date, description, expense), got {row.field_count}"
            )

        if not candidate.description:
            errors.append("Description is required")
        elif len(candidate.description) > MAX_DESCRIPTION_LENGTH:
            errors.append(
                f"Description is longer than {MAX_DESCRIPTION_LENGTH} characters"
            )

        return errors

    def _check_amounts(self, row: NormalizedRow, candidate: Candidate) -> tuple[list[str], list[str]]:
        errors = []
        warnings = []

        if candidate.expense < 0:
            errors.append(
                f"Expense cannot be negative (got '{row.raw.get('expense', candidate.expense)}')"
            )
        if candidate.income < 0:
            errors.append(
                f"Income cannot be negative (got '{row.raw.get('income', candidate.income)}')"
            )

        if candidate.expense != Decimal("0") and candidate.income != Decimal("0"):
            warnings.append(
                "Both expense and income are set; the balance will move by their difference"
            )

        return errors, warnings

    def validate(self, row: NormalizedRow) -> ValidatedRecord:
        """
        Run every rule against one normalized row.

        Status is never checked here: the normalizer already mapped any
        unrecognised value to Pending.
        """
        candidate = row.candidate
        if not isinstance(candidate, Candidate):
            raise TypeError("RecordValidator only validates transaction rows")

        errors = self._check_fields(row, candidate)
        amount_errors, warnings = self._check_amounts(row, candidate)
        errors.extend(amount_errors)

        # Surface every lenient substitution
        warnings.extend(note.describe() for note in row.notes)

        return ValidatedRecord(
            row_index=row.row_index,
            candidate=candidate,
            valid=not errors,
            errors=errors,
            warnings=warnings,
            notes=row.notes,
        )

    def validate_many(self, rows: list[NormalizedRow]) -> list[ValidatedRecord]:
        """Validate rows, preserving input order."""
        return [self.validate(row) for row in rows]

    def get_user_friendly_summary(self, records: list[ValidatedRecord]) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show before the user confirms an import.
        """
        return _summarize(records)


class AccountValidator:
    """Validates normalized account-chart rows."""

    def validate(self, row: NormalizedRow) -> ValidatedRecord:
        candidate = row.candidate
        if not isinstance(candidate, ChartAccount):
            raise TypeError("AccountValidator only validates account rows")

        errors = []

        if not candidate.code:
            errors.append("Account code is required")
        elif len(candidate.code) > MAX_ACCOUNT_CODE_LENGTH:
            errors.append(
                f"Account code must be at most {MAX_ACCOUNT_CODE_LENGTH} characters"
            )

        if not candidate.name:
            errors.append("Account name is required")
        elif len(candidate.name) > MAX_ACCOUNT_NAME_LENGTH:
            errors.append(
                f"Account name must be at most {MAX_ACCOUNT_NAME_LENGTH} characters"
            )

        if candidate.account_type is None:
            allowed = ", ".join(t.value for t in AccountType)
            errors.append(
                f"Account type '{row.raw.get('type', '')}' must be one of {allowed}"
            )

        return ValidatedRecord(
            row_index=row.row_index,
            candidate=candidate,
            valid=not errors,
            errors=errors,
            notes=row.notes,
        )

    def validate_many(self, rows: list[NormalizedRow]) -> list[ValidatedRecord]:
        return [self.validate(row) for row in rows]

    def get_user_friendly_summary(self, records: list[ValidatedRecord]) -> str:
        return _summarize(records)


def _summarize(records: list[ValidatedRecord]) -> str:
    invalid = [r for r in records if not r.valid]
    warned = [r for r in records if r.valid and r.warnings]

    if not invalid and not warned:
        return f"✅ All {len(records)} rows passed! Ready to import."

    lines = []

    if invalid:
        lines.append(f"❌ {len(invalid)} of {len(records)} rows will be skipped:")
        for record in invalid:
            for error in record.errors:
                lines.append(f"  • Line {record.row_index}: {error}")

    if warned:
        lines.append("⚠️ Please double-check the following:")
        for record in warned:
            for warning in record.warnings:
                lines.append(f"  • Line {record.row_index}: {warning}")

    return "\n".join(lines)
