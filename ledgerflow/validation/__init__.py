"""Validation package."""

from ledgerflow.validation.validator import AccountValidator, RecordValidator

__all__ = ["AccountValidator", "RecordValidator"]
