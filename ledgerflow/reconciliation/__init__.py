"""Reconciliation package."""

from ledgerflow.reconciliation.resolver import (
    CHART_ACCOUNT_PROFILE,
    TRANSACTION_PROFILE,
    EntityProfile,
    ReconciliationReadError,
    ReconciliationResolver,
)

__all__ = [
    "CHART_ACCOUNT_PROFILE",
    "TRANSACTION_PROFILE",
    "EntityProfile",
    "ReconciliationReadError",
    "ReconciliationResolver",
]
