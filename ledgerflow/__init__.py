"""
ledgerflow - Transaction Import & Reconciliation Engine

Turns pasted or uploaded tabular financial data into validated,
ordered, reconciled transaction records.

DESIGN PRINCIPLES:
1. Lenient parsing, but every substitution is surfaced
2. Invalid rows are reported, never silently dropped
3. Re-running an import is always safe (idempotent reconciliation)
4. Ordering keys stay unique across the whole collection
5. Balances are derived on read, never stored
6. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "ledgerflow Team"
