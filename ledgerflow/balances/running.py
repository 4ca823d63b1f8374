"""
Running Balance Calculator

DESIGN DECISION: Balances are derived, never stored.
The running balance of a ledger is a pure left fold over its
transactions in ledger order:

    balance[i] = start + sum(income[k] - expense[k] for k <= i)

Storing it would mean rewriting every later row whenever one row is
edited, reordered or deleted. Recomputing is cheap and always agrees
with the persisted order.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from ledgerflow.models.records import BalanceRow, StoredTransaction


def ledger_order(transactions: list[StoredTransaction]) -> list[StoredTransaction]:
    """
    Chronological order used for balances: by date, then sequence number.

    Records without a sequence number sort after numbered ones of the
    same date.
    """
    return sorted(
        transactions,
        key=lambda t: (
            t.date,
            t.sequence_number is None,
            t.sequence_number or 0,
        ),
    )


def running_balances(
    transactions: list[StoredTransaction],
    starting_balance: Decimal = Decimal("0"),
) -> list[BalanceRow]:
    """Pair every transaction with the balance after it, in the given order."""
    total = starting_balance
    rows = []
    for transaction in transactions:
        total += transaction.income - transaction.expense
        rows.append(BalanceRow(transaction=transaction, balance=total))
    return rows


def closing_balance(
    transactions: list[StoredTransaction],
    starting_balance: Decimal = Decimal("0"),
    as_of: Optional[date] = None,
) -> Decimal:
    """Balance after the last transaction (optionally only up to `as_of`)."""
    total = starting_balance
    for transaction in transactions:
        if as_of is not None and transaction.date > as_of:
            continue
        total += transaction.income - transaction.expense
    return total
