"""Running balance package."""

from ledgerflow.balances.running import closing_balance, ledger_order, running_balances

__all__ = ["closing_balance", "ledger_order", "running_balances"]
