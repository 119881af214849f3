"""Transaction writes and the account balances they maintain."""

from household_budget.ledger.balance import BalanceMaintenanceService, WriteSequence

__all__ = ["BalanceMaintenanceService", "WriteSequence"]
