"""Dashboard and ledger view evaluation."""

from household_budget.queries.engine import (
    QueryExecutionError,
    accounts_for_member,
    annotate_transactions,
    apply_filter,
    expense_breakdown,
    filter_by_period,
    run_dashboard_query,
    run_ledger_query,
    sort_transactions,
    split_by_type,
    summarize,
)

__all__ = [
    "QueryExecutionError",
    "accounts_for_member",
    "annotate_transactions",
    "apply_filter",
    "expense_breakdown",
    "filter_by_period",
    "run_dashboard_query",
    "run_ledger_query",
    "sort_transactions",
    "split_by_type",
    "summarize",
]
