"""
Aggregation & Filtering Engine

DESIGN DECISION: Views are computed in memory, DETERMINISTICALLY.
The data context holds the user's full transaction snapshot; every
dashboard and ledger view is a pure function of that snapshot, a
filter, a sort and "today".

Nothing here touches the store. Nothing here estimates: a group with
no transactions does not appear, a filter that matches nothing
returns an empty list.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from household_budget.models.entities import (
    Account,
    FamilyMember,
    Transaction,
    TransactionType,
)
from household_budget.models.views import (
    CategoryTotal,
    DashboardResult,
    LedgerQuery,
    LedgerResult,
    PeriodFilter,
    SortConfig,
    SortDirection,
    SortKey,
    Summary,
    TransactionFilter,
    TransactionRow,
    TypeSection,
)


class QueryExecutionError(Exception):
    """A view request could not be evaluated."""
    pass


# =============================================================================
# FILTERING
# =============================================================================

def filter_by_period(
    transactions: Iterable[Transaction],
    period: PeriodFilter,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    today: Optional[date] = None,
) -> list[Transaction]:
    """
    Keep transactions inside the period window.

    monthly/yearly are relative to today (wall clock when not given).
    custom is inclusive on both ends and needs both bounds; with either
    bound missing no date filter applies.
    """
    today = today or date.today()
    transactions = list(transactions)

    if period == PeriodFilter.MONTHLY:
        return [
            t for t in transactions
            if t.date.year == today.year and t.date.month == today.month
        ]
    if period == PeriodFilter.YEARLY:
        return [t for t in transactions if t.date.year == today.year]
    if period == PeriodFilter.CUSTOM:
        if start_date is None or end_date is None:
            return transactions
        return [t for t in transactions if start_date <= t.date <= end_date]
    return transactions


def apply_filter(
    transactions: Iterable[Transaction],
    view_filter: TransactionFilter,
    today: Optional[date] = None,
) -> list[Transaction]:
    """Period, family member and category filters, ANDed."""
    result = filter_by_period(
        transactions,
        view_filter.period,
        view_filter.start_date,
        view_filter.end_date,
        today=today,
    )
    if view_filter.family_member_id is not None:
        result = [t for t in result if t.family_member_id == view_filter.family_member_id]
    if view_filter.category is not None:
        result = [t for t in result if t.category == view_filter.category]
    return result


def accounts_for_member(
    accounts: Iterable[Account],
    family_member_id: Optional[int],
) -> list[Account]:
    """Accounts offered in the transaction form for the chosen member."""
    if family_member_id is None:
        return []
    return [a for a in accounts if a.family_member_id == family_member_id]


# =============================================================================
# AGGREGATION
# =============================================================================

def summarize(transactions: Iterable[Transaction]) -> Summary:
    income = Decimal("0")
    expense = Decimal("0")
    count = 0
    for t in transactions:
        count += 1
        if t.type == TransactionType.INCOME:
            income += t.amount
        else:
            expense += t.amount
    return Summary(
        income=income,
        expense=expense,
        balance=income - expense,
        transaction_count=count,
    )


def expense_breakdown(transactions: Iterable[Transaction]) -> list[CategoryTotal]:
    """
    Expense totals grouped by category name, in first-seen order.

    Income is ignored; categories without expense transactions are absent.
    """
    totals: dict[str, Decimal] = {}
    counts: dict[str, int] = {}
    for t in transactions:
        if t.type != TransactionType.EXPENSE:
            continue
        totals[t.category] = totals.get(t.category, Decimal("0")) + t.amount
        counts[t.category] = counts.get(t.category, 0) + 1

    return [
        CategoryTotal(name=name, value=value, count=counts[name])
        for name, value in totals.items()
    ]


def split_by_type(rows: Sequence[TransactionRow]) -> tuple[TypeSection, TypeSection]:
    """Ledger sections: (expenses, incomes), each keeping the given order."""
    expenses = [r for r in rows if r.type == TransactionType.EXPENSE]
    incomes = [r for r in rows if r.type == TransactionType.INCOME]
    return (
        TypeSection(
            type=TransactionType.EXPENSE,
            rows=expenses,
            total=sum((r.amount for r in expenses), Decimal("0")),
        ),
        TypeSection(
            type=TransactionType.INCOME,
            rows=incomes,
            total=sum((r.amount for r in incomes), Decimal("0")),
        ),
    )


# =============================================================================
# SORTING
# =============================================================================

def _sort_value(transaction: Transaction, key: SortKey):
    if key == SortKey.DATE:
        return transaction.date
    if key == SortKey.AMOUNT:
        return transaction.amount
    if key == SortKey.CATEGORY:
        return transaction.category
    raise QueryExecutionError(f"Unsupported sort key: {key}")


def sort_transactions(transactions: Iterable, sort: SortConfig) -> list:
    """
    Stable sort by date, category or amount.

    Dates compare chronologically and amounts numerically (9 < 80).
    Equal keys keep their input order in both directions.
    """
    return sorted(
        transactions,
        key=lambda t: _sort_value(t, sort.key),
        reverse=sort.direction == SortDirection.DESC,
    )


# =============================================================================
# VIEWS
# =============================================================================

def annotate_transactions(
    transactions: Iterable[Transaction],
    members: Iterable[FamilyMember],
    accounts: Iterable[Account],
) -> list[TransactionRow]:
    """Attach member and account names; unknown ids leave the name empty."""
    member_names = {m.id: m.name for m in members}
    account_names = {a.id: a.name for a in accounts}
    return [
        TransactionRow(
            **t.model_dump(),
            family_member_name=member_names.get(t.family_member_id),
            account_name=account_names.get(t.account_id),
        )
        for t in transactions
    ]


def run_ledger_query(
    transactions: Iterable[Transaction],
    query: LedgerQuery,
    members: Iterable[FamilyMember] = (),
    accounts: Iterable[Account] = (),
    today: Optional[date] = None,
) -> LedgerResult:
    """Filter, sort, annotate and split into expense/income sections."""
    filtered = apply_filter(transactions, query.filter, today=today)
    ordered = sort_transactions(filtered, query.sort)
    rows = annotate_transactions(ordered, members, accounts)
    expenses, incomes = split_by_type(rows)
    return LedgerResult(query=query, rows=rows, expenses=expenses, incomes=incomes)


def run_dashboard_query(
    transactions: Iterable[Transaction],
    view_filter: TransactionFilter,
    today: Optional[date] = None,
) -> DashboardResult:
    filtered = apply_filter(transactions, view_filter, today=today)
    return DashboardResult(
        filter=view_filter,
        summary=summarize(filtered),
        breakdown=expense_breakdown(filtered),
        transactions=filtered,
    )
