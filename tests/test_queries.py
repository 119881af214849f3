"""Tests for the aggregation and filtering engine."""

import pytest
from datetime import date
from decimal import Decimal

from household_budget.models.entities import Account, FamilyMember, Transaction
from household_budget.models.views import (
    LedgerQuery,
    PeriodFilter,
    SortConfig,
    SortDirection,
    SortKey,
    TransactionFilter,
)
from household_budget.queries import (
    accounts_for_member,
    annotate_transactions,
    apply_filter,
    expense_breakdown,
    filter_by_period,
    run_dashboard_query,
    run_ledger_query,
    sort_transactions,
    summarize,
)


TODAY = date(2024, 3, 15)


def txn(id, amount, category="Groceries", type="expense", day=date(2024, 3, 10), member=1, account=1):
    return Transaction(
        id=id,
        user_id="user-1",
        type=type,
        amount=Decimal(str(amount)),
        category=category,
        date=day,
        family_member_id=member,
        account_id=account,
    )


class TestPeriodFilter:
    """Tests for date windows."""

    def test_monthly_uses_current_month(self):
        """Test that March 1 is in and February 28 is out for mid-March."""
        inside = txn(1, 10, day=date(2024, 3, 1))
        outside = txn(2, 10, day=date(2024, 2, 28))
        result = filter_by_period([inside, outside], PeriodFilter.MONTHLY, today=TODAY)
        assert [t.id for t in result] == [1]

    def test_monthly_excludes_same_month_of_other_year(self):
        """Test that the year is part of the monthly window."""
        result = filter_by_period([txn(1, 10, day=date(2023, 3, 15))], PeriodFilter.MONTHLY, today=TODAY)
        assert result == []

    def test_yearly_uses_current_year(self):
        """Test the calendar-year window."""
        transactions = [
            txn(1, 10, day=date(2024, 1, 1)),
            txn(2, 10, day=date(2024, 12, 31)),
            txn(3, 10, day=date(2023, 12, 31)),
        ]
        result = filter_by_period(transactions, PeriodFilter.YEARLY, today=TODAY)
        assert [t.id for t in result] == [1, 2]

    def test_custom_is_inclusive(self):
        """Test that both custom bounds are included."""
        transactions = [
            txn(1, 10, day=date(2024, 1, 10)),
            txn(2, 10, day=date(2024, 1, 20)),
            txn(3, 10, day=date(2024, 1, 21)),
            txn(4, 10, day=date(2024, 1, 9)),
        ]
        result = filter_by_period(
            transactions, PeriodFilter.CUSTOM, date(2024, 1, 10), date(2024, 1, 20), today=TODAY,
        )
        assert [t.id for t in result] == [1, 2]

    def test_custom_with_missing_bound_applies_no_filter(self):
        """Test that an incomplete custom range shows everything."""
        transactions = [txn(1, 10, day=date(2020, 1, 1)), txn(2, 10, day=date(2024, 3, 1))]
        result = filter_by_period(transactions, PeriodFilter.CUSTOM, date(2024, 1, 1), None, today=TODAY)
        assert len(result) == 2

    def test_all_applies_no_filter(self):
        """Test the unrestricted period."""
        transactions = [txn(1, 10, day=date(1999, 1, 1)), txn(2, 10, day=date(2030, 1, 1))]
        assert len(filter_by_period(transactions, PeriodFilter.ALL, today=TODAY)) == 2


class TestDimensionFilters:
    """Tests for member and category filters."""

    def test_filters_compose_with_and(self):
        """Test that period, member and category all apply."""
        transactions = [
            txn(1, 10, category="Groceries", member=1),
            txn(2, 10, category="Groceries", member=2),
            txn(3, 10, category="Transport", member=1),
            txn(4, 10, category="Groceries", member=1, day=date(2024, 2, 1)),
        ]
        view_filter = TransactionFilter(period="monthly", family_member_id=1, category="Groceries")
        assert [t.id for t in apply_filter(transactions, view_filter, today=TODAY)] == [1]

    def test_all_selection_keeps_everything(self):
        """Test that "all" selections restrict nothing."""
        transactions = [txn(1, 10, member=1), txn(2, 10, member=2, category="Health")]
        view_filter = TransactionFilter(period="all", family_member_id="all", category="all")
        assert len(apply_filter(transactions, view_filter, today=TODAY)) == 2

    def test_accounts_for_member(self):
        """Test that the account picker only offers the member's accounts."""
        accounts = [
            Account(id=1, user_id="u", name="Bank", family_member_id=1),
            Account(id=2, user_id="u", name="Cash", family_member_id=2),
        ]
        assert [a.id for a in accounts_for_member(accounts, 2)] == [2]
        assert accounts_for_member(accounts, None) == []


class TestAggregation:
    """Tests for summary and breakdown."""

    def test_summary(self):
        """Test income, expense and balance totals."""
        transactions = [
            txn(1, "1000", type="income", category="Salary"),
            txn(2, "250.50"),
            txn(3, "49.50", category="Transport"),
        ]
        summary = summarize(transactions)
        assert summary.income == Decimal("1000")
        assert summary.expense == Decimal("300.00")
        assert summary.balance == Decimal("700.00")
        assert summary.transaction_count == 3

    def test_summary_of_nothing(self):
        """Test that an empty set sums to zero."""
        summary = summarize([])
        assert summary.balance == Decimal("0")
        assert summary.transaction_count == 0

    def test_breakdown_groups_expenses_by_category(self):
        """Test {Groceries:40, Groceries:10, Transport:5} -> {Groceries:50, Transport:5}."""
        transactions = [
            txn(1, 40, category="Groceries"),
            txn(2, 10, category="Groceries"),
            txn(3, 5, category="Transport"),
            txn(4, 900, category="Salary", type="income"),
        ]
        breakdown = expense_breakdown(transactions)
        assert [(c.name, c.value) for c in breakdown] == [
            ("Groceries", Decimal("50")),
            ("Transport", Decimal("5")),
        ]
        assert breakdown[0].count == 2

    def test_breakdown_has_no_empty_groups(self):
        """Test that income-only categories never appear."""
        assert expense_breakdown([txn(1, 900, category="Salary", type="income")]) == []


class TestSorting:
    """Tests for ledger ordering."""

    def test_amount_sorts_numerically(self):
        """Test that 9 sorts before 80."""
        transactions = [txn(1, 80), txn(2, 9), txn(3, "100.5")]
        ascending = sort_transactions(transactions, SortConfig(key="amount", direction="asc"))
        assert [t.id for t in ascending] == [2, 1, 3]
        descending = sort_transactions(transactions, SortConfig(key="amount", direction="desc"))
        assert [t.id for t in descending] == [3, 1, 2]

    def test_toggle_amount_asc_then_desc(self):
        """Test the ledger toggle sequence on amount."""
        transactions = [txn(1, 80), txn(2, 9)]
        sort = SortConfig().toggle(SortKey.AMOUNT)
        assert [t.id for t in sort_transactions(transactions, sort)] == [2, 1]
        sort = sort.toggle(SortKey.AMOUNT)
        assert [t.id for t in sort_transactions(transactions, sort)] == [1, 2]

    def test_date_sorts_chronologically(self):
        """Test that dates compare as dates."""
        transactions = [
            txn(1, 1, day=date(2024, 10, 2)),
            txn(2, 1, day=date(2024, 9, 30)),
            txn(3, 1, day=date(2023, 12, 31)),
        ]
        result = sort_transactions(transactions, SortConfig(key=SortKey.DATE, direction=SortDirection.ASC))
        assert [t.id for t in result] == [3, 2, 1]

    def test_sort_is_stable(self):
        """Test that equal keys keep input order in both directions."""
        transactions = [txn(1, 10), txn(2, 10), txn(3, 5)]
        asc = sort_transactions(transactions, SortConfig(key="amount", direction="asc"))
        desc = sort_transactions(transactions, SortConfig(key="amount", direction="desc"))
        assert [t.id for t in asc] == [3, 1, 2]
        assert [t.id for t in desc] == [1, 2, 3]

    def test_category_sorts_by_name(self):
        """Test string ordering on category."""
        transactions = [txn(1, 1, category="Transport"), txn(2, 1, category="Groceries")]
        result = sort_transactions(transactions, SortConfig(key="category", direction="asc"))
        assert [t.category for t in result] == ["Groceries", "Transport"]


class TestViews:
    """Tests for the dashboard and ledger views."""

    def test_annotate_attaches_names(self):
        """Test that rows carry member and account names."""
        members = [FamilyMember(id=1, user_id="u", name="Dana")]
        accounts = [Account(id=1, user_id="u", name="Bank", family_member_id=1)]
        rows = annotate_transactions([txn(1, 10), txn(2, 10, account=99)], members, accounts)
        assert rows[0].family_member_name == "Dana"
        assert rows[0].account_name == "Bank"
        assert rows[1].account_name is None

    def test_ledger_splits_by_type(self):
        """Test expense and income sections with counts and totals."""
        transactions = [
            txn(1, 20),
            txn(2, 500, type="income", category="Salary"),
            txn(3, 5, category="Transport"),
        ]
        query = LedgerQuery(
            filter=TransactionFilter(period="all"),
            sort=SortConfig(key="amount", direction="asc"),
        )
        result = run_ledger_query(transactions, query, today=TODAY)
        assert result.result_count == 3
        assert [r.id for r in result.expenses.rows] == [3, 1]
        assert result.expenses.total == Decimal("25")
        assert result.incomes.count == 1
        assert result.incomes.total == Decimal("500")

    def test_dashboard(self):
        """Test that the dashboard filters before aggregating."""
        transactions = [
            txn(1, 40, day=date(2024, 3, 2)),
            txn(2, 10, day=date(2024, 2, 2)),
            txn(3, 100, type="income", category="Salary", day=date(2024, 3, 1)),
        ]
        result = run_dashboard_query(transactions, TransactionFilter(period="monthly"), today=TODAY)
        assert result.summary.expense == Decimal("40")
        assert result.summary.balance == Decimal("60")
        assert [c.name for c in result.breakdown] == ["Groceries"]
        assert {t.id for t in result.transactions} == {1, 3}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
