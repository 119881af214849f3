"""
View Models for the dashboard and ledger screens

A view is a filter + sort over the in-memory transaction snapshot.
The engine that evaluates these lives in household_budget.queries;
these models only describe the request and the result.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from household_budget.models.entities import Transaction, TransactionType


# =============================================================================
# ENUMS
# =============================================================================

class PeriodFilter(str, Enum):
    """Date window applied to a view."""
    MONTHLY = "monthly"   # Current calendar month of "today"
    YEARLY = "yearly"     # Current calendar year of "today"
    CUSTOM = "custom"     # Inclusive [start_date, end_date]
    ALL = "all"           # No date restriction (ledger screen)


class SortKey(str, Enum):
    DATE = "date"
    CATEGORY = "category"
    AMOUNT = "amount"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


# =============================================================================
# REQUESTS
# =============================================================================

# Reserved: no category may carry this name
ALL_SELECTION = "all"


def _all_means_none(v: Any) -> Any:
    """The UI sends "all" (or an empty value) for "no restriction"."""
    if v is None or v == "" or v == ALL_SELECTION:
        return None
    return v


class TransactionFilter(BaseModel):
    """
    Which transactions a view shows.

    Dimension filters are exact matches and compose with AND.
    None means "all".
    """

    period: PeriodFilter = PeriodFilter.MONTHLY
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    family_member_id: Optional[int] = None
    category: Optional[str] = None

    @field_validator('family_member_id', 'category', 'start_date', 'end_date', mode='before')
    @classmethod
    def normalize_all(cls, v: Any) -> Any:
        return _all_means_none(v)


class SortConfig(BaseModel):
    """
    Current sort of the ledger.

    Re-selecting the active key flips asc -> desc -> asc;
    selecting another key starts ascending.
    """

    key: SortKey = SortKey.DATE
    direction: SortDirection = SortDirection.DESC

    def toggle(self, key: Union[SortKey, str]) -> "SortConfig":
        key = SortKey(key)
        if key == self.key and self.direction == SortDirection.ASC:
            return SortConfig(key=key, direction=SortDirection.DESC)
        return SortConfig(key=key, direction=SortDirection.ASC)


class LedgerQuery(BaseModel):
    """A ledger request: which rows, in what order."""

    filter: TransactionFilter = Field(
        default_factory=lambda: TransactionFilter(period=PeriodFilter.MONTHLY)
    )
    sort: SortConfig = Field(default_factory=SortConfig)


# =============================================================================
# RESULTS
# =============================================================================

class Summary(BaseModel):
    """Income and expense totals over a filtered set."""

    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    transaction_count: int = Field(default=0, ge=0)

    @model_validator(mode='after')
    def check_balance(self) -> 'Summary':
        if self.balance != self.income - self.expense:
            raise ValueError("Summary balance must equal income minus expense")
        return self


class CategoryTotal(BaseModel):
    """One slice of the expense breakdown."""

    name: str
    value: Decimal
    count: int = Field(ge=1)


class TransactionRow(Transaction):
    """A transaction annotated with display names for its member and account."""

    family_member_name: Optional[str] = None
    account_name: Optional[str] = None


class TypeSection(BaseModel):
    """Ledger section for one transaction type."""

    type: TransactionType
    rows: list[TransactionRow] = Field(default_factory=list)
    total: Decimal = Decimal("0")

    @property
    def count(self) -> int:
        return len(self.rows)


class LedgerResult(BaseModel):
    """What the ledger screen renders."""

    query: LedgerQuery
    rows: list[TransactionRow] = Field(default_factory=list)
    expenses: TypeSection = Field(
        default_factory=lambda: TypeSection(type=TransactionType.EXPENSE)
    )
    incomes: TypeSection = Field(
        default_factory=lambda: TypeSection(type=TransactionType.INCOME)
    )

    @property
    def result_count(self) -> int:
        return len(self.rows)


class DashboardResult(BaseModel):
    """What the dashboard renders."""

    filter: TransactionFilter
    summary: Summary
    breakdown: list[CategoryTotal] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
