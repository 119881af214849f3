"""
Core Data Models for Household Budget

These models define the schemas for the four entity collections
(family members, categories, accounts, transactions) and for the
user input that creates or edits them.

Two families of models live here:
1. Drafts - what the user typed, validated before anything is written
2. Entities - rows as the store returns them (id and owner attached)

Amounts are Decimal end to end; floats never touch a balance.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money. Also partitions categories."""
    EXPENSE = "expense"
    INCOME = "income"


class Frequency(str, Enum):
    """
    Recurrence frequency.

    Descriptive metadata only: nothing materializes future occurrences.
    """
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Collection(str, Enum):
    """The four entity collections held by the store (table names)."""
    FAMILY_MEMBERS = "family_members"
    CATEGORIES = "categories"
    ACCOUNTS = "accounts"
    TRANSACTIONS = "transactions"


# Alias so fields named "date" do not shadow their own annotation
TransactionDate = date


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def signed_delta(transaction_type: TransactionType, amount: Decimal) -> Decimal:
    """Balance effect of a transaction: income adds, expense subtracts."""
    if transaction_type == TransactionType.INCOME:
        return amount
    return -amount


# =============================================================================
# FAMILY MEMBERS
# =============================================================================

class FamilyMemberDraft(BaseModel):
    """A family member as entered by the user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name"
    )


class FamilyMember(FamilyMemberDraft):
    """
    A persisted family member.

    Deleting a member cascades to that member's accounts (store level).
    At least one member must exist per user; the data context enforces it.
    """

    id: int
    user_id: str
    created_at: datetime = Field(default_factory=_utcnow)


# =============================================================================
# CATEGORIES
# =============================================================================

class CategoryDraft(BaseModel):
    """A category as entered by the user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Category name; transactions reference it by this string"
    )
    type: TransactionType


class Category(CategoryDraft):
    """
    A persisted category.

    sort_order is dense and zero-based within each (user, type) partition.
    """

    id: int
    user_id: str
    sort_order: int = Field(default=0, ge=0)


# =============================================================================
# ACCOUNTS
# =============================================================================

class AccountDraft(BaseModel):
    """An account as entered by the user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Account name (bank, credit card, cash, ...)"
    )
    family_member_id: int = Field(
        ...,
        description="Family member that owns the account"
    )
    balance: Decimal = Field(
        default=Decimal("0"),
        decimal_places=2,
        description="Opening balance"
    )


class Account(AccountDraft):
    """
    A persisted account.

    CRITICAL: balance is a cached running total maintained by the ledger
    on every transaction mutation. It is never recomputed on read.
    """

    id: int
    user_id: str


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionDraft(BaseModel):
    """
    A transaction as entered by the user.

    The category is a free-text reference to a Category name, not its id.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    type: TransactionType = TransactionType.EXPENSE
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Positive amount; the type decides the sign"
    )
    category: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Category name"
    )
    date: TransactionDate = Field(
        default_factory=TransactionDate.today,
        description="Day the money moved"
    )
    family_member_id: int
    account_id: int
    note: Optional[str] = Field(
        default=None,
        max_length=500
    )
    is_recurring: bool = False
    frequency: Optional[Frequency] = None

    @field_validator('note')
    @classmethod
    def blank_note_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @model_validator(mode='after')
    def default_frequency(self) -> 'TransactionDraft':
        """Recurring transactions default to monthly; others carry none."""
        if self.is_recurring and self.frequency is None:
            self.frequency = Frequency.MONTHLY
        elif not self.is_recurring:
            self.frequency = None
        return self

    @property
    def delta(self) -> Decimal:
        return signed_delta(self.type, self.amount)


class Transaction(TransactionDraft):
    """A persisted transaction."""

    id: int
    user_id: str


class TransactionUpdate(BaseModel):
    """
    Partial edit of a transaction.

    Only fields explicitly set are applied; the merged result is
    revalidated as a full TransactionDraft.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    date: Optional[TransactionDate] = None
    family_member_id: Optional[int] = None
    account_id: Optional[int] = None
    note: Optional[str] = Field(default=None, max_length=500)
    is_recurring: Optional[bool] = None
    frequency: Optional[Frequency] = None

    def apply_to(self, original: Transaction) -> Transaction:
        """Return the original with these changes applied and revalidated."""
        merged = original.model_dump()
        merged.update(self.model_dump(exclude_unset=True))
        return Transaction.model_validate(merged)


# Collection -> entity model, used by the typed store client
ENTITY_MODELS: dict[Collection, type[BaseModel]] = {
    Collection.FAMILY_MEMBERS: FamilyMember,
    Collection.CATEGORIES: Category,
    Collection.ACCOUNTS: Account,
    Collection.TRANSACTIONS: Transaction,
}
