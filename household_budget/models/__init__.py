"""
Data Models Package

This package contains all Pydantic models used by Household Budget.
All data flowing between the store, the services and the views
must conform to these schemas.
"""

from household_budget.models.entities import (
    ENTITY_MODELS,
    Account,
    AccountDraft,
    Category,
    CategoryDraft,
    Collection,
    FamilyMember,
    FamilyMemberDraft,
    Frequency,
    Transaction,
    TransactionDraft,
    TransactionType,
    TransactionUpdate,
    signed_delta,
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
from household_budget.models.validation import ValidationIssue, ValidationResult
from household_budget.models.activity import (
    ActivityEvent,
    ActivityEventBuilder,
    ActivityEventType,
    ActivitySeverity,
    ChangeEvent,
    ChangeType,
)

__all__ = [
    # Entities
    "ENTITY_MODELS",
    "Account",
    "AccountDraft",
    "Category",
    "CategoryDraft",
    "Collection",
    "FamilyMember",
    "FamilyMemberDraft",
    "Frequency",
    "Transaction",
    "TransactionDraft",
    "TransactionType",
    "TransactionUpdate",
    "signed_delta",
    # Views
    "CategoryTotal",
    "DashboardResult",
    "LedgerQuery",
    "LedgerResult",
    "PeriodFilter",
    "SortConfig",
    "SortDirection",
    "SortKey",
    "Summary",
    "TransactionFilter",
    "TransactionRow",
    "TypeSection",
    # Validation
    "ValidationIssue",
    "ValidationResult",
    # Activity
    "ActivityEvent",
    "ActivityEventBuilder",
    "ActivityEventType",
    "ActivitySeverity",
    "ChangeEvent",
    "ChangeType",
]
