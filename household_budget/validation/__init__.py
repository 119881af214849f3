"""Input validation package."""

from household_budget.validation.validator import EntryValidator, ensure_valid

__all__ = ["EntryValidator", "ensure_valid"]
