"""First-use seeding of default data."""

from household_budget.bootstrap.seeder import (
    DEFAULT_ACCOUNTS,
    DEFAULT_EXPENSE_CATEGORIES,
    DEFAULT_FAMILY_MEMBERS,
    DEFAULT_INCOME_CATEGORIES,
    BootstrapService,
    SeedResult,
    SeedState,
)

__all__ = [
    "DEFAULT_ACCOUNTS",
    "DEFAULT_EXPENSE_CATEGORIES",
    "DEFAULT_FAMILY_MEMBERS",
    "DEFAULT_INCOME_CATEGORIES",
    "BootstrapService",
    "SeedResult",
    "SeedState",
]
