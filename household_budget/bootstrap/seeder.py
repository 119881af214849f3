"""
First-Use Seeding

A new user starts with two family members, default expense and income
categories, and a few zero-balance accounts per member.

States per user: UNSEEDED -> SEEDED, one way. "Seeded" means at least
one family member exists; the guard makes ensure_seeded idempotent.

Seeding is a plain sequence of inserts. If one fails the rows already
written stay, PartialFailureError reports them, and the next run skips
seeding because a family member exists.
"""

from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from household_budget.activity import ActivityLogger, create_correlation_id
from household_budget.ledger import WriteSequence
from household_budget.models.activity import (
    ActivityEvent,
    ActivityEventBuilder,
    ActivityEventType,
)
from household_budget.models.entities import Collection, TransactionType
from household_budget.services.storage import EntityStoreClient


DEFAULT_FAMILY_MEMBERS = ("Partner 1", "Partner 2")

DEFAULT_EXPENSE_CATEGORIES = (
    "Groceries",
    "Housing",
    "Transport",
    "Health",
    "Education",
    "Leisure",
)

DEFAULT_INCOME_CATEGORIES = ("Salary", "Other Income")

# Index i applies to the i-th default family member
DEFAULT_ACCOUNTS = (
    ("Bank Account", "Credit Card", "Cash"),
    ("Bank Account", "Credit Card"),
)


class SeedState(str, Enum):
    UNSEEDED = "unseeded"
    SEEDED = "seeded"


class SeedResult(BaseModel):
    """What one ensure_seeded call did."""

    seeded: bool = Field(..., description="True if this call created the defaults")
    family_members: int = 0
    categories: int = 0
    accounts: int = 0


class BootstrapService:
    """Creates the default data set for users who have none."""

    def __init__(
        self,
        store: EntityStoreClient,
        activity_logger: Optional[ActivityLogger] = None,
    ):
        self._store = store
        self._activity = activity_logger or ActivityLogger()

    async def state(self, user_id: str) -> SeedState:
        has_member = await self._store.exists(
            Collection.FAMILY_MEMBERS, {"user_id": user_id}
        )
        return SeedState.SEEDED if has_member else SeedState.UNSEEDED

    async def ensure_seeded(
        self,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> SeedResult:
        """Seed the defaults unless the user already has a family member."""
        correlation_id = correlation_id or create_correlation_id()

        if await self.state(user_id) == SeedState.SEEDED:
            self._activity.log(ActivityEventBuilder.seed_skipped(user_id, correlation_id))
            return SeedResult(seeded=False)

        self._activity.log(ActivityEvent(
            event_type=ActivityEventType.SEED_STARTED,
            user_id=user_id,
            correlation_id=correlation_id,
            description="No family members found; creating defaults",
        ))
        sequence = WriteSequence("seed_defaults", user_id, self._activity, correlation_id)
        result = SeedResult(seeded=True)

        members = []
        for name in DEFAULT_FAMILY_MEMBERS:
            member = await sequence.step(
                f"family member '{name}'",
                self._store.insert(
                    Collection.FAMILY_MEMBERS, {"user_id": user_id, "name": name}
                ),
            )
            members.append(member)
            result.family_members += 1

        for transaction_type, names in (
            (TransactionType.EXPENSE, DEFAULT_EXPENSE_CATEGORIES),
            (TransactionType.INCOME, DEFAULT_INCOME_CATEGORIES),
        ):
            for position, name in enumerate(names):
                await sequence.step(
                    f"{transaction_type.value} category '{name}'",
                    self._store.insert(Collection.CATEGORIES, {
                        "user_id": user_id,
                        "name": name,
                        "type": transaction_type,
                        "sort_order": position,
                    }),
                )
                result.categories += 1

        for member, account_names in zip(members, DEFAULT_ACCOUNTS):
            for name in account_names:
                await sequence.step(
                    f"account '{name}' for {member.name}",
                    self._store.insert(Collection.ACCOUNTS, {
                        "user_id": user_id,
                        "family_member_id": member.id,
                        "name": name,
                        "balance": 0,
                    }),
                )
                result.accounts += 1

        self._activity.log(ActivityEventBuilder.seed_completed(
            user_id,
            {
                "family_members": result.family_members,
                "categories": result.categories,
                "accounts": result.accounts,
            },
            correlation_id,
        ))
        return result
