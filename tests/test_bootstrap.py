"""Tests for first-use seeding."""

from decimal import Decimal

import pytest

from household_budget.bootstrap import (
    DEFAULT_EXPENSE_CATEGORIES,
    DEFAULT_INCOME_CATEGORIES,
    BootstrapService,
    SeedState,
)
from household_budget.errors import PartialFailureError
from household_budget.models.activity import ActivityEventType
from household_budget.models.entities import Collection, TransactionType


@pytest.fixture
def bootstrap(store, activity):
    return BootstrapService(store, activity)


def counts(backend):
    return {c: len(backend.rows(c)) for c in Collection}


class TestBootstrap:
    """Tests for BootstrapService."""

    @pytest.mark.asyncio
    async def test_seeds_defaults(self, bootstrap, store, backend, user_id):
        """Test the default data set for a new user."""
        result = await bootstrap.ensure_seeded(user_id)

        assert result.seeded is True
        assert (result.family_members, result.categories, result.accounts) == (2, 8, 5)
        assert counts(backend)[Collection.TRANSACTIONS] == 0

        members = await store.select(Collection.FAMILY_MEMBERS, {"user_id": user_id}, order_by="id")
        first_accounts = await store.select(Collection.ACCOUNTS, {"family_member_id": members[0].id})
        second_accounts = await store.select(Collection.ACCOUNTS, {"family_member_id": members[1].id})
        assert len(first_accounts) > len(second_accounts) > 0
        assert all(a.balance == Decimal("0") for a in first_accounts + second_accounts)

    @pytest.mark.asyncio
    async def test_category_sort_orders_are_dense(self, bootstrap, store, user_id):
        """Test 0..5 for expense and 0..1 for income, in default order."""
        await bootstrap.ensure_seeded(user_id)
        for transaction_type, names in (
            (TransactionType.EXPENSE, DEFAULT_EXPENSE_CATEGORIES),
            (TransactionType.INCOME, DEFAULT_INCOME_CATEGORIES),
        ):
            categories = await store.select(
                Collection.CATEGORIES,
                {"user_id": user_id, "type": transaction_type},
                order_by="sort_order",
            )
            assert [c.name for c in categories] == list(names)
            assert [c.sort_order for c in categories] == list(range(len(names)))

    @pytest.mark.asyncio
    async def test_idempotent(self, bootstrap, backend, activity, user_id):
        """Test that bootstrapping twice equals bootstrapping once."""
        await bootstrap.ensure_seeded(user_id)
        after_first = counts(backend)

        second = await bootstrap.ensure_seeded(user_id)

        assert second.seeded is False
        assert counts(backend) == after_first
        assert activity.events_of_type(ActivityEventType.SEED_SKIPPED)

    @pytest.mark.asyncio
    async def test_existing_member_prevents_seeding(self, bootstrap, backend, user_id, make_member):
        """Test that any family member marks the user as seeded."""
        await make_member("Only One")
        assert await bootstrap.state(user_id) == SeedState.SEEDED

        result = await bootstrap.ensure_seeded(user_id)
        assert result.seeded is False
        assert counts(backend)[Collection.CATEGORIES] == 0

    @pytest.mark.asyncio
    async def test_users_are_seeded_independently(self, bootstrap, user_id):
        """Test that one user's data does not mark another as seeded."""
        await bootstrap.ensure_seeded(user_id)
        assert await bootstrap.state("user-2") == SeedState.UNSEEDED
        assert (await bootstrap.ensure_seeded("user-2")).seeded is True

    @pytest.mark.asyncio
    async def test_partial_failure_is_not_resumed(self, bootstrap, backend, user_id):
        """Test that a mid-sequence failure keeps written rows and blocks reseeding."""
        backend.inject_failure("insert", Collection.CATEGORIES, skip=2)

        with pytest.raises(PartialFailureError) as exc_info:
            await bootstrap.ensure_seeded(user_id)

        assert len(exc_info.value.completed_steps) == 4
        assert counts(backend)[Collection.FAMILY_MEMBERS] == 2
        assert counts(backend)[Collection.CATEGORIES] == 2

        retry = await bootstrap.ensure_seeded(user_id)
        assert retry.seeded is False
        assert counts(backend)[Collection.ACCOUNTS] == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
