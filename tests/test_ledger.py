"""Tests for balance maintenance on transaction writes."""

import random
from datetime import date
from decimal import Decimal

import pytest

from household_budget.errors import PartialFailureError, ValidationFailedError
from household_budget.ledger import BalanceMaintenanceService
from household_budget.models.activity import ActivityEventType
from household_budget.models.entities import (
    Collection,
    TransactionDraft,
    TransactionType,
    TransactionUpdate,
)
from household_budget.services.storage import NotFoundError, StorageError
from household_budget.validation import EntryValidator


@pytest.fixture
def ledger(store, activity, app_settings):
    return BalanceMaintenanceService(store, EntryValidator(store, app_settings), activity)


def expense(account, amount, category="Groceries", **fields):
    return TransactionDraft(
        type=TransactionType.EXPENSE,
        amount=Decimal(str(amount)),
        category=category,
        date=fields.pop("date", date(2024, 3, 10)),
        family_member_id=account.family_member_id,
        account_id=account.id,
        **fields,
    )


def income(account, amount, category="Salary"):
    return TransactionDraft(
        type=TransactionType.INCOME,
        amount=Decimal(str(amount)),
        category=category,
        family_member_id=account.family_member_id,
        account_id=account.id,
    )


async def balance_of(store, account):
    return (await store.get(Collection.ACCOUNTS, account.id)).balance


class TestBalanceScenarios:
    """End-to-end balance bookkeeping."""

    @pytest.mark.asyncio
    async def test_create_edit_delete_round_trip(self, ledger, store, user_id, make_member, make_account):
        """Test 100.00 -> expense 30 -> 70.00 -> edit to 50 -> 50.00 -> delete -> 100.00."""
        member = await make_member()
        account = await make_account(member.id, balance="100.00")

        created = await ledger.add_transaction(user_id, expense(account, 30))
        assert await balance_of(store, account) == Decimal("70.00")

        await ledger.update_transaction(user_id, created.id, TransactionUpdate(amount=Decimal("50")))
        assert await balance_of(store, account) == Decimal("50.00")

        await ledger.delete_transaction(user_id, created.id)
        assert await balance_of(store, account) == Decimal("100.00")
        assert await store.get(Collection.TRANSACTIONS, created.id) is None

    @pytest.mark.asyncio
    async def test_income_adds(self, ledger, store, user_id, make_member, make_account):
        """Test that income raises the balance."""
        member = await make_member()
        account = await make_account(member.id)
        await ledger.add_transaction(user_id, income(account, "1200.00"))
        assert await balance_of(store, account) == Decimal("1200.00")

    @pytest.mark.asyncio
    async def test_changing_type_flips_effect(self, ledger, store, user_id, make_member, make_account):
        """Test that turning an expense into income moves the balance by twice the amount."""
        member = await make_member()
        account = await make_account(member.id, balance="100")
        created = await ledger.add_transaction(user_id, expense(account, 20))
        await ledger.update_transaction(
            user_id, created.id, TransactionUpdate(type=TransactionType.INCOME, category="Salary")
        )
        assert await balance_of(store, account) == Decimal("120")

    @pytest.mark.asyncio
    async def test_moving_between_accounts(self, ledger, store, user_id, make_member, make_account):
        """Test that the old account is restored and the new one is charged."""
        member = await make_member()
        bank = await make_account(member.id, name="Bank", balance="100")
        cash = await make_account(member.id, name="Cash", balance="40")

        created = await ledger.add_transaction(user_id, expense(bank, 25))
        await ledger.update_transaction(user_id, created.id, TransactionUpdate(account_id=cash.id))

        assert await balance_of(store, bank) == Decimal("100")
        assert await balance_of(store, cash) == Decimal("15")

    @pytest.mark.asyncio
    async def test_balance_matches_history(self, ledger, store, user_id, make_member, make_account):
        """Test final balance = initial + income - expense after random create/edit/delete."""
        rng = random.Random(20240315)
        member = await make_member()
        accounts = [
            await make_account(member.id, name="Bank", balance="500.00"),
            await make_account(member.id, name="Cash", balance="20.00"),
        ]
        initial = {a.id: a.balance for a in accounts}
        live = []

        for _ in range(60):
            action = rng.choice(["add", "add", "edit", "delete"])
            if action == "add" or not live:
                account = rng.choice(accounts)
                amount = Decimal(rng.randint(1, 50000)) / 100
                draft = income(account, amount) if rng.random() < 0.3 else expense(account, amount)
                live.append((await ledger.add_transaction(user_id, draft)).id)
            elif action == "edit":
                target = rng.choice(live)
                account = rng.choice(accounts)
                changes = TransactionUpdate(
                    amount=Decimal(rng.randint(1, 50000)) / 100,
                    account_id=account.id,
                )
                await ledger.update_transaction(user_id, target, changes)
            else:
                target = live.pop(rng.randrange(len(live)))
                await ledger.delete_transaction(user_id, target)

        persisted = await store.select(Collection.TRANSACTIONS, {"user_id": user_id})
        for account in accounts:
            expected = initial[account.id] + sum(
                (t.delta for t in persisted if t.account_id == account.id), Decimal("0")
            )
            assert await balance_of(store, account) == expected


class TestMissingAccount:
    """A missing account skips the balance step."""

    @pytest.mark.asyncio
    async def test_create_against_removed_account(self, ledger, backend, store, activity, user_id, make_member, make_account):
        """Test that the transaction is saved and the skipped adjustment is logged."""
        member = await make_member()
        account = await make_account(member.id, balance="100")
        await store.delete(Collection.ACCOUNTS, account.id)

        created = await ledger.add_transaction(user_id, expense(account, 30))

        assert [row["id"] for row in backend.rows(Collection.TRANSACTIONS)] == [created.id]
        assert created.account_id == account.id
        assert activity.events_of_type(ActivityEventType.BALANCE_ADJUSTMENT_SKIPPED)
        assert not activity.events_of_type(ActivityEventType.VALIDATION_FAILED)

    @pytest.mark.asyncio
    async def test_edit_moves_to_removed_account(self, ledger, store, activity, user_id, make_member, make_account):
        """Test that moving to a removed account reverts the old one and saves."""
        member = await make_member()
        kept = await make_account(member.id, balance="100")
        removed = await make_account(member.id, name="Cash")
        created = await ledger.add_transaction(user_id, expense(kept, 30))
        await store.delete(Collection.ACCOUNTS, removed.id)

        updated = await ledger.update_transaction(user_id, created.id, TransactionUpdate(account_id=removed.id))

        assert updated.account_id == removed.id
        assert await balance_of(store, kept) == Decimal("100")
        assert activity.events_of_type(ActivityEventType.BALANCE_ADJUSTMENT_SKIPPED)

    @pytest.mark.asyncio
    async def test_delete_after_account_removed(self, ledger, store, activity, user_id, make_member, make_account):
        """Test that the transaction is still deleted and the skip is logged."""
        member = await make_member()
        account = await make_account(member.id, balance="100")
        created = await ledger.add_transaction(user_id, expense(account, 30))
        await store.delete(Collection.ACCOUNTS, account.id)

        await ledger.delete_transaction(user_id, created.id)

        assert await store.get(Collection.TRANSACTIONS, created.id) is None
        assert activity.events_of_type(ActivityEventType.BALANCE_ADJUSTMENT_SKIPPED)

    @pytest.mark.asyncio
    async def test_edit_after_account_removed(self, ledger, store, user_id, make_member, make_account):
        """Test that an edit keeping the removed account still saves."""
        member = await make_member()
        account = await make_account(member.id, balance="100")
        created = await ledger.add_transaction(user_id, expense(account, 30))
        await store.delete(Collection.ACCOUNTS, account.id)

        updated = await ledger.update_transaction(user_id, created.id, TransactionUpdate(note="receipt lost"))
        assert updated.note == "receipt lost"


class TestValidationBeforeWrite:
    """Rejected input writes nothing."""

    @pytest.mark.asyncio
    async def test_unknown_member_rejected(self, ledger, backend, user_id, make_member, make_account):
        """Test that a missing family member fails validation on create."""
        member = await make_member()
        account = await make_account(member.id)
        draft = expense(account, 10).model_copy(update={"family_member_id": 999})

        with pytest.raises(ValidationFailedError):
            await ledger.add_transaction(user_id, draft)
        assert backend.rows(Collection.TRANSACTIONS) == []

    @pytest.mark.asyncio
    async def test_account_of_other_member_rejected(self, ledger, backend, user_id, make_member, make_account):
        """Test that the account must belong to the chosen member."""
        dana = await make_member("Dana")
        sam = await make_member("Sam")
        sams_account = await make_account(sam.id)
        draft = expense(sams_account, 10).model_copy(update={"family_member_id": dana.id})

        with pytest.raises(ValidationFailedError) as exc_info:
            await ledger.add_transaction(user_id, draft)
        assert exc_info.value.result.issues[0].issue_type == "mismatch"
        assert backend.rows(Collection.TRANSACTIONS) == []

    @pytest.mark.asyncio
    async def test_other_users_account_rejected(self, ledger, store, user_id, make_member, make_account):
        """Test that another user's account is rejected."""
        member = await make_member()
        foreign = await make_account(member.id, owner="user-2")
        with pytest.raises(ValidationFailedError):
            await ledger.add_transaction(user_id, expense(foreign, 10))
        assert await balance_of(store, foreign) == Decimal("0")

    @pytest.mark.asyncio
    async def test_invalid_update_rejected(self, ledger, store, user_id, make_member, make_account):
        """Test that an edit producing an invalid transaction changes nothing."""
        member = await make_member()
        other = await make_member("Sam")
        account = await make_account(member.id, balance="100")
        created = await ledger.add_transaction(user_id, expense(account, 30))

        with pytest.raises(ValidationFailedError):
            await ledger.update_transaction(user_id, created.id, TransactionUpdate(family_member_id=other.id))
        assert await balance_of(store, account) == Decimal("70")

    @pytest.mark.asyncio
    async def test_unknown_category_is_only_a_warning(self, ledger, activity, user_id, make_member, make_account):
        """Test that an unknown category name does not block the write."""
        member = await make_member()
        account = await make_account(member.id)
        created = await ledger.add_transaction(user_id, expense(account, 10, category="Pets"))
        assert created.category == "Pets"
        assert not activity.events_of_type(ActivityEventType.VALIDATION_FAILED)


class TestFailures:
    """Store failures and missing rows."""

    @pytest.mark.asyncio
    async def test_missing_transaction(self, ledger, user_id):
        """Test NotFoundError on edit and delete of an unknown id."""
        with pytest.raises(NotFoundError):
            await ledger.delete_transaction(user_id, 42)
        with pytest.raises(NotFoundError):
            await ledger.update_transaction(user_id, 42, TransactionUpdate(amount=Decimal("1")))

    @pytest.mark.asyncio
    async def test_stale_snapshot_of_deleted_transaction(self, ledger, store, user_id, make_member, make_account):
        """Test that editing a row deleted elsewhere leaves the balance alone."""
        member = await make_member()
        account = await make_account(member.id, balance="100")
        created = await ledger.add_transaction(user_id, expense(account, 30))
        await store.delete(Collection.TRANSACTIONS, created.id)

        with pytest.raises(NotFoundError):
            await ledger.update_transaction(
                user_id, created.id, TransactionUpdate(amount=Decimal("50")), original=created
            )
        assert await balance_of(store, account) == Decimal("70")

    @pytest.mark.asyncio
    async def test_other_users_transaction_not_found(self, ledger, store, make_member, make_account):
        """Test that transactions are scoped to their owner."""
        member = await make_member(owner="user-2")
        account = await make_account(member.id, owner="user-2")
        created = await ledger.add_transaction("user-2", expense(account, 10))
        with pytest.raises(NotFoundError):
            await ledger.delete_transaction("user-1", created.id)

    @pytest.mark.asyncio
    async def test_first_write_failure_propagates(self, ledger, backend, user_id, make_member, make_account):
        """Test that a failure before any write is a plain StorageError."""
        member = await make_member()
        account = await make_account(member.id)
        backend.inject_failure("insert", Collection.TRANSACTIONS)

        with pytest.raises(StorageError) as exc_info:
            await ledger.add_transaction(user_id, expense(account, 10))
        assert not isinstance(exc_info.value, PartialFailureError)

    @pytest.mark.asyncio
    async def test_balance_failure_after_insert_is_partial(
        self, ledger, backend, store, activity, user_id, make_member, make_account
    ):
        """Test that the inserted transaction stays and the failure names it."""
        member = await make_member()
        account = await make_account(member.id, balance="100")
        backend.inject_failure("update", Collection.ACCOUNTS)

        with pytest.raises(PartialFailureError) as exc_info:
            await ledger.add_transaction(user_id, expense(account, 10))

        assert exc_info.value.completed_steps == ["insert transaction"]
        assert len(backend.rows(Collection.TRANSACTIONS)) == 1
        assert await balance_of(store, account) == Decimal("100")
        assert activity.events_of_type(ActivityEventType.PARTIAL_FAILURE)

    @pytest.mark.asyncio
    async def test_update_failure_after_revert_is_partial(
        self, ledger, backend, store, user_id, make_member, make_account
    ):
        """Test that a failed transaction update leaves the revert in place."""
        member = await make_member()
        account = await make_account(member.id, balance="100")
        created = await ledger.add_transaction(user_id, expense(account, 30))
        backend.inject_failure("update", Collection.TRANSACTIONS)

        with pytest.raises(PartialFailureError) as exc_info:
            await ledger.update_transaction(user_id, created.id, TransactionUpdate(amount=Decimal("50")))

        assert exc_info.value.failed_step == "update transaction"
        assert await balance_of(store, account) == Decimal("100")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
