"""
Balance Maintenance

Account balances are materialized running totals. Every transaction
mutation updates exactly the balances it affects:

    create: persist transaction, then balance += delta
    update: balance(old account) -= old delta, persist new fields,
            balance(new account) += new delta
    delete: balance -= delta, then remove transaction

delta is +amount for income and -amount for expense.

CRITICAL RULES:
1. Validation runs before the first write; rejected input writes nothing
2. The steps are NOT atomic; a store failure after a write raises
   PartialFailureError and nothing is compensated
3. A missing account skips its balance step (logged), the transaction
   write still happens
4. Balance reads and writes are read-modify-write; concurrent edits of
   one account can lose updates
"""

from decimal import Decimal
from typing import Any, Awaitable, Optional
from uuid import UUID

from pydantic import ValidationError

from household_budget.activity import ActivityLogger, create_correlation_id
from household_budget.errors import PartialFailureError, ValidationFailedError
from household_budget.models.activity import ActivityEventBuilder, ActivityEventType
from household_budget.models.entities import (
    Account,
    Collection,
    Transaction,
    TransactionDraft,
    TransactionUpdate,
)
from household_budget.services.storage import (
    EntityStoreClient,
    NotFoundError,
    StorageError,
)
from household_budget.validation import EntryValidator, ensure_valid


class WriteSequence:
    """
    Runs the writes of one user action in order, remembering which landed.

    A StorageError on the first step propagates unchanged. A StorageError
    on a later step becomes PartialFailureError naming the completed steps.
    """

    def __init__(
        self,
        operation: str,
        user_id: str,
        activity_logger: ActivityLogger,
        correlation_id: Optional[UUID] = None,
    ):
        self.operation = operation
        self.user_id = user_id
        self.correlation_id = correlation_id
        self.completed: list[str] = []
        self._activity = activity_logger

    async def step(self, name: str, awaitable: Awaitable[Any]) -> Any:
        try:
            result = await awaitable
        except StorageError as e:
            if not self.completed:
                self._activity.log_store_error(
                    operation=f"{self.operation}: {name}",
                    error_message=str(e),
                    user_id=self.user_id,
                    correlation_id=self.correlation_id,
                )
                raise
            self._activity.log_partial_failure(
                operation=self.operation,
                completed_steps=self.completed,
                failed_step=name,
                error_message=str(e),
                user_id=self.user_id,
                correlation_id=self.correlation_id,
            )
            raise PartialFailureError(self.operation, self.completed, name, e) from e
        self.completed.append(name)
        return result


class BalanceMaintenanceService:
    """
    Transaction writes with their balance side effects.

    The service holds no session state: callers pass the user id on
    every call.
    """

    def __init__(
        self,
        store: EntityStoreClient,
        validator: Optional[EntryValidator] = None,
        activity_logger: Optional[ActivityLogger] = None,
    ):
        self._store = store
        self._validator = validator or EntryValidator(store)
        self._activity = activity_logger or ActivityLogger()

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    async def add_transaction(
        self,
        user_id: str,
        draft: TransactionDraft,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """Persist a new transaction and apply its delta to its account."""
        correlation_id = correlation_id or create_correlation_id()
        await self._validate(user_id, draft, correlation_id)

        sequence = WriteSequence("add_transaction", user_id, self._activity, correlation_id)
        row = draft.model_dump()
        row["user_id"] = user_id
        created: Transaction = await sequence.step(
            "insert transaction",
            self._store.insert(Collection.TRANSACTIONS, row),
        )
        await sequence.step(
            f"adjust account {created.account_id}",
            self._apply_delta(created.account_id, created.delta, correlation_id),
        )

        self._activity.log_entity_changed(
            ActivityEventType.TRANSACTION_ADDED,
            Collection.TRANSACTIONS,
            created.id,
            user_id,
            f"{created.type.value.capitalize()} of {created.amount} in '{created.category}'",
            details={"account_id": created.account_id, "delta": str(created.delta)},
            correlation_id=correlation_id,
        )
        return created

    async def update_transaction(
        self,
        user_id: str,
        transaction_id: int,
        changes: TransactionUpdate,
        original: Optional[Transaction] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Edit a transaction, moving its balance effect.

        Args:
            user_id: Owner of the transaction
            transaction_id: Transaction to edit
            changes: Fields to change; unset fields keep their value
            original: Snapshot as the caller last saw it; fetched when omitted
            correlation_id: Ties the logged steps together

        Returns:
            The transaction as persisted
        """
        correlation_id = correlation_id or create_correlation_id()
        if original is None:
            original = await self._load_transaction(user_id, transaction_id)
        else:
            # The snapshot may be stale; never revert a row that is already gone
            await self._load_transaction(user_id, transaction_id)

        try:
            updated = changes.apply_to(original)
        except ValidationError as e:
            raise ValidationFailedError.from_pydantic("transaction", e) from e

        references_changed = (
            updated.account_id != original.account_id
            or updated.family_member_id != original.family_member_id
        )
        await self._validate(
            user_id,
            _draft_of(updated),
            correlation_id,
            check_references=references_changed,
        )

        sequence = WriteSequence("update_transaction", user_id, self._activity, correlation_id)
        await sequence.step(
            f"revert account {original.account_id}",
            self._apply_delta(original.account_id, -original.delta, correlation_id),
        )
        persisted = await sequence.step(
            "update transaction",
            self._store.update(
                Collection.TRANSACTIONS,
                transaction_id,
                updated.model_dump(exclude={"id", "user_id"}),
            ),
        )
        if persisted is None:
            # Row vanished between read and write; its effect is already reverted
            self._activity.log_partial_failure(
                operation="update_transaction",
                completed_steps=sequence.completed,
                failed_step="update transaction",
                error_message=f"Transaction {transaction_id} not found",
                user_id=user_id,
                correlation_id=correlation_id,
            )
            raise NotFoundError(f"Transaction {transaction_id} not found")

        await sequence.step(
            f"adjust account {persisted.account_id}",
            self._apply_delta(persisted.account_id, persisted.delta, correlation_id),
        )

        self._activity.log_entity_changed(
            ActivityEventType.TRANSACTION_UPDATED,
            Collection.TRANSACTIONS,
            transaction_id,
            user_id,
            f"Transaction {transaction_id} updated",
            details={
                "changed_fields": sorted(changes.model_dump(exclude_unset=True)),
                "old_account_id": original.account_id,
                "new_account_id": persisted.account_id,
                "old_delta": str(original.delta),
                "new_delta": str(persisted.delta),
            },
            correlation_id=correlation_id,
        )
        return persisted

    async def delete_transaction(
        self,
        user_id: str,
        transaction_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """Revert a transaction's balance effect, then remove it."""
        correlation_id = correlation_id or create_correlation_id()
        original = await self._load_transaction(user_id, transaction_id)

        sequence = WriteSequence("delete_transaction", user_id, self._activity, correlation_id)
        await sequence.step(
            f"revert account {original.account_id}",
            self._apply_delta(original.account_id, -original.delta, correlation_id),
        )
        await sequence.step(
            "delete transaction",
            self._store.delete(Collection.TRANSACTIONS, transaction_id),
        )

        self._activity.log_entity_changed(
            ActivityEventType.TRANSACTION_DELETED,
            Collection.TRANSACTIONS,
            transaction_id,
            user_id,
            f"Transaction {transaction_id} deleted",
            details={"account_id": original.account_id, "reverted_delta": str(-original.delta)},
            correlation_id=correlation_id,
        )
        return original

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def _apply_delta(
        self,
        account_id: int,
        delta: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Account]:
        """Read the balance, write balance + delta. Skipped if the account is gone."""
        account = await self._store.get(Collection.ACCOUNTS, account_id)
        if account is None:
            self._activity.log(ActivityEventBuilder.balance_adjustment_skipped(
                account_id, delta, correlation_id
            ))
            return None

        updated = await self._store.update(
            Collection.ACCOUNTS,
            account_id,
            {"balance": account.balance + delta},
        )
        self._activity.log(ActivityEventBuilder.balance_adjusted(
            account_id, account.balance, delta, correlation_id
        ))
        return updated

    async def _load_transaction(self, user_id: str, transaction_id: int) -> Transaction:
        transaction = await self._store.get(Collection.TRANSACTIONS, transaction_id)
        if transaction is None or transaction.user_id != user_id:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return transaction

    async def _validate(
        self,
        user_id: str,
        draft: TransactionDraft,
        correlation_id: UUID,
        check_references: bool = True,
    ) -> None:
        result = await self._validator.validate_transaction(
            user_id, draft, check_references=check_references
        )
        if result.has_errors:
            self._activity.log_validation_failed(
                "transaction",
                [issue.model_dump() for issue in result.issues],
                user_id=user_id,
                correlation_id=correlation_id,
            )
        ensure_valid(result)


def _draft_of(transaction: Transaction) -> TransactionDraft:
    return TransactionDraft.model_validate(transaction.model_dump(exclude={"id", "user_id"}))
