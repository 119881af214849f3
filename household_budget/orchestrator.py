"""
Data Context for Household Budget

This module ties the components together for one signed-in user:
- Holds the in-memory snapshot of the four collections
- Routes every mutation through validation, the store and the ledger
- Keeps the snapshot fresh (realtime push, or re-fetch after writes)
- Evaluates dashboard and ledger views over the snapshot

DESIGN DECISION: The snapshot is always REPLACED, never patched.
A change notification or a completed write triggers a full re-fetch
of the affected collection; whatever the store returns wins.

Cross-entity rules enforced here (the store does not know them):
- The last family member cannot be deleted
- A category used by any transaction cannot be deleted
- Category sort orders stay dense and zero-based per type
"""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Callable, Optional, Sequence, Union
from uuid import UUID

import structlog
from pydantic import BaseModel, ValidationError

from household_budget.activity import ActivityLogger, configure_logging, create_correlation_id
from household_budget.bootstrap import BootstrapService, SeedResult
from household_budget.config import AppSettings, get_settings
from household_budget.errors import IntegrityViolationError, ValidationFailedError
from household_budget.ledger import BalanceMaintenanceService, WriteSequence
from household_budget.models.activity import (
    ActivityEvent,
    ActivityEventType,
    ActivitySeverity,
    ChangeEvent,
)
from household_budget.models.entities import (
    Account,
    AccountDraft,
    Category,
    CategoryDraft,
    Collection,
    FamilyMember,
    FamilyMemberDraft,
    Transaction,
    TransactionDraft,
    TransactionType,
    TransactionUpdate,
)
from household_budget.models.validation import ValidationIssue, ValidationResult
from household_budget.models.views import (
    ALL_SELECTION,
    DashboardResult,
    LedgerQuery,
    LedgerResult,
    PeriodFilter,
    TransactionFilter,
)
from household_budget.queries import (
    accounts_for_member,
    run_dashboard_query,
    run_ledger_query,
)
from household_budget.services.auth import AuthSession, SupabaseAuthProvider
from household_budget.services.storage import (
    EntityStoreClient,
    InMemoryEntityStore,
    NotFoundError,
    SupabaseConnection,
    SupabaseEntityStore,
    Subscription,
)
from household_budget.validation import EntryValidator, ensure_valid


logger = structlog.get_logger(__name__)


class DataContext:
    """
    One user's budget data and the operations on it.

    Snapshot attributes:
        family_members: ordered by creation
        categories: {"expense": [...], "income": [...]} ordered by sort_order
        accounts: ordered by id
        transactions: newest date first
        loading: True while fetch_all() runs
        error: message of the last failed fetch, None otherwise
    """

    def __init__(
        self,
        store: EntityStoreClient,
        user_id: str,
        activity_logger: Optional[ActivityLogger] = None,
        validator: Optional[EntryValidator] = None,
        settings: Optional[AppSettings] = None,
        clock: Callable[[], date] = date.today,
    ):
        self._store = store
        self.user_id = user_id
        self._activity = activity_logger or ActivityLogger()
        self._settings = settings or get_settings().app
        self._validator = validator or EntryValidator(store, self._settings)
        self._ledger = BalanceMaintenanceService(store, self._validator, self._activity)
        self._bootstrap = BootstrapService(store, self._activity)
        self._clock = clock
        self._subscriptions: list[Subscription] = []

        self.family_members: list[FamilyMember] = []
        self.categories: dict[str, list[Category]] = {"expense": [], "income": []}
        self.accounts: list[Account] = []
        self.transactions: list[Transaction] = []
        self.loading = False
        self.error: Optional[str] = None

    # =========================================================================
    # FETCHING
    # =========================================================================

    async def open(self) -> Optional[SeedResult]:
        """
        Load everything for the user and seed defaults on first use.

        Returns:
            The seed result if seeding ran, None otherwise
        """
        await self.fetch_all()
        if self._settings.seed_on_first_use and not self.family_members:
            return await self.bootstrap()
        return None

    async def fetch_all(self) -> None:
        """Refresh all four collections concurrently."""
        self.loading = True
        self.error = None
        try:
            await asyncio.gather(
                self.fetch_family_members(),
                self.fetch_categories(),
                self.fetch_accounts(),
                self.fetch_transactions(),
            )
        except Exception as e:
            self.error = str(e)
            self._activity.log_store_error("fetch_all", str(e), user_id=self.user_id)
            raise
        finally:
            self.loading = False

        self._activity.log(ActivityEvent(
            event_type=ActivityEventType.DATA_REFRESHED,
            severity=ActivitySeverity.DEBUG,
            user_id=self.user_id,
            description="All collections refreshed",
            details={
                "family_members": len(self.family_members),
                "categories": sum(len(c) for c in self.categories.values()),
                "accounts": len(self.accounts),
                "transactions": len(self.transactions),
            },
        ))

    async def fetch_family_members(self) -> None:
        self.family_members = await self._store.select(
            Collection.FAMILY_MEMBERS,
            {"user_id": self.user_id},
            order_by="created_at",
        )

    async def fetch_categories(self) -> None:
        rows = await self._store.select(
            Collection.CATEGORIES,
            {"user_id": self.user_id},
            order_by="sort_order",
        )
        self.categories = {
            TransactionType.EXPENSE.value: [c for c in rows if c.type == TransactionType.EXPENSE],
            TransactionType.INCOME.value: [c for c in rows if c.type == TransactionType.INCOME],
        }

    async def fetch_accounts(self) -> None:
        self.accounts = await self._store.select(
            Collection.ACCOUNTS,
            {"user_id": self.user_id},
            order_by="id",
        )

    async def fetch_transactions(self) -> None:
        self.transactions = await self._store.select(
            Collection.TRANSACTIONS,
            {"user_id": self.user_id},
            order_by="date",
            ascending=False,
        )

    def _fetcher(self, collection: Collection):
        return {
            Collection.FAMILY_MEMBERS: self.fetch_family_members,
            Collection.CATEGORIES: self.fetch_categories,
            Collection.ACCOUNTS: self.fetch_accounts,
            Collection.TRANSACTIONS: self.fetch_transactions,
        }[collection]

    async def _refresh(self, *collections: Collection) -> None:
        """Re-fetch after a write, unless realtime will do it."""
        if self.realtime_active:
            return
        await asyncio.gather(*(self._fetcher(c)() for c in collections))

    # =========================================================================
    # REALTIME
    # =========================================================================

    @property
    def realtime_active(self) -> bool:
        return any(s.active for s in self._subscriptions)

    async def start_realtime(self) -> None:
        """Subscribe to all four collections; each change re-fetches its collection."""
        if self.realtime_active:
            return
        for collection in Collection:
            subscription = await self._store.subscribe(collection, self.user_id, self._on_change)
            self._subscriptions.append(subscription)
        logger.info("realtime_started", user_id=self.user_id)

    async def stop_realtime(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            await subscription.unsubscribe()
        if subscriptions:
            logger.info("realtime_stopped", user_id=self.user_id)

    async def _on_change(self, event: ChangeEvent) -> None:
        self._activity.log(ActivityEvent(
            event_type=ActivityEventType.CHANGE_RECEIVED,
            severity=ActivitySeverity.DEBUG,
            entity_type=event.collection.value,
            entity_id=event.record_id,
            user_id=self.user_id,
            description=f"{event.change_type.value} on {event.collection.value}",
        ))
        try:
            await self._fetcher(event.collection)()
        except Exception as e:
            # Keep the previous snapshot; the next change or refresh retries
            self.error = str(e)
            self._activity.log_store_error(
                f"refetch {event.collection.value}", str(e), user_id=self.user_id
            )

    # =========================================================================
    # FAMILY MEMBERS
    # =========================================================================

    async def add_family_member(self, name: str) -> FamilyMember:
        draft = self._draft(FamilyMemberDraft, "family member", name=name)
        self._check(self._validator.validate_name("family member", draft.name))

        row = draft.model_dump()
        row["user_id"] = self.user_id
        member = await self._store.insert(Collection.FAMILY_MEMBERS, row)
        self._activity.log_entity_changed(
            ActivityEventType.FAMILY_MEMBER_ADDED,
            Collection.FAMILY_MEMBERS,
            member.id,
            self.user_id,
            f"Family member '{member.name}' added",
        )
        await self._refresh(Collection.FAMILY_MEMBERS)
        return member

    async def update_family_member(self, member_id: int, name: str) -> FamilyMember:
        draft = self._draft(FamilyMemberDraft, "family member", name=name)
        self._check(self._validator.validate_name("family member", draft.name))
        await self._owned(Collection.FAMILY_MEMBERS, member_id)

        member = await self._store.update(Collection.FAMILY_MEMBERS, member_id, draft.model_dump())
        if member is None:
            raise NotFoundError(f"Family member {member_id} not found")
        self._activity.log_entity_changed(
            ActivityEventType.FAMILY_MEMBER_UPDATED,
            Collection.FAMILY_MEMBERS,
            member_id,
            self.user_id,
            f"Family member renamed to '{member.name}'",
        )
        await self._refresh(Collection.FAMILY_MEMBERS)
        return member

    async def delete_family_member(self, member_id: int) -> None:
        """Delete a member; the store removes the member's accounts with it."""
        member = await self._owned(Collection.FAMILY_MEMBERS, member_id)
        members = await self._store.select(Collection.FAMILY_MEMBERS, {"user_id": self.user_id})
        if len(members) <= 1:
            self._reject(
                Collection.FAMILY_MEMBERS,
                member_id,
                f"'{member.name}' is the only family member and cannot be deleted",
            )

        await self._store.delete(Collection.FAMILY_MEMBERS, member_id)
        self._activity.log_entity_changed(
            ActivityEventType.FAMILY_MEMBER_DELETED,
            Collection.FAMILY_MEMBERS,
            member_id,
            self.user_id,
            f"Family member '{member.name}' deleted",
        )
        await self._refresh(Collection.FAMILY_MEMBERS, Collection.ACCOUNTS)

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    async def add_category(self, name: str, type: Union[TransactionType, str]) -> Category:
        """Append a category at the end of its type's order."""
        draft = self._draft(CategoryDraft, "category", name=name, type=type)
        self._check(self._validator.validate_name("category", draft.name))

        siblings = await self._partition(draft.type)
        self._check_category_name(draft.name, draft.type, siblings)

        row = draft.model_dump()
        row["user_id"] = self.user_id
        row["sort_order"] = max((c.sort_order for c in siblings), default=-1) + 1
        category = await self._store.insert(Collection.CATEGORIES, row)
        self._activity.log_entity_changed(
            ActivityEventType.CATEGORY_ADDED,
            Collection.CATEGORIES,
            category.id,
            self.user_id,
            f"{category.type.value.capitalize()} category '{category.name}' added",
            details={"sort_order": category.sort_order},
        )
        await self._refresh(Collection.CATEGORIES)
        return category

    async def update_category(self, category_id: int, name: str) -> Category:
        """
        Rename a category.

        Transactions keep the old name; they reference categories by name.
        """
        existing = await self._owned(Collection.CATEGORIES, category_id)
        draft = self._draft(CategoryDraft, "category", name=name, type=existing.type)
        self._check(self._validator.validate_name("category", draft.name))
        siblings = [c for c in await self._partition(existing.type) if c.id != category_id]
        self._check_category_name(draft.name, existing.type, siblings)

        category = await self._store.update(Collection.CATEGORIES, category_id, {"name": draft.name})
        if category is None:
            raise NotFoundError(f"Category {category_id} not found")
        self._activity.log_entity_changed(
            ActivityEventType.CATEGORY_UPDATED,
            Collection.CATEGORIES,
            category_id,
            self.user_id,
            f"Category '{existing.name}' renamed to '{category.name}'",
        )
        await self._refresh(Collection.CATEGORIES)
        return category

    async def delete_category(
        self,
        category_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Delete an unused category and close the gap in its type's order."""
        correlation_id = correlation_id or create_correlation_id()
        category = await self._owned(Collection.CATEGORIES, category_id)

        in_use = await self._store.exists(
            Collection.TRANSACTIONS,
            {"user_id": self.user_id, "category": category.name},
        )
        if in_use:
            self._reject(
                Collection.CATEGORIES,
                category_id,
                f"Category '{category.name}' is used by existing transactions",
                correlation_id,
            )

        sequence = WriteSequence("delete_category", self.user_id, self._activity, correlation_id)
        await sequence.step(
            f"delete category '{category.name}'",
            self._store.delete(Collection.CATEGORIES, category_id),
        )
        remaining = await sequence.step("read remaining categories", self._partition(category.type))
        await self._renumber(remaining, sequence)

        self._activity.log_entity_changed(
            ActivityEventType.CATEGORY_DELETED,
            Collection.CATEGORIES,
            category_id,
            self.user_id,
            f"Category '{category.name}' deleted",
            correlation_id=correlation_id,
        )
        await self._refresh(Collection.CATEGORIES)

    async def reorder_categories(
        self,
        type: Union[TransactionType, str],
        ordered_ids: Sequence[int],
        correlation_id: Optional[UUID] = None,
    ) -> list[Category]:
        """
        Persist a new order for one type's categories.

        ordered_ids must list every category of that type exactly once;
        sort orders are rewritten as 0, 1, 2, ... in that order.
        """
        correlation_id = correlation_id or create_correlation_id()
        transaction_type = TransactionType(type)
        current = await self._partition(transaction_type)
        by_id = {c.id: c for c in current}

        if sorted(ordered_ids) != sorted(by_id):
            result = ValidationResult(
                subject="category order",
                schema_valid=False,
                semantic_valid=False,
                issues=[ValidationIssue(
                    field="ordered_ids",
                    issue_type="mismatch",
                    message=f"New order must list each {transaction_type.value} category exactly once",
                    severity="error",
                    suggested_fix="Refresh and reorder again",
                )],
            )
            self._check(result)

        sequence = WriteSequence("reorder_categories", self.user_id, self._activity, correlation_id)
        await self._renumber([by_id[i] for i in ordered_ids], sequence)

        self._activity.log_entity_changed(
            ActivityEventType.CATEGORIES_REORDERED,
            Collection.CATEGORIES,
            None,
            self.user_id,
            f"{transaction_type.value.capitalize()} categories reordered",
            details={"order": list(ordered_ids)},
            correlation_id=correlation_id,
        )
        await self._refresh(Collection.CATEGORIES)
        return await self._partition(transaction_type)

    async def _partition(self, transaction_type: TransactionType) -> list[Category]:
        return await self._store.select(
            Collection.CATEGORIES,
            {"user_id": self.user_id, "type": transaction_type},
            order_by="sort_order",
        )

    async def _renumber(self, ordered: Sequence[Category], sequence: WriteSequence) -> None:
        for position, category in enumerate(ordered):
            if category.sort_order != position:
                await sequence.step(
                    f"move '{category.name}' to {position}",
                    self._store.update(Collection.CATEGORIES, category.id, {"sort_order": position}),
                )

    def _check_category_name(
        self,
        name: str,
        transaction_type: TransactionType,
        siblings: Sequence[Category],
    ) -> None:
        """Names are unique per type, ignoring case; the filter sentinel is reserved."""
        if name.casefold() == ALL_SELECTION:
            self._check(ValidationResult(
                subject="category",
                schema_valid=True,
                semantic_valid=False,
                issues=[ValidationIssue(
                    field="name",
                    issue_type="reserved",
                    message=f"'{name}' is reserved for the all-categories filter",
                    severity="error",
                )],
            ))
        if any(c.name.casefold() == name.casefold() for c in siblings):
            self._check(ValidationResult(
                subject="category",
                schema_valid=True,
                semantic_valid=False,
                issues=[ValidationIssue(
                    field="name",
                    issue_type="duplicate",
                    message=f"A {transaction_type.value} category named '{name}' already exists",
                    severity="error",
                )],
            ))

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def add_account(
        self,
        name: str,
        family_member_id: int,
        balance: Union[Decimal, str, int] = Decimal("0"),
    ) -> Account:
        draft = self._draft(
            AccountDraft, "account",
            name=name, family_member_id=family_member_id, balance=balance,
        )
        self._check(await self._validator.validate_account(self.user_id, draft))

        row = draft.model_dump()
        row["user_id"] = self.user_id
        account = await self._store.insert(Collection.ACCOUNTS, row)
        self._activity.log_entity_changed(
            ActivityEventType.ACCOUNT_ADDED,
            Collection.ACCOUNTS,
            account.id,
            self.user_id,
            f"Account '{account.name}' added",
            details={"family_member_id": account.family_member_id, "balance": str(account.balance)},
        )
        await self._refresh(Collection.ACCOUNTS)
        return account

    async def update_account(
        self,
        account_id: int,
        name: Optional[str] = None,
        balance: Union[Decimal, str, int, None] = None,
    ) -> Account:
        """
        Rename an account and/or set its balance.

        Setting the balance is a manual correction; it is not recorded
        as a transaction.
        """
        existing = await self._owned(Collection.ACCOUNTS, account_id)
        draft = self._draft(
            AccountDraft, "account",
            name=existing.name if name is None else name,
            family_member_id=existing.family_member_id,
            balance=existing.balance if balance is None else balance,
        )
        self._check(self._validator.validate_name("account", draft.name))

        fields = {}
        if name is not None:
            fields["name"] = draft.name
        if balance is not None:
            fields["balance"] = draft.balance
        if not fields:
            return existing

        account = await self._store.update(Collection.ACCOUNTS, account_id, fields)
        if account is None:
            raise NotFoundError(f"Account {account_id} not found")
        self._activity.log_entity_changed(
            ActivityEventType.ACCOUNT_UPDATED,
            Collection.ACCOUNTS,
            account_id,
            self.user_id,
            f"Account '{account.name}' updated",
            details={
                "changed_fields": sorted(fields),
                "previous_balance": str(existing.balance),
                "balance": str(account.balance),
            },
        )
        await self._refresh(Collection.ACCOUNTS)
        return account

    async def delete_account(self, account_id: int) -> None:
        """Delete an account. Its transactions stay and no longer move a balance."""
        account = await self._owned(Collection.ACCOUNTS, account_id)
        await self._store.delete(Collection.ACCOUNTS, account_id)
        self._activity.log_entity_changed(
            ActivityEventType.ACCOUNT_DELETED,
            Collection.ACCOUNTS,
            account_id,
            self.user_id,
            f"Account '{account.name}' deleted",
        )
        await self._refresh(Collection.ACCOUNTS)

    def accounts_for_member(self, family_member_id: Optional[int]) -> list[Account]:
        return accounts_for_member(self.accounts, family_member_id)

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def add_transaction(self, draft: Union[TransactionDraft, dict]) -> Transaction:
        if isinstance(draft, dict):
            draft = self._draft(TransactionDraft, "transaction", **draft)
        transaction = await self._ledger.add_transaction(self.user_id, draft)
        await self._refresh(Collection.TRANSACTIONS, Collection.ACCOUNTS)
        return transaction

    async def update_transaction(
        self,
        transaction_id: int,
        changes: Union[TransactionUpdate, dict],
    ) -> Transaction:
        if isinstance(changes, dict):
            changes = self._draft(TransactionUpdate, "transaction", **changes)
        # The snapshot is what the user edited; the ledger re-reads when absent
        original = next((t for t in self.transactions if t.id == transaction_id), None)
        transaction = await self._ledger.update_transaction(
            self.user_id, transaction_id, changes, original=original
        )
        await self._refresh(Collection.TRANSACTIONS, Collection.ACCOUNTS)
        return transaction

    async def delete_transaction(self, transaction_id: int) -> Transaction:
        transaction = await self._ledger.delete_transaction(self.user_id, transaction_id)
        await self._refresh(Collection.TRANSACTIONS, Collection.ACCOUNTS)
        return transaction

    # =========================================================================
    # BOOTSTRAP AND VIEWS
    # =========================================================================

    async def bootstrap(self) -> SeedResult:
        result = await self._bootstrap.ensure_seeded(self.user_id)
        if result.seeded:
            await self._refresh(
                Collection.FAMILY_MEMBERS, Collection.CATEGORIES, Collection.ACCOUNTS
            )
        return result

    def default_filter(self) -> TransactionFilter:
        return TransactionFilter(period=PeriodFilter(self._settings.default_period))

    def dashboard(self, view_filter: Optional[TransactionFilter] = None) -> DashboardResult:
        return run_dashboard_query(
            self.transactions,
            view_filter or self.default_filter(),
            today=self._clock(),
        )

    def ledger(self, query: Optional[LedgerQuery] = None) -> LedgerResult:
        return run_ledger_query(
            self.transactions,
            query or LedgerQuery(filter=self.default_filter()),
            members=self.family_members,
            accounts=self.accounts,
            today=self._clock(),
        )

    async def clear(self) -> None:
        """Forget everything (sign-out)."""
        await self.stop_realtime()
        self.family_members = []
        self.categories = {"expense": [], "income": []}
        self.accounts = []
        self.transactions = []
        self.loading = False
        self.error = None

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _draft(self, model: type[BaseModel], subject: str, **fields):
        try:
            return model(**fields)
        except ValidationError as e:
            error = ValidationFailedError.from_pydantic(subject, e)
            self._activity.log_validation_failed(
                subject,
                [issue.model_dump() for issue in error.result.issues],
                user_id=self.user_id,
            )
            raise error from e

    def _check(self, result: ValidationResult) -> ValidationResult:
        if result.has_errors:
            self._activity.log_validation_failed(
                result.subject,
                [issue.model_dump() for issue in result.issues],
                user_id=self.user_id,
            )
        return ensure_valid(result)

    async def _owned(self, collection: Collection, entity_id: int):
        entity = await self._store.get(collection, entity_id)
        if entity is None or entity.user_id != self.user_id:
            raise NotFoundError(f"{collection.value} {entity_id} not found")
        return entity

    def _reject(
        self,
        collection: Collection,
        entity_id: Optional[int],
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self._activity.log_integrity_rejected(
            collection, entity_id, reason, user_id=self.user_id, correlation_id=correlation_id
        )
        raise IntegrityViolationError(reason)


def create_app_components(
    use_supabase: bool = True,
) -> tuple[EntityStoreClient, Optional[AuthSession], ActivityLogger]:
    """
    Factory function to create all application components.

    Args:
        use_supabase: Whether to connect to Supabase.
                      Set to False for local runs with the in-memory store.

    Returns:
        (store_client, auth_session, activity_logger)

    auth_session is None without Supabase. Build a DataContext with the
    store client once a user is known.
    """
    app_settings = get_settings().app
    configure_logging(app_settings.log_level)
    activity_logger = ActivityLogger()

    if use_supabase:
        try:
            get_settings().supabase
        except ValidationError as e:
            # Supabase not configured - continue with the in-memory store
            logger.warning("supabase_not_configured", error=str(e))
            use_supabase = False

    if not use_supabase:
        return EntityStoreClient(InMemoryEntityStore()), None, activity_logger

    connection = SupabaseConnection()
    store = EntityStoreClient(SupabaseEntityStore(connection))
    auth_session = AuthSession(SupabaseAuthProvider(connection))
    return store, auth_session, activity_logger
