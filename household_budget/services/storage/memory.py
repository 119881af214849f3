"""
In-Memory Storage Implementation

Behaves like the hosted store for everything the services rely on:
- Generated integer ids per collection
- created_at stamped on family members
- Deleting a family member cascades to that member's accounts
- Change notifications for every insert/update/delete (cascades included)

Rows are kept as JSON-compatible dicts, exactly what the hosted store
returns, so the typed client exercises the same parsing path.
"""

from collections import defaultdict
from datetime import datetime, timezone
from itertools import count
from typing import Any, Optional

import structlog

from household_budget.models.activity import ChangeEvent, ChangeType
from household_budget.models.entities import Collection
from household_budget.services.storage.interface import (
    ChangeCallback,
    EntityStoreInterface,
    StorageError,
    Subscription,
)


logger = structlog.get_logger(__name__)


class InMemoryEntityStore(EntityStoreInterface):
    """Dict-backed store. Not thread-safe; one event loop only."""

    def __init__(self):
        self._rows: dict[Collection, dict[int, dict]] = {c: {} for c in Collection}
        self._ids = {c: count(1) for c in Collection}
        self._subscribers: dict[Collection, list[tuple[str, ChangeCallback]]] = defaultdict(list)
        self._failures: list[dict] = []

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def rows(self, collection: Collection) -> list[dict]:
        """All rows of a collection, in id order (copies)."""
        return [dict(row) for _, row in sorted(self._rows[collection].items())]

    def inject_failure(self, operation: str, collection: Collection, skip: int = 0) -> None:
        """
        Make a future call fail with StorageError.

        Args:
            operation: "insert", "update", "delete" or "select"
            collection: Collection the call must target
            skip: Number of matching calls to let through first
        """
        self._failures.append({"operation": operation, "collection": collection, "skip": skip})

    def _maybe_fail(self, operation: str, collection: Collection) -> None:
        for failure in self._failures:
            if failure["operation"] == operation and failure["collection"] == collection:
                if failure["skip"] > 0:
                    failure["skip"] -= 1
                    return
                self._failures.remove(failure)
                raise StorageError(f"Injected {operation} failure on {collection.value}")

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    async def _notify(self, collection: Collection, change_type: ChangeType, row: dict) -> None:
        event = ChangeEvent(
            collection=collection,
            change_type=change_type,
            record_id=row.get("id"),
            user_id=row.get("user_id"),
        )
        for user_id, callback in list(self._subscribers[collection]):
            if user_id != row.get("user_id"):
                continue
            try:
                await callback(event)
            except Exception as e:
                logger.warning(
                    "change_callback_failed",
                    collection=collection.value,
                    record_id=row.get("id"),
                    error=str(e),
                )

    # -------------------------------------------------------------------------
    # EntityStoreInterface
    # -------------------------------------------------------------------------

    async def insert_row(self, collection: Collection, row: dict) -> dict:
        self._maybe_fail("insert", collection)
        created = dict(row)
        created["id"] = next(self._ids[collection])
        if collection == Collection.FAMILY_MEMBERS and not created.get("created_at"):
            created["created_at"] = datetime.now(timezone.utc).isoformat()
        self._rows[collection][created["id"]] = created
        await self._notify(collection, ChangeType.INSERT, created)
        return dict(created)

    async def update_row(
        self,
        collection: Collection,
        row_id: int,
        fields: dict,
    ) -> Optional[dict]:
        self._maybe_fail("update", collection)
        existing = self._rows[collection].get(row_id)
        if existing is None:
            return None
        changes = {k: v for k, v in fields.items() if k not in ("id", "user_id")}
        existing.update(changes)
        await self._notify(collection, ChangeType.UPDATE, existing)
        return dict(existing)

    async def delete_row(self, collection: Collection, row_id: int) -> bool:
        self._maybe_fail("delete", collection)
        removed = self._rows[collection].pop(row_id, None)
        if removed is None:
            return False

        cascaded = []
        if collection == Collection.FAMILY_MEMBERS:
            accounts = self._rows[Collection.ACCOUNTS]
            for account_id in [i for i, a in accounts.items() if a.get("family_member_id") == row_id]:
                cascaded.append(accounts.pop(account_id))

        await self._notify(collection, ChangeType.DELETE, removed)
        for account in cascaded:
            await self._notify(Collection.ACCOUNTS, ChangeType.DELETE, account)
        return True

    async def select_rows(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> list[dict]:
        self._maybe_fail("select", collection)
        rows = [
            dict(row)
            for _, row in sorted(self._rows[collection].items())
            if all(row.get(k) == v for k, v in (filters or {}).items())
        ]
        if order_by:
            rows.sort(
                key=lambda r: (r.get(order_by) is None, r.get(order_by)),
                reverse=not ascending,
            )
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def subscribe(
        self,
        collection: Collection,
        user_id: str,
        callback: ChangeCallback,
    ) -> Subscription:
        entry = (user_id, callback)
        self._subscribers[collection].append(entry)

        async def close() -> None:
            if entry in self._subscribers[collection]:
                self._subscribers[collection].remove(entry)

        return Subscription(collection, user_id, close)
