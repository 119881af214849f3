"""
Entity Store Interface

The store holds four collections (family members, categories, accounts,
transactions) as rows of JSON-compatible values. Backends implement
EntityStoreInterface; everything else talks to EntityStoreClient, the
typed wrapper that turns rows into models and models into rows.

Backends:
1. SupabaseEntityStore - hosted Postgres through PostgREST + Realtime
2. InMemoryEntityStore - tests and local runs

Rows are scoped by user_id. Backends do not enforce scoping beyond what
the caller filters on; the hosted store adds row-level security.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from household_budget.models.activity import ChangeEvent
from household_budget.models.entities import ENTITY_MODELS, Collection


ChangeCallback = Callable[[ChangeEvent], Awaitable[None]]


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class StoreConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class Subscription:
    """Handle returned by subscribe(); call unsubscribe() to stop delivery."""

    def __init__(
        self,
        collection: Collection,
        user_id: str,
        close: Callable[[], Awaitable[None]],
    ):
        self.collection = collection
        self.user_id = user_id
        self._close = close
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    async def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            await self._close()


class EntityStoreInterface(ABC):
    """
    Abstract interface for row storage.

    Any storage implementation (Supabase, in-memory, ...) must implement
    these methods. Failures raise StorageError subclasses.
    """

    @abstractmethod
    async def insert_row(self, collection: Collection, row: dict) -> dict:
        """
        Insert one row.

        Returns:
            The created row, including its generated id
        """
        pass

    @abstractmethod
    async def update_row(
        self,
        collection: Collection,
        row_id: int,
        fields: dict,
    ) -> Optional[dict]:
        """
        Update the given fields of one row.

        Returns:
            The updated row, or None if no row has that id
        """
        pass

    @abstractmethod
    async def delete_row(self, collection: Collection, row_id: int) -> bool:
        """
        Delete one row by id.

        Returns:
            True if a row was deleted
        """
        pass

    @abstractmethod
    async def select_rows(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """
        Select rows matching every equality filter.

        Args:
            collection: Collection to read
            filters: {column: value} equality filters, ANDed
            order_by: Column to order by
            ascending: Sort direction for order_by
            limit: Maximum number of rows
        """
        pass

    @abstractmethod
    async def subscribe(
        self,
        collection: Collection,
        user_id: str,
        callback: ChangeCallback,
    ) -> Subscription:
        """
        Invoke callback on every insert/update/delete of the user's rows.
        """
        pass


def to_row(payload: Union[BaseModel, dict]) -> dict:
    """Serialize a model or dict into JSON-compatible column values."""
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json")
    return to_jsonable_python(payload)


class EntityStoreClient:
    """
    Typed request/response wrapper over a store backend.

    Writes accept models or dicts; reads return the entity model for
    the collection (FamilyMember, Category, Account, Transaction).
    """

    def __init__(self, backend: EntityStoreInterface):
        self._backend = backend

    @property
    def backend(self) -> EntityStoreInterface:
        return self._backend

    @staticmethod
    def _to_model(collection: Collection, row: dict) -> Any:
        return ENTITY_MODELS[collection].model_validate(row)

    async def insert(self, collection: Collection, payload: Union[BaseModel, dict]) -> Any:
        row = await self._backend.insert_row(collection, to_row(payload))
        return self._to_model(collection, row)

    async def update(self, collection: Collection, row_id: int, fields: dict) -> Any:
        row = await self._backend.update_row(collection, row_id, to_row(fields))
        return self._to_model(collection, row) if row is not None else None

    async def delete(self, collection: Collection, row_id: int) -> bool:
        return await self._backend.delete_row(collection, row_id)

    async def get(self, collection: Collection, row_id: int) -> Any:
        rows = await self._backend.select_rows(collection, {"id": row_id}, limit=1)
        return self._to_model(collection, rows[0]) if rows else None

    async def select(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> list:
        rows = await self._backend.select_rows(
            collection,
            filters=to_row(filters) if filters else None,
            order_by=order_by,
            ascending=ascending,
            limit=limit,
        )
        return [self._to_model(collection, row) for row in rows]

    async def exists(self, collection: Collection, filters: dict[str, Any]) -> bool:
        return bool(await self._backend.select_rows(collection, to_row(filters), limit=1))

    async def subscribe(
        self,
        collection: Collection,
        user_id: str,
        callback: ChangeCallback,
    ) -> Subscription:
        return await self._backend.subscribe(collection, user_id, callback)
