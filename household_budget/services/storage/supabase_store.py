"""
Supabase Storage Implementation

Rows live in four Postgres tables exposed through PostgREST:
family_members, categories, accounts, transactions. Row-level security
restricts every table to the signed-in user's rows; we still filter on
user_id explicitly so queries read the same against any backend.

TRADEOFFS:
- No multi-row transactions through PostgREST (the ledger writes in
  sequence and reports partial failures)
- Realtime delivers "something changed" notifications; consumers
  re-fetch instead of applying diffs
- Only the connection handshake is retried; reads and writes fail fast
"""

import asyncio
from typing import Any, Optional

import structlog
from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from household_budget.config import get_settings
from household_budget.models.activity import ChangeEvent
from household_budget.models.entities import Collection
from household_budget.services.storage.interface import (
    ChangeCallback,
    EntityStoreInterface,
    StorageError,
    StoreConnectionError,
    Subscription,
)


logger = structlog.get_logger(__name__)


class SupabaseConnection:
    """
    Lazily established Supabase async client.

    Shared by the entity store and the auth provider so both see the
    same session (PostgREST calls carry the signed-in user's JWT).
    """

    def __init__(self, client: Optional[AsyncClient] = None):
        self._client = client
        self._lock = asyncio.Lock()

    async def connect(self) -> AsyncClient:
        """Create the client on first use, retrying the handshake."""
        if self._client is not None:
            return self._client

        async with self._lock:
            if self._client is None:
                settings = get_settings().supabase
                options = AsyncClientOptions(schema=settings.schema_name)
                try:
                    async for attempt in AsyncRetrying(
                        stop=stop_after_attempt(settings.connect_attempts),
                        wait=wait_exponential(multiplier=1, min=2, max=10),
                        reraise=True,
                    ):
                        with attempt:
                            self._client = await acreate_client(
                                settings.url,
                                settings.key,
                                options=options,
                            )
                except Exception as e:
                    raise StoreConnectionError(f"Failed to connect to Supabase: {e}") from e
        return self._client


class SupabaseEntityStore(EntityStoreInterface):
    """Supabase implementation of the entity store."""

    def __init__(self, connection: Optional[SupabaseConnection] = None):
        self._connection = connection or SupabaseConnection()
        # Realtime callbacks are sync; keep scheduled handlers alive until done
        self._pending: set[asyncio.Task] = set()

    async def _table(self, collection: Collection):
        client = await self._connection.connect()
        return client.table(collection.value)

    async def insert_row(self, collection: Collection, row: dict) -> dict:
        try:
            table = await self._table(collection)
            response = await table.insert(row).execute()
        except StoreConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert into {collection.value}: {e}") from e

        if not response.data:
            raise StorageError(f"Insert into {collection.value} returned no row")
        return response.data[0]

    async def update_row(
        self,
        collection: Collection,
        row_id: int,
        fields: dict,
    ) -> Optional[dict]:
        try:
            table = await self._table(collection)
            response = await table.update(fields).eq("id", row_id).execute()
        except StoreConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {collection.value} {row_id}: {e}") from e

        return response.data[0] if response.data else None

    async def delete_row(self, collection: Collection, row_id: int) -> bool:
        try:
            table = await self._table(collection)
            response = await table.delete().eq("id", row_id).execute()
        except StoreConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete {collection.value} {row_id}: {e}") from e

        return bool(response.data)

    async def select_rows(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> list[dict]:
        try:
            table = await self._table(collection)
            query = table.select("*")
            for column, value in (filters or {}).items():
                query = query.eq(column, value)
            if order_by:
                query = query.order(order_by, desc=not ascending)
            if limit is not None:
                query = query.limit(limit)
            response = await query.execute()
        except StoreConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {collection.value}: {e}") from e

        return response.data or []

    async def subscribe(
        self,
        collection: Collection,
        user_id: str,
        callback: ChangeCallback,
    ) -> Subscription:
        client = await self._connection.connect()
        schema = get_settings().supabase.schema_name

        def on_change(payload: dict) -> None:
            event = ChangeEvent.from_realtime_payload(collection, payload)
            task = asyncio.ensure_future(callback(event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        channel = client.channel(f"{collection.value}_changes")
        channel.on_postgres_changes(
            event="*",
            callback=on_change,
            schema=schema,
            table=collection.value,
            filter=f"user_id=eq.{user_id}",
        )
        try:
            await channel.subscribe()
        except Exception as e:
            raise StorageError(f"Failed to subscribe to {collection.value}: {e}") from e

        logger.debug("realtime_subscribed", collection=collection.value, user_id=user_id)

        async def close() -> None:
            await client.remove_channel(channel)

        return Subscription(collection, user_id, close)
