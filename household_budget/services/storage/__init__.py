"""
Storage Services Package

Provides the abstract store interface, the typed client every service
talks to, and two backends: Supabase (hosted) and in-memory.
"""

from household_budget.services.storage.interface import (
    ChangeCallback,
    EntityStoreClient,
    EntityStoreInterface,
    NotFoundError,
    StorageError,
    StoreConnectionError,
    Subscription,
    to_row,
)
from household_budget.services.storage.memory import InMemoryEntityStore
from household_budget.services.storage.supabase_store import (
    SupabaseConnection,
    SupabaseEntityStore,
)

__all__ = [
    # Interfaces
    "ChangeCallback",
    "EntityStoreClient",
    "EntityStoreInterface",
    "Subscription",
    "to_row",
    # Exceptions
    "NotFoundError",
    "StorageError",
    "StoreConnectionError",
    # Implementations
    "InMemoryEntityStore",
    "SupabaseConnection",
    "SupabaseEntityStore",
]
