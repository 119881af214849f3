"""Services package."""

from household_budget.services.auth import (
    AuthError,
    AuthProviderInterface,
    AuthSession,
    AuthUser,
    SupabaseAuthProvider,
)
from household_budget.services.storage import (
    EntityStoreClient,
    EntityStoreInterface,
    InMemoryEntityStore,
    NotFoundError,
    StorageError,
    StoreConnectionError,
    SupabaseConnection,
    SupabaseEntityStore,
)

__all__ = [
    # Auth
    "AuthError",
    "AuthProviderInterface",
    "AuthSession",
    "AuthUser",
    "SupabaseAuthProvider",
    # Storage
    "EntityStoreClient",
    "EntityStoreInterface",
    "InMemoryEntityStore",
    "NotFoundError",
    "StorageError",
    "StoreConnectionError",
    "SupabaseConnection",
    "SupabaseEntityStore",
]
