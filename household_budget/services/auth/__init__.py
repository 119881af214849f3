"""Identity provider package."""

from household_budget.services.auth.interface import (
    AuthError,
    AuthProviderInterface,
    AuthSession,
    AuthUser,
    Credentials,
)
from household_budget.services.auth.supabase_auth import SupabaseAuthProvider

__all__ = [
    "AuthError",
    "AuthProviderInterface",
    "AuthSession",
    "AuthUser",
    "Credentials",
    "SupabaseAuthProvider",
]
