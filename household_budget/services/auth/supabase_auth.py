"""
Supabase Auth Provider

Email/password authentication through Supabase Auth. Shares the
SupabaseConnection with the entity store so table calls carry the
signed-in user's token and row-level security applies.
"""

from typing import Any, Optional

import structlog

from household_budget.services.auth.interface import (
    AuthError,
    AuthProviderInterface,
    AuthUser,
    Credentials,
)
from household_budget.services.storage.supabase_store import SupabaseConnection


logger = structlog.get_logger(__name__)


def _to_auth_user(user: Any) -> Optional[AuthUser]:
    if user is None:
        return None
    return AuthUser(id=str(user.id), email=getattr(user, "email", None))


class SupabaseAuthProvider(AuthProviderInterface):
    """Supabase implementation of the identity provider."""

    def __init__(self, connection: Optional[SupabaseConnection] = None):
        self._connection = connection or SupabaseConnection()

    async def sign_in(self, credentials: Credentials) -> AuthUser:
        client = await self._connection.connect()
        try:
            response = await client.auth.sign_in_with_password({
                "email": credentials.email,
                "password": credentials.password,
            })
        except Exception as e:
            raise AuthError(f"Sign-in failed: {e}") from e

        user = _to_auth_user(response.user)
        if user is None:
            raise AuthError("Sign-in failed: no user returned")
        logger.info("signed_in", user_id=user.id)
        return user

    async def sign_up(self, credentials: Credentials) -> Optional[AuthUser]:
        client = await self._connection.connect()
        try:
            response = await client.auth.sign_up({
                "email": credentials.email,
                "password": credentials.password,
            })
        except Exception as e:
            raise AuthError(f"Sign-up failed: {e}") from e

        # No session means the project requires email confirmation first
        if response.session is None:
            logger.info("sign_up_pending_confirmation", email=credentials.email)
            return None
        return _to_auth_user(response.user)

    async def sign_out(self) -> None:
        client = await self._connection.connect()
        try:
            await client.auth.sign_out()
        except Exception as e:
            raise AuthError(f"Sign-out failed: {e}") from e

    async def current_user(self) -> Optional[AuthUser]:
        client = await self._connection.connect()
        try:
            session = await client.auth.get_session()
        except Exception as e:
            raise AuthError(f"Could not restore session: {e}") from e

        if session is None:
            return None
        return _to_auth_user(session.user)
