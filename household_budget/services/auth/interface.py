"""
Identity Provider Interface

Sign-in, sign-up, sign-out and a current-user accessor. The budget
services never talk to the identity provider; they receive the user id
of whoever AuthSession says is signed in.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from household_budget.errors import ValidationFailedError


class AuthError(Exception):
    """Sign-in, sign-up or sign-out was refused or failed."""
    pass


class Credentials(BaseModel):
    """Email and password as entered on the sign-in form."""
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=6)


class AuthUser(BaseModel):
    """The signed-in user."""

    id: str
    email: Optional[str] = None


class AuthProviderInterface(ABC):
    """Abstract identity provider."""

    @abstractmethod
    async def sign_in(self, credentials: Credentials) -> AuthUser:
        pass

    @abstractmethod
    async def sign_up(self, credentials: Credentials) -> Optional[AuthUser]:
        """
        Register a new user.

        Returns None when the provider requires email confirmation
        before the user can sign in.
        """
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        pass

    @abstractmethod
    async def current_user(self) -> Optional[AuthUser]:
        """Restore the user from an existing session, if any."""
        pass


def _credentials(email: str, password: str) -> Credentials:
    try:
        return Credentials(email=email, password=password)
    except ValidationError as e:
        raise ValidationFailedError.from_pydantic("credentials", e) from e


class AuthSession:
    """
    Current-user accessor with a session-loading flag.

    loading is True until restore() finishes and while any sign-in,
    sign-up or sign-out call is in flight.
    """

    def __init__(self, provider: AuthProviderInterface):
        self._provider = provider
        self._user: Optional[AuthUser] = None
        self._loading = True

    @property
    def user(self) -> Optional[AuthUser]:
        return self._user

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def signed_in(self) -> bool:
        return self._user is not None

    async def restore(self) -> Optional[AuthUser]:
        self._loading = True
        try:
            self._user = await self._provider.current_user()
        finally:
            self._loading = False
        return self._user

    async def sign_in(self, email: str, password: str) -> AuthUser:
        self._loading = True
        try:
            self._user = await self._provider.sign_in(_credentials(email, password))
        finally:
            self._loading = False
        return self._user

    async def sign_up(self, email: str, password: str) -> Optional[AuthUser]:
        self._loading = True
        try:
            user = await self._provider.sign_up(_credentials(email, password))
            if user is not None:
                self._user = user
        finally:
            self._loading = False
        return user

    async def sign_out(self) -> None:
        self._loading = True
        try:
            await self._provider.sign_out()
            self._user = None
        finally:
            self._loading = False
