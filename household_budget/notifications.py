"""
User Feedback

Every user action ends in a short toast: success, error or info.
run_with_notification wraps an action so that expected failures become
an error toast instead of an exception, keeping the session usable.
"""

from enum import Enum
from typing import Any, Awaitable, Optional

import structlog
from pydantic import BaseModel

from household_budget.errors import (
    BudgetError,
    IntegrityViolationError,
    PartialFailureError,
    ValidationFailedError,
)
from household_budget.services.auth import AuthError
from household_budget.services.storage import (
    NotFoundError,
    StorageError,
    StoreConnectionError,
)


logger = structlog.get_logger(__name__)


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


class Notification(BaseModel):
    level: NotificationLevel
    message: str

    @classmethod
    def success(cls, message: str) -> "Notification":
        return cls(level=NotificationLevel.SUCCESS, message=message)

    @classmethod
    def error(cls, message: str) -> "Notification":
        return cls(level=NotificationLevel.ERROR, message=message)

    @classmethod
    def info(cls, message: str) -> "Notification":
        return cls(level=NotificationLevel.INFO, message=message)


def describe_error(exc: BaseException) -> str:
    """Human-readable message for a failed action."""
    if isinstance(exc, ValidationFailedError):
        return f"Please check your input: {exc}"
    if isinstance(exc, IntegrityViolationError):
        return str(exc)
    if isinstance(exc, PartialFailureError):
        return (
            f"The change was only partly saved ({len(exc.completed_steps)} step(s) done, "
            f"stopped at {exc.failed_step}). Please refresh and check your balances."
        )
    if isinstance(exc, NotFoundError):
        return "That item no longer exists. Please refresh."
    if isinstance(exc, StoreConnectionError):
        return "Could not reach the server. Please try again later."
    if isinstance(exc, StorageError):
        return "Saving failed. Please try again."
    if isinstance(exc, AuthError):
        return f"Authentication failed: {exc}"
    return "Something went wrong."


async def run_with_notification(
    action: Awaitable[Any],
    success_message: str,
    failure_prefix: Optional[str] = None,
) -> tuple[Notification, Any]:
    """
    Await an action and report the outcome as a notification.

    Returns:
        (notification, result); result is None when the action failed

    Budget, storage and auth errors are reported, not raised. Anything
    else is a bug and propagates.
    """
    try:
        result = await action
    except (BudgetError, StorageError, AuthError) as e:
        logger.info("action_failed", error_type=type(e).__name__, error=str(e))
        message = describe_error(e)
        if failure_prefix:
            message = f"{failure_prefix}: {message}"
        return Notification.error(message), None
    return Notification.success(success_message), result
