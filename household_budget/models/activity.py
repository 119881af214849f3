"""
Activity and Change Models for Household Budget

Two kinds of events flow through the system:
1. ActivityEvent - a structured log record of something this process did
   (a write, a balance adjustment, a rejected delete). Written to the
   local structured log only; there is no persisted history of edits.
2. ChangeEvent - a notification from the store that a row in one of the
   four collections was inserted, updated or deleted. Consumers react by
   re-fetching the whole collection.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from household_budget.models.entities import Collection


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActivityEventType(str, Enum):
    """Types of activity we log."""
    # Family members
    FAMILY_MEMBER_ADDED = "family_member_added"
    FAMILY_MEMBER_UPDATED = "family_member_updated"
    FAMILY_MEMBER_DELETED = "family_member_deleted"

    # Categories
    CATEGORY_ADDED = "category_added"
    CATEGORY_UPDATED = "category_updated"
    CATEGORY_DELETED = "category_deleted"
    CATEGORIES_REORDERED = "categories_reordered"

    # Accounts
    ACCOUNT_ADDED = "account_added"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"

    # Transactions and balances
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    BALANCE_ADJUSTED = "balance_adjusted"
    BALANCE_ADJUSTMENT_SKIPPED = "balance_adjustment_skipped"

    # First use
    SEED_STARTED = "seed_started"
    SEED_COMPLETED = "seed_completed"
    SEED_SKIPPED = "seed_skipped"

    # Data refresh
    DATA_REFRESHED = "data_refreshed"
    CHANGE_RECEIVED = "change_received"

    # Rejections and failures
    VALIDATION_FAILED = "validation_failed"
    INTEGRITY_REJECTED = "integrity_rejected"
    PARTIAL_FAILURE = "partial_failure"
    STORE_ERROR = "store_error"


class ActivitySeverity(str, Enum):
    """Severity level for activity events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ActivityEvent(BaseModel):
    """A single structured activity record."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )
    event_type: ActivityEventType
    severity: ActivitySeverity = ActivitySeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Collection name of the entity (e.g., 'accounts')"
    )
    entity_id: Optional[int] = None
    user_id: Optional[str] = None

    # Ties together the steps of one user action
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class ActivityEventBuilder:
    """
    Helper class to build activity events with common patterns.

    Usage:
        event = ActivityEventBuilder.balance_adjusted(account_id, old, new, correlation_id)
    """

    @staticmethod
    def entity_changed(
        event_type: ActivityEventType,
        collection: Collection,
        entity_id: Optional[int],
        user_id: str,
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=event_type,
            entity_type=collection.value,
            entity_id=entity_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
        )

    @staticmethod
    def balance_adjusted(
        account_id: int,
        previous: Decimal,
        delta: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.BALANCE_ADJUSTED,
            entity_type=Collection.ACCOUNTS.value,
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Balance {previous} -> {previous + delta}",
            details={
                "previous_balance": str(previous),
                "delta": str(delta),
                "new_balance": str(previous + delta),
            },
        )

    @staticmethod
    def balance_adjustment_skipped(
        account_id: int,
        delta: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.BALANCE_ADJUSTMENT_SKIPPED,
            severity=ActivitySeverity.WARNING,
            entity_type=Collection.ACCOUNTS.value,
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account {account_id} not found; balance not adjusted",
            details={"delta": str(delta)},
        )

    @staticmethod
    def seed_completed(
        user_id: str,
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.SEED_COMPLETED,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Default family members, categories and accounts created",
            details={"created": counts},
        )

    @staticmethod
    def seed_skipped(
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.SEED_SKIPPED,
            severity=ActivitySeverity.DEBUG,
            user_id=user_id,
            correlation_id=correlation_id,
            description="User already has family members; seeding skipped",
        )

    @staticmethod
    def integrity_rejected(
        collection: Collection,
        entity_id: Optional[int],
        reason: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.INTEGRITY_REJECTED,
            severity=ActivitySeverity.WARNING,
            entity_type=collection.value,
            entity_id=entity_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Rejected: {reason}",
        )

    @staticmethod
    def validation_failed(
        subject: str,
        issues: list[dict],
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.VALIDATION_FAILED,
            severity=ActivitySeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"{subject.capitalize()} validation failed with {len(issues)} issues",
            details={"subject": subject, "issues": issues},
        )

    @staticmethod
    def partial_failure(
        operation: str,
        completed_steps: list[str],
        failed_step: str,
        error_message: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.PARTIAL_FAILURE,
            severity=ActivitySeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"{operation} stopped at '{failed_step}' after {len(completed_steps)} writes",
            details={
                "operation": operation,
                "completed_steps": completed_steps,
                "failed_step": failed_step,
            },
            error_message=error_message,
        )

    @staticmethod
    def store_error(
        operation: str,
        error_message: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.STORE_ERROR,
            severity=ActivitySeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Store error during {operation}",
            error_message=error_message,
        )


# =============================================================================
# STORE CHANGE NOTIFICATIONS
# =============================================================================

class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """A row in a collection changed for a given user."""

    collection: Collection
    change_type: ChangeType
    record_id: Optional[int] = None
    user_id: Optional[str] = None
    received_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_realtime_payload(cls, collection: Collection, payload: dict) -> "ChangeEvent":
        """
        Build from a Supabase realtime postgres_changes payload.

        Payloads nest the change under "data" with "type", "record" and
        "old_record" (deletes only carry the old record).
        """
        data = payload.get("data", payload)
        change_type = data.get("type") or data.get("eventType") or ChangeType.UPDATE.value
        record = data.get("record") or data.get("old_record") or {}
        return cls(
            collection=collection,
            change_type=ChangeType(str(change_type).upper()),
            record_id=record.get("id"),
            user_id=record.get("user_id"),
        )
