"""
Activity Logger

Every write, balance adjustment and rejection is logged as a structured
event so a stale balance or a half-seeded account can be traced back to
the user action that caused it.

The logger:
- Writes to the local structured log only (no persisted edit history)
- Never raises; a logging failure must not fail the user's action
- Supports correlation IDs to tie the steps of one action together
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from household_budget.models.activity import (
    ActivityEvent,
    ActivityEventBuilder,
    ActivityEventType,
    ActivitySeverity,
)
from household_budget.models.entities import Collection


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route the structured log through stdlib logging at the given level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))


class ActivityLogger:
    """
    Central activity logging service.

    Keeps the most recent events in memory (bounded) so callers and tests
    can inspect what a flow did without parsing log output.
    """

    def __init__(self, history_size: int = 200):
        self._logger = structlog.get_logger("household_budget")
        self._history_size = history_size
        self._recent: list[ActivityEvent] = []

    @property
    def recent_events(self) -> list[ActivityEvent]:
        return list(self._recent)

    def events_of_type(self, event_type: ActivityEventType) -> list[ActivityEvent]:
        return [event for event in self._recent if event.event_type == event_type]

    def log(self, event: ActivityEvent) -> None:
        """Log an activity event."""
        self._recent.append(event)
        if len(self._recent) > self._history_size:
            del self._recent[0]

        log_dict = event.to_log_dict()
        try:
            if event.severity == ActivitySeverity.ERROR:
                self._logger.error("activity_event", **log_dict)
            elif event.severity == ActivitySeverity.WARNING:
                self._logger.warning("activity_event", **log_dict)
            elif event.severity == ActivitySeverity.DEBUG:
                self._logger.debug("activity_event", **log_dict)
            else:
                self._logger.info("activity_event", **log_dict)
        except Exception as e:
            logging.getLogger(__name__).warning("Failed to write activity event: %s", e)

    def log_entity_changed(
        self,
        event_type: ActivityEventType,
        collection: Collection,
        entity_id: Optional[int],
        user_id: str,
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(ActivityEventBuilder.entity_changed(
            event_type=event_type,
            collection=collection,
            entity_id=entity_id,
            user_id=user_id,
            description=description,
            details=details,
            correlation_id=correlation_id,
        ))

    def log_integrity_rejected(
        self,
        collection: Collection,
        entity_id: Optional[int],
        reason: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(ActivityEventBuilder.integrity_rejected(
            collection=collection,
            entity_id=entity_id,
            reason=reason,
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    def log_validation_failed(
        self,
        subject: str,
        issues: list[dict],
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(ActivityEventBuilder.validation_failed(
            subject=subject,
            issues=issues,
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    def log_partial_failure(
        self,
        operation: str,
        completed_steps: list[str],
        failed_step: str,
        error_message: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(ActivityEventBuilder.partial_failure(
            operation=operation,
            completed_steps=completed_steps,
            failed_step=failed_step,
            error_message=error_message,
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    def log_store_error(
        self,
        operation: str,
        error_message: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(ActivityEventBuilder.store_error(
            operation=operation,
            error_message=error_message,
            user_id=user_id,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., editing a transaction)
    and pass it through every write that action performs.
    """
    return uuid4()
