"""
Domain exceptions.

Store failures live with the storage interface
(household_budget.services.storage.interface); everything the
services raise on their own is defined here.
"""

from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from household_budget.models.validation import ValidationIssue, ValidationResult


class BudgetError(Exception):
    """Base class for errors raised by the budget services."""
    pass


class ValidationFailedError(BudgetError):
    """User input was rejected; nothing was written."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = [issue.message for issue in result.issues if issue.severity == "error"]
        super().__init__("; ".join(messages) or f"Invalid {result.subject}")

    @classmethod
    def from_pydantic(cls, subject: str, exc: PydanticValidationError) -> "ValidationFailedError":
        """Wrap a pydantic ValidationError raised while building a draft."""
        issues = []
        for error in exc.errors():
            field = ".".join(str(part) for part in error.get("loc", ())) or subject
            issues.append(ValidationIssue(
                field=field,
                issue_type=error.get("type", "invalid_value"),
                message=f"{field}: {error.get('msg', 'invalid value')}",
                severity="error",
            ))
        return cls(ValidationResult(
            subject=subject,
            schema_valid=False,
            semantic_valid=False,
            issues=issues,
        ))


class IntegrityViolationError(BudgetError):
    """
    A destructive action would break a cross-entity rule.

    Examples: deleting a category still used by a transaction,
    deleting the last remaining family member.
    """
    pass


class PartialFailureError(BudgetError):
    """
    A multi-step write stopped partway.

    The completed steps are persisted and are NOT rolled back.
    """

    def __init__(
        self,
        operation: str,
        completed_steps: list[str],
        failed_step: str,
        cause: Optional[BaseException] = None,
    ):
        self.operation = operation
        self.completed_steps = list(completed_steps)
        self.failed_step = failed_step
        self.cause = cause
        super().__init__(
            f"{operation} failed at '{failed_step}' after completing "
            f"{len(self.completed_steps)} step(s): {cause}"
        )
