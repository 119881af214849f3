"""
Two-Stage Validation of User Input

STAGE 1 - SCHEMA VALIDATION:
- Required fields present, values well formed
- Pydantic drafts already enforce most of this; drafts that fail to
  build are reported through ValidationFailedError.from_pydantic

STAGE 2 - SEMANTIC VALIDATION:
- Referenced family member exists for this user
- The account belongs to this user and to the chosen family member;
  a missing account is only a warning, since the balance step is skipped
- Suspicious values (unknown category, huge amounts, far-future dates)

Errors block the write. Warnings are returned for the UI to show.
Validation NEVER fixes input; it reports.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from household_budget.config import AppSettings, get_settings
from household_budget.errors import ValidationFailedError
from household_budget.models.entities import (
    AccountDraft,
    Collection,
    TransactionDraft,
)
from household_budget.models.validation import ValidationIssue, ValidationResult
from household_budget.services.storage import EntityStoreClient


class EntryValidator:
    """
    Validates drafts before they are written.

    Stage 2 needs the store to resolve references; without one only
    stage 1 runs.
    """

    def __init__(
        self,
        store: Optional[EntityStoreClient] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().app

    def validate_name(self, subject: str, name: Optional[str]) -> ValidationResult:
        """Names of members, categories and accounts: non-blank, bounded."""
        issues = []
        value = (name or "").strip()
        if not value:
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message=f"Please enter a {subject} name",
                severity="error",
            ))
        elif len(value) > 100:
            issues.append(ValidationIssue(
                field="name",
                issue_type="invalid_value",
                message=f"The {subject} name is too long (max 100 characters)",
                severity="error",
            ))

        schema_valid = not any(issue.severity == "error" for issue in issues)
        return ValidationResult(
            subject=subject,
            schema_valid=schema_valid,
            semantic_valid=schema_valid,
            issues=issues,
        )

    async def validate_transaction(
        self,
        user_id: str,
        draft: TransactionDraft,
        check_references: bool = True,
    ) -> ValidationResult:
        """
        Run both stages for a transaction draft.

        Edits that keep the member and account skip the reference checks,
        so a transaction whose account was removed can still be edited.
        """
        # Stage 1 already happened: the draft could not exist otherwise
        issues = []
        if check_references:
            issues = await self._check_transaction_references(user_id, draft)
        issues.extend(self._check_transaction_values(draft))
        semantic_valid = not any(issue.severity == "error" for issue in issues)

        return ValidationResult(
            subject="transaction",
            schema_valid=True,
            semantic_valid=semantic_valid,
            issues=issues,
        )

    async def validate_account(self, user_id: str, draft: AccountDraft) -> ValidationResult:
        result = self.validate_name("account", draft.name)
        if not result.is_valid or self._store is None:
            return result

        member = await self._store.get(Collection.FAMILY_MEMBERS, draft.family_member_id)
        if member is None or member.user_id != user_id:
            result.issues.append(ValidationIssue(
                field="family_member_id",
                issue_type="not_found",
                message="The selected family member no longer exists",
                severity="error",
                suggested_fix="Refresh and pick a family member again",
            ))
            result.semantic_valid = False
        return result

    async def _check_transaction_references(
        self,
        user_id: str,
        draft: TransactionDraft,
    ) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        if self._store is None:
            return issues

        member = await self._store.get(Collection.FAMILY_MEMBERS, draft.family_member_id)
        if member is None or member.user_id != user_id:
            issues.append(ValidationIssue(
                field="family_member_id",
                issue_type="not_found",
                message="The selected family member no longer exists",
                severity="error",
                suggested_fix="Refresh and pick a family member again",
            ))

        # A missing account only skips the balance step; the write goes ahead
        account = await self._store.get(Collection.ACCOUNTS, draft.account_id)
        if account is None:
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="not_found",
                message="The selected account no longer exists; no balance will change",
                severity="warning",
                suggested_fix="Refresh and pick an account again",
            ))
        elif account.user_id != user_id:
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="foreign_account",
                message="The selected account is not one of yours",
                severity="error",
            ))
        elif account.family_member_id != draft.family_member_id:
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="mismatch",
                message=f"Account '{account.name}' belongs to another family member",
                severity="error",
                suggested_fix="Pick one of the selected family member's accounts",
            ))

        known = await self._store.exists(
            Collection.CATEGORIES,
            {"user_id": user_id, "type": draft.type, "name": draft.category},
        )
        if not known:
            issues.append(ValidationIssue(
                field="category",
                issue_type="unknown_category",
                message=f"'{draft.category}' is not one of your {draft.type.value} categories",
                severity="warning",
            ))
        return issues

    def _check_transaction_values(self, draft: TransactionDraft) -> list[ValidationIssue]:
        issues = []
        max_amount = Decimal(str(self._settings.max_transaction_amount))
        if draft.amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({draft.amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))
        if draft.date > date.today() + timedelta(days=366):
            issues.append(ValidationIssue(
                field="date",
                issue_type="suspicious_value",
                message=f"Date {draft.date.isoformat()} is more than a year ahead",
                severity="warning",
            ))
        return issues

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """One message suitable for a toast."""
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []
        for issue in result.issues:
            if issue.severity == "error":
                lines.append(issue.message)
        for warning in result.warnings:
            lines.append(f"Note: {warning}")
        return "\n".join(lines)


def ensure_valid(result: ValidationResult) -> ValidationResult:
    """Raise ValidationFailedError if the result carries errors."""
    if result.has_errors:
        raise ValidationFailedError(result)
    return result
