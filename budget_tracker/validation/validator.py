"""
Transaction Validation

Two layers of checks guard every write:

LAYER 1 - SCHEMA (pydantic models):
- Types, required fields, formats
- Non-negative amounts with at most two decimal places
- Non-empty description, known category values

LAYER 2 - BUSINESS RULES (this module):
- Category required for expenses
- Amount within the configured sanity ceiling

Layer 2 runs on the create payload and on the merged record of an update,
so a partial update can't sneak an expense past the category rule.
Validation never silently fixes an error; it reports field-level issues.
The one normalization, dropping an income's category, happens in the model.
"""

from decimal import Decimal
from typing import Optional

from budget_tracker.config import get_settings
from budget_tracker.models.transaction import (
    Transaction,
    TransactionCreate,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)


class TransactionValidationError(Exception):
    """A transaction failed the business rules."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        super().__init__("; ".join(f"{i.field}: {i.message}" for i in issues))


class TransactionValidator:
    """Checks the cross-field rules the schema can't express."""

    def __init__(self, max_amount: Optional[Decimal] = None):
        """
        Initialize validator.

        Args:
            max_amount: Largest amount a transaction may carry.
                       Defaults to the configured ceiling.
        """
        if max_amount is None:
            max_amount = get_settings().app.max_transaction_amount
        self._max_amount = max_amount

    def _check(
        self,
        transaction_type: TransactionType,
        amount: Decimal,
        category: Optional[str],
    ) -> ValidationResult:
        issues = []

        if transaction_type == TransactionType.EXPENSE and category is None:
            issues.append(ValidationIssue(
                field="category",
                type="missing",
                message="Please select a category for expenses",
            ))

        if amount > self._max_amount:
            issues.append(ValidationIssue(
                field="amount",
                type="out_of_range",
                message=f"Amount exceeds the maximum of {self._max_amount}",
            ))

        return ValidationResult(issues=issues)

    def validate_new(self, payload: TransactionCreate) -> ValidationResult:
        """Validate a create payload."""
        return self._check(payload.type, payload.amount, payload.category)

    def validate_merged(
        self,
        existing: Transaction,
        changes: dict,
    ) -> ValidationResult:
        """
        Validate the record an update would produce.

        Args:
            existing: The stored transaction
            changes: Fields the caller sent (``exclude_unset`` dump)
        """
        transaction_type = changes.get("type", existing.type)
        amount = changes.get("amount", existing.amount)
        category = changes.get("category", existing.category)
        return self._check(transaction_type, amount, category)

    def ensure_valid(self, result: ValidationResult) -> None:
        """Raise if ``result`` has issues."""
        if not result.is_valid:
            raise TransactionValidationError(result.issues)
