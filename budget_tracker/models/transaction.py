"""
Core Data Models for the Budget Tracker

These models define the strict schemas for all data flowing through the system.
The same models are used by the HTTP layer, the service layer and the
storage backends, so a transaction has exactly one shape everywhere.

Wire format: field names are camelCase on the wire (``createdAt``,
``categoryBreakdown``) and snake_case in Python. Both spellings are accepted
on input.

Money is always ``Decimal`` with two decimal places. Floats never touch an
amount.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


CENTS = Decimal("0.01")

# Field names below shadow the ``date`` type inside class bodies.
CalendarDate = date


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def quantize_amount(value: Decimal) -> Decimal:
    """Round an amount to exactly two decimal places."""
    return value.quantize(CENTS)


class CamelModel(BaseModel):
    """Base model with camelCase aliases for the JSON contract."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money flow."""
    INCOME = "income"
    EXPENSE = "expense"


class ExpenseCategory(str, Enum):
    """
    Closed set of expense categories.

    Categories only apply to expenses. Income never carries one.
    """
    FOOD = "food"
    TRANSPORTATION = "transportation"
    ENTERTAINMENT = "entertainment"
    RENT = "rent"
    UTILITIES = "utilities"
    SHOPPING = "shopping"
    HEALTHCARE = "healthcare"
    OTHER = "other"


# =============================================================================
# TRANSACTION MODELS
# =============================================================================

class TransactionCreate(CamelModel):
    """
    Payload for creating a transaction.

    Field-level rules live here. The cross-field rule (category required
    for expenses) is checked by ``TransactionValidator`` so the caller gets
    a field-level issue instead of a generic model error.
    """

    type: TransactionType
    amount: Decimal = Field(
        ...,
        ge=0,
        max_digits=14,
        decimal_places=2,
        description="Amount in the account currency"
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="What the money was for"
    )
    date: CalendarDate
    category: Optional[ExpenseCategory] = None

    @field_validator("amount")
    @classmethod
    def normalize_amount(cls, v: Decimal) -> Decimal:
        return quantize_amount(v)


class TransactionUpdate(CamelModel):
    """
    Partial update payload.

    Only the fields the caller actually sent are merged; use
    ``model_dump(exclude_unset=True)`` to get them.
    """

    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        max_digits=14,
        decimal_places=2,
    )
    description: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=500,
    )
    date: Optional[CalendarDate] = None
    category: Optional[ExpenseCategory] = None

    @field_validator("amount")
    @classmethod
    def normalize_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is None:
            return v
        return quantize_amount(v)

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "TransactionUpdate":
        """An explicit null is only meaningful for ``category``."""
        for name in ("type", "amount", "description", "date"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class Transaction(CamelModel):
    """
    A stored income or expense event.

    INVARIANT: a transaction belongs to exactly one user. Every storage
    operation is scoped by ``user_id``.
    """

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    user_id: str = Field(
        ...,
        min_length=1,
        description="Owner identity"
    )

    type: TransactionType
    amount: Decimal = Field(..., ge=0, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=500)
    date: CalendarDate
    category: Optional[ExpenseCategory] = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("amount")
    @classmethod
    def normalize_amount(cls, v: Decimal) -> Decimal:
        return quantize_amount(v)

    @model_validator(mode="after")
    def enforce_category_rule(self) -> "Transaction":
        """Income never has a category; expenses always do."""
        if self.type == TransactionType.INCOME:
            self.category = None
        elif self.category is None:
            raise ValueError("Category is required for expenses")
        return self

    @classmethod
    def from_payload(
        cls,
        user_id: str,
        payload: TransactionCreate,
    ) -> "Transaction":
        """Build a new record owned by ``user_id``."""
        return cls(user_id=user_id, **payload.model_dump())

    def merged_with(self, changes: dict) -> "Transaction":
        """
        Return a copy with ``changes`` applied and ``updated_at`` refreshed.

        The copy is re-validated, so a merge that breaks the category rule
        raises ``ValueError``.
        """
        data = self.model_dump()
        data.update(changes)
        data["updated_at"] = utc_now()
        return Transaction.model_validate(data)


# =============================================================================
# USER MODELS
# =============================================================================

class UserProfile(CamelModel):
    """Profile forwarded by the identity provider. Pass-through data."""

    id: str = Field(..., min_length=1)
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None


class User(UserProfile):
    """Stored user record."""

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# SUMMARY MODELS
# =============================================================================

class CategoryTotal(CamelModel):
    """Sum of expenses for one category."""

    category: ExpenseCategory
    amount: Decimal


class MonthlySummary(CamelModel):
    """
    Derived view of one user's month. Never stored.

    All amounts are quantized to two decimal places, so they serialize as
    e.g. ``"35.00"``.
    """

    year: int
    month: int
    total_income: Decimal = Decimal("0.00")
    total_expenses: Decimal = Decimal("0.00")
    balance: Decimal = Decimal("0.00")
    category_breakdown: list[CategoryTotal] = Field(default_factory=list)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single field-level validation problem."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    type: str = Field(
        ...,
        description="Kind of issue (e.g., 'missing', 'out_of_range')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )


class ValidationResult(BaseModel):
    """Outcome of validating a transaction."""

    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    @property
    def error_count(self) -> int:
        return len(self.issues)
