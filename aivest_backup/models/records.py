"""
Financial Record Models

The four record collections the app keeps locally: ledger entries
(expenses), category limits (budgets), the single savings target
(emergency fund) and named savings goals.

DESIGN DECISION: Python attributes are snake_case, the stored form is
camelCase. The local key-value store and the remote backup document
both use the camelCase names, so every model dumps with by_alias=True.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class RecordModel(BaseModel):
    """Base for every persisted model: camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_storage_dict(self) -> dict:
        """JSON-safe dict using the stored (camelCase) field names."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# ENUMS
# =============================================================================

class ExpenseCategory(str, Enum):
    """Spending categories offered by the expense screen."""
    FOOD_AND_DINING = "Food & Dining"
    TRANSPORTATION = "Transportation"
    SHOPPING = "Shopping"
    ENTERTAINMENT = "Entertainment"
    BILLS_AND_UTILITIES = "Bills & Utilities"
    HEALTHCARE = "Healthcare"
    EDUCATION = "Education"
    TRAVEL = "Travel"
    OTHER = "Other"


class GoalCategory(str, Enum):
    """Savings goal horizons."""
    EMERGENCY_FUND = "Emergency Fund"
    SHORT_TERM = "Short Term"
    LONG_TERM = "Long Term"
    INVESTMENT = "Investment"


class GoalPriority(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


# =============================================================================
# RECORDS
# =============================================================================

class Expense(RecordModel):
    """A single ledger entry."""

    id: str = Field(
        ...,
        min_length=1,
        description="Local record identifier"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Amount spent in INR"
    )
    category: ExpenseCategory
    description: Optional[str] = Field(
        default=None,
        max_length=500
    )
    date: datetime = Field(
        ...,
        description="When the money was spent"
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="When the entry was recorded"
    )


class Budget(RecordModel):
    """A monthly spending limit for one category."""

    amount: Decimal = Field(
        ...,
        ge=0,
        description="Limit in INR"
    )
    updated_at: datetime = Field(
        default_factory=utc_now
    )


class EmergencyFund(RecordModel):
    """
    The single savings target record.

    updated_at is None until the user sets a target for the first time.
    """

    target: Decimal = Field(default=Decimal("0"), ge=0)
    current: Decimal = Field(default=Decimal("0"), ge=0)
    updated_at: Optional[datetime] = None

    @property
    def is_set(self) -> bool:
        return self.updated_at is not None


class SavingsGoal(RecordModel):
    """A named savings goal."""

    id: str = Field(..., min_length=1)
    name: str = Field(
        ...,
        min_length=1,
        max_length=200
    )
    target: Decimal = Field(..., ge=0)
    current: Decimal = Field(default=Decimal("0"), ge=0)
    target_date: Optional[date] = None
    category: Optional[GoalCategory] = None
    priority: Optional[GoalPriority] = None
    created_at: datetime = Field(
        default_factory=utc_now
    )
