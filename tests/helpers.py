"""
Shared test data: a signed-in user and the records most tests start from.
"""

from datetime import datetime, timezone
from decimal import Decimal

from aivest_backup.models import (
    Budget,
    Expense,
    ExpenseCategory,
    SavingsGoal,
)


USER_ID = "firebase-uid-123"
USER_EMAIL = "asha@example.com"


def food_expense(expense_id: str = "1700000000000", amount: str = "500") -> Expense:
    return Expense(
        id=expense_id,
        amount=Decimal(amount),
        category=ExpenseCategory.FOOD_AND_DINING,
        description="Lunch",
        date=datetime(2024, 12, 1, 13, 0, tzinfo=timezone.utc),
        created_at=datetime(2024, 12, 1, 13, 5, tzinfo=timezone.utc),
    )


def food_limit(amount: str = "5000") -> Budget:
    return Budget(
        amount=Decimal(amount),
        updated_at=datetime(2024, 11, 30, 9, 0, tzinfo=timezone.utc),
    )


def rainy_day_goal() -> SavingsGoal:
    return SavingsGoal(
        id="1700000000001",
        name="Rainy day",
        target=Decimal("20000"),
        current=Decimal("1500"),
    )
