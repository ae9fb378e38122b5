from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional


@dataclass
class Expense:
    id: Optional[int]
    owner_id: int
    category_id: int
    expense_date: date
    amount: Decimal  # always positive, two decimal places
    description: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert expense to dictionary for database storage."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "category_id": self.category_id,
            "expense_date": self.expense_date.isoformat(),
            "amount": str(self.amount),
            "description": self.description,
        }
