"""Expense service for database operations."""

import sqlite3
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from errors import FieldError, StorageError, ValidationError
from models.expense import Expense

_CENTS = Decimal("0.01")


class ExpenseService:
    """Service for managing expense records."""

    def __init__(self, db_manager):
        """Initialize the expense service.

        Args:
            db_manager: Database manager instance for database operations.
        """
        self.db_manager = db_manager

    def create(
        self,
        owner_id: int,
        category_id: int,
        amount,
        expense_date: date,
        description: Optional[str] = None,
    ) -> Expense:
        """Record an expense under a category.

        Args:
            owner_id: ID of the user the expense belongs to.
            category_id: Category the expense is filed under.
            amount: Positive amount; anything Decimal() accepts.
            expense_date: Date the money was spent.
            description: Optional free text.

        Returns:
            The created Expense with id populated.

        Raises:
            ValidationError: If the amount is not a positive number.
            StorageError: If the insert fails (e.g. unknown category).
        """
        try:
            value = Decimal(str(amount)).quantize(_CENTS)
        except InvalidOperation:
            raise ValidationError([FieldError("amount", f"Invalid amount: {amount}")])
        if not value.is_finite():
            raise ValidationError([FieldError("amount", f"Invalid amount: {amount}")])
        if value <= 0:
            raise ValidationError([FieldError("amount", "Amount must be positive.")])

        expense = Expense(
            id=None,
            owner_id=owner_id,
            category_id=category_id,
            expense_date=expense_date,
            amount=value,
            description=description,
        )

        try:
            with self.db_manager.connect() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO expenses (owner_id, category_id, expense_date, amount, description)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        expense.owner_id,
                        expense.category_id,
                        expense.expense_date.isoformat(),
                        str(expense.amount),
                        expense.description,
                    ),
                )
                self.db_manager.commit(conn)
                expense.id = cursor.lastrowid
        except sqlite3.Error as e:
            raise StorageError(f"Failed to create expense: {e}") from e

        return expense

    def find(self, expense_id: int) -> Optional[Expense]:
        """Get a single expense by ID.

        Args:
            expense_id: The expense ID to find.

        Returns:
            Expense object if found, None otherwise.
        """
        try:
            with self.db_manager.connect() as conn:
                row = conn.execute(
                    """
                    SELECT id, owner_id, category_id, expense_date, amount, description
                    FROM expenses WHERE id = ?
                    """,
                    (expense_id,),
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to load expense {expense_id}: {e}") from e

        return self._row_to_expense(row) if row else None

    def find_by_category(self, category_id: int) -> List[Expense]:
        """Get the expenses filed directly under a category.

        Args:
            category_id: The category ID.

        Returns:
            List of Expense objects, newest first.
        """
        try:
            with self.db_manager.connect() as conn:
                rows = conn.execute(
                    """
                    SELECT id, owner_id, category_id, expense_date, amount, description
                    FROM expenses
                    WHERE category_id = ?
                    ORDER BY expense_date DESC, id DESC
                    """,
                    (category_id,),
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list expenses of category {category_id}: {e}") from e

        return [self._row_to_expense(row) for row in rows]

    def delete(self, expense_id: int) -> bool:
        """Delete an expense by ID.

        Args:
            expense_id: The expense ID to delete.

        Returns:
            True if the expense was deleted, False if not found.

        Raises:
            StorageError: If the database fails.
        """
        try:
            with self.db_manager.connect() as conn:
                cursor = conn.execute("DELETE FROM expenses WHERE id = ?", (expense_id,))
                self.db_manager.commit(conn)
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete expense {expense_id}: {e}") from e

    def _row_to_expense(self, row: tuple) -> Expense:
        return Expense(
            id=row[0],
            owner_id=row[1],
            category_id=row[2],
            expense_date=date.fromisoformat(row[3]),
            amount=Decimal(row[4]),
            description=row[5],
        )
