import pytest
from datetime import date
from decimal import Decimal

from errors import StorageError, ValidationError
from tests.helpers import OWNER_ID


class TestExpenseService:
    """Tests for ExpenseService."""

    def test_create_expense(self, services, tree):
        """Test creating an expense stores a two-place Decimal amount."""
        food = tree.create(OWNER_ID, "Food")

        expense = services.expenses.create(
            OWNER_ID, food.id, "12.5", date(2025, 3, 1), description="Lunch"
        )

        assert expense.id is not None
        assert expense.amount == Decimal("12.50")
        assert str(expense.amount) == "12.50"

        found = services.expenses.find(expense.id)
        assert found.category_id == food.id
        assert found.expense_date == date(2025, 3, 1)
        assert found.amount == Decimal("12.50")
        assert found.description == "Lunch"

    def test_create_rejects_non_positive_amount(self, services, tree):
        """Test zero and negative amounts are refused."""
        food = tree.create(OWNER_ID, "Food")

        for amount in ("0", "-5.00"):
            with pytest.raises(ValidationError) as exc_info:
                services.expenses.create(OWNER_ID, food.id, amount, date(2025, 3, 1))
            assert exc_info.value.fields == ["amount"]

    def test_create_rejects_garbage_amount(self, services, tree):
        """Test non-numeric and non-finite amounts are validation errors."""
        food = tree.create(OWNER_ID, "Food")

        for amount in ("twelve", "NaN", "-NaN", "sNaN", "Infinity", "-Infinity"):
            with pytest.raises(ValidationError) as exc_info:
                services.expenses.create(OWNER_ID, food.id, amount, date(2025, 3, 1))
            assert exc_info.value.fields == ["amount"]

        assert services.expenses.find_by_category(food.id) == []

    def test_storage_failures_are_wrapped(self, services, tree):
        """Test reads and deletes surface database failures as StorageError."""
        food = tree.create(OWNER_ID, "Food")
        expense = services.expenses.create(OWNER_ID, food.id, "1.00", date(2025, 1, 1))
        with services.db_manager.connect() as conn:
            conn.execute("DROP TABLE expenses")
            conn.commit()

        with pytest.raises(StorageError):
            services.expenses.find(expense.id)
        with pytest.raises(StorageError):
            services.expenses.find_by_category(food.id)
        with pytest.raises(StorageError):
            services.expenses.delete(expense.id)

    def test_create_under_missing_category(self, services):
        """Test the foreign key refuses expenses for unknown categories."""
        with pytest.raises(StorageError):
            services.expenses.create(OWNER_ID, 9999, "1.00", date(2025, 3, 1))

    def test_find_by_category_newest_first(self, services, tree):
        """Test expenses are listed newest first."""
        food = tree.create(OWNER_ID, "Food")
        services.expenses.create(OWNER_ID, food.id, "1.00", date(2025, 1, 1))
        services.expenses.create(OWNER_ID, food.id, "2.00", date(2025, 3, 1))
        services.expenses.create(OWNER_ID, food.id, "3.00", date(2025, 2, 1))

        dates = [e.expense_date for e in services.expenses.find_by_category(food.id)]

        assert dates == [date(2025, 3, 1), date(2025, 2, 1), date(2025, 1, 1)]

    def test_delete_expense_unblocks_category(self, services, tree):
        """Test removing the last expense lets the category be deleted."""
        food = tree.create(OWNER_ID, "Food")
        expense = services.expenses.create(OWNER_ID, food.id, "1.00", date(2025, 1, 1))

        assert tree.can_delete(OWNER_ID, food.id) is False
        assert services.expenses.delete(expense.id) is True
        assert services.expenses.delete(expense.id) is False
        assert tree.can_delete(OWNER_ID, food.id) is True
