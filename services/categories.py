"""Category service for database operations.

This is the persistence gateway underneath CategoryTree: it loads and saves
category rows, answers expense aggregates per category, and provides the
transaction boundary. It performs no tree validation of its own beyond what
the schema enforces.
"""

import sqlite3
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, List, Optional, Tuple, TypeVar

from errors import FieldError, NotFoundError, StorageError, ValidationError
from logger import get_logger
from models.category import Category, CategoryStatus

logger = get_logger()

T = TypeVar("T")

DateRange = Tuple[Optional[date], Optional[date]]

_CATEGORY_SELECT_FIELDS = """id, owner_id, parent_id, name, description, icon, color,
       status, created_at, updated_at, created_by, updated_by"""

_DUPLICATE_NAME_MESSAGE = "You already have a category with this name at this level."


class CategoryService:
    """Service for managing category rows."""

    def __init__(self, db_manager):
        """Initialize the category service.

        Args:
            db_manager: Database manager instance for database operations.
        """
        self.db_manager = db_manager

    def find_by_id(self, category_id: int, owner_id: int) -> Optional[Category]:
        """Get a single category by ID, scoped to its owner.

        Args:
            category_id: The category ID to find.
            owner_id: The owner the category must belong to.

        Returns:
            Category object if found and owned by owner_id, None otherwise.
        """
        row = self._fetch_one(
            f"SELECT {_CATEGORY_SELECT_FIELDS} FROM categories WHERE id = ? AND owner_id = ?",
            (category_id, owner_id),
        )
        return self._row_to_category(row) if row else None

    def find_by_owner(self, owner_id: int, active_only: bool = False) -> List[Category]:
        """Get every category of an owner.

        Args:
            owner_id: The owner to list categories for.
            active_only: If True, inactive categories are left out.

        Returns:
            List of Category objects, ordered by name.
        """
        query = f"SELECT {_CATEGORY_SELECT_FIELDS} FROM categories WHERE owner_id = ?"
        params: list = [owner_id]
        if active_only:
            query += " AND status = ?"
            params.append(int(CategoryStatus.ACTIVE))
        query += " ORDER BY name, id"

        rows = self._fetch_all(query, tuple(params))
        return [self._row_to_category(row) for row in rows]

    def find_children(self, parent_id: int) -> List[Category]:
        """Get the direct children of a category.

        Args:
            parent_id: The parent category ID.

        Returns:
            List of Category objects, ordered by name.
        """
        rows = self._fetch_all(
            f"SELECT {_CATEGORY_SELECT_FIELDS} FROM categories WHERE parent_id = ? ORDER BY name, id",
            (parent_id,),
        )
        return [self._row_to_category(row) for row in rows]

    def find_by_name(
        self, owner_id: int, name: str, parent_id: Optional[int] = None
    ) -> Optional[Category]:
        """Get a category by its exact name among one set of siblings.

        Args:
            owner_id: The owner of the category.
            name: The category name to find (case-sensitive).
            parent_id: The parent the category sits under, None for roots.

        Returns:
            Category object if found, None otherwise.
        """
        row = self._fetch_one(
            f"""
            SELECT {_CATEGORY_SELECT_FIELDS} FROM categories
            WHERE owner_id = ? AND name = ? AND parent_id IS ?
            """,
            (owner_id, name, parent_id),
        )
        return self._row_to_category(row) if row else None

    def save(self, category: Category, actor_id: Optional[int] = None) -> Category:
        """Insert or update a category, stamping audit fields first.

        New categories (id is None) get created_at/created_by; every save sets
        updated_at/updated_by. The acting user defaults to the owner.

        Args:
            category: Category to persist.
            actor_id: ID of the user performing the change.

        Returns:
            A stamped copy of the category with id populated.

        Raises:
            ValidationError: If the sibling-unique index rejects the name.
            NotFoundError: If updating a category that no longer exists.
            StorageError: On any other database failure.
        """
        actor = actor_id if actor_id is not None else category.owner_id
        now = datetime.now().replace(microsecond=0)

        if category.id is None:
            stamped = replace(
                category,
                created_at=now,
                created_by=actor,
                updated_at=now,
                updated_by=actor,
            )
        else:
            stamped = replace(category, updated_at=now, updated_by=actor)

        try:
            with self.db_manager.connect() as conn:
                if stamped.id is None:
                    cursor = conn.execute(
                        """
                        INSERT INTO categories (owner_id, parent_id, name, description,
                            icon, color, status, created_at, updated_at, created_by, updated_by)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            stamped.owner_id,
                            stamped.parent_id,
                            stamped.name,
                            stamped.description,
                            stamped.icon,
                            stamped.color,
                            int(stamped.status),
                            stamped.created_at.isoformat(),
                            stamped.updated_at.isoformat(),
                            stamped.created_by,
                            stamped.updated_by,
                        ),
                    )
                    stamped.id = cursor.lastrowid
                else:
                    cursor = conn.execute(
                        """
                        UPDATE categories
                        SET parent_id = ?, name = ?, description = ?, icon = ?, color = ?,
                            status = ?, updated_at = ?, updated_by = ?
                        WHERE id = ? AND owner_id = ?
                        """,
                        (
                            stamped.parent_id,
                            stamped.name,
                            stamped.description,
                            stamped.icon,
                            stamped.color,
                            int(stamped.status),
                            stamped.updated_at.isoformat(),
                            stamped.updated_by,
                            stamped.id,
                            stamped.owner_id,
                        ),
                    )
                    if cursor.rowcount == 0:
                        raise NotFoundError("Category", stamped.id)
                self.db_manager.commit(conn)
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e):
                raise ValidationError([FieldError("name", _DUPLICATE_NAME_MESSAGE)]) from e
            raise StorageError(f"Failed to save category '{category.name}': {e}") from e
        except sqlite3.Error as e:
            raise StorageError(f"Failed to save category '{category.name}': {e}") from e

        return stamped

    def delete_row(self, category_id: int) -> bool:
        """Delete a category row by ID.

        Args:
            category_id: The category ID to delete.

        Returns:
            True if the row was deleted, False if not found.

        Raises:
            StorageError: If the database refuses the delete (e.g. the row
                still has children or expenses).
        """
        try:
            with self.db_manager.connect() as conn:
                cursor = conn.execute("DELETE FROM categories WHERE id = ?", (category_id,))
                self.db_manager.commit(conn)
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete category {category_id}: {e}") from e

    def count_expenses_for_category(
        self, category_id: int, date_range: Optional[DateRange] = None
    ) -> int:
        """Count expenses filed directly under a category.

        Args:
            category_id: The category ID.
            date_range: Optional inclusive (start, end) bounds; either may be None.

        Returns:
            Number of matching expenses.
        """
        where, params = self._expense_filter(category_id, date_range)
        row = self._fetch_one(f"SELECT COUNT(*) FROM expenses WHERE {where}", params)
        return int(row[0])

    def sum_expenses_for_category(
        self, category_id: int, date_range: Optional[DateRange] = None
    ) -> Decimal:
        """Sum the amounts of expenses filed directly under a category.

        Amounts are added as Decimal in Python so no float rounding creeps in.

        Args:
            category_id: The category ID.
            date_range: Optional inclusive (start, end) bounds; either may be None.

        Returns:
            Total amount, Decimal("0") when there are no expenses.
        """
        where, params = self._expense_filter(category_id, date_range)
        rows = self._fetch_all(f"SELECT amount FROM expenses WHERE {where}", params)
        return sum((Decimal(row[0]) for row in rows), Decimal("0"))

    def run_in_transaction(self, fn: Callable[[], T]) -> T:
        """Run fn atomically: commit if it returns, roll back if it raises.

        Args:
            fn: Zero-argument callable performing the writes.

        Returns:
            Whatever fn returns.

        Raises:
            StorageError: If the database fails; the transaction is rolled back.
            Exception: Any other exception from fn, after rollback.
        """
        try:
            with self.db_manager.transaction():
                return fn()
        except sqlite3.Error as e:
            raise StorageError(f"Transaction rolled back: {e}") from e

    def _expense_filter(
        self, category_id: int, date_range: Optional[DateRange]
    ) -> Tuple[str, tuple]:
        clauses = ["category_id = ?"]
        params: list = [category_id]
        if date_range is not None:
            start_date, end_date = date_range
            if start_date is not None:
                clauses.append("expense_date >= ?")
                params.append(start_date.isoformat())
            if end_date is not None:
                clauses.append("expense_date <= ?")
                params.append(end_date.isoformat())
        return " AND ".join(clauses), tuple(params)

    def _fetch_one(self, query: str, params: tuple):
        try:
            with self.db_manager.connect() as conn:
                return conn.execute(query, params).fetchone()
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

    def _fetch_all(self, query: str, params: tuple) -> list:
        try:
            with self.db_manager.connect() as conn:
                return conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

    def _row_to_category(self, row: tuple) -> Category:
        """Convert a database row to a Category object.

        Args:
            row: Database row tuple in _CATEGORY_SELECT_FIELDS order.

        Returns:
            Category object.
        """
        return Category(
            id=row[0],
            owner_id=row[1],
            parent_id=row[2],
            name=row[3],
            description=row[4],
            icon=row[5],
            color=row[6],
            status=CategoryStatus(row[7]),
            created_at=datetime.fromisoformat(row[8]) if row[8] else None,
            updated_at=datetime.fromisoformat(row[9]) if row[9] else None,
            created_by=row[10],
            updated_by=row[11],
        )
