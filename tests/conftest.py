"""Shared pytest fixtures for all tests."""

import sqlite3
import pytest
from datetime import date
from pathlib import Path

from config import Config
from db.manager import DatabaseManager
from services.base import Services
from tests.helpers import OWNER_ID, run_migrations


@pytest.fixture
def test_db():
    """Create an in-memory SQLite database for testing.

    Yields:
        sqlite3.Connection: Connection to in-memory database.
    """
    conn = sqlite3.connect(":memory:")
    conn.execute("PRAGMA foreign_keys = ON")
    yield conn
    conn.close()


@pytest.fixture
def test_config(tmp_path):
    """Create a test configuration pointing to a temporary database.

    Args:
        tmp_path: pytest tmp_path fixture for temporary directory.

    Returns:
        Config: Test configuration object.
    """
    return Config(
        base_dir=tmp_path / "spendtree",
        db_data_dir=tmp_path / "spendtree" / "db",
        db_filename="test.db",
        log_level="DEBUG",
        log_dir=tmp_path / "spendtree" / "logs",
        user_id=OWNER_ID,
    )


class InMemoryDatabaseManager(DatabaseManager):
    """DatabaseManager that hands out one shared in-memory connection."""

    def __init__(self, config, conn):
        super().__init__(config)
        self.conn = conn

    def _open_connection(self):
        return self.conn

    def _close_connection(self, conn):
        # Don't close the connection - let the fixture handle it
        pass

    def get_db_path(self):
        """Return a fake path for the test database."""
        return Path(":memory:")


@pytest.fixture
def db_manager_with_schema(test_config, test_db):
    """Create a DatabaseManager with schema already set up.

    Args:
        test_config: Test configuration fixture.
        test_db: In-memory database connection fixture.

    Returns:
        DatabaseManager: Database manager with schema ready.
    """
    manager = InMemoryDatabaseManager(test_config, test_db)
    run_migrations(test_db, manager.get_migrations_dir())
    return manager


@pytest.fixture
def services(test_config, db_manager_with_schema):
    """Create a Services container with test database.

    Args:
        test_config: Test configuration fixture.
        db_manager_with_schema: Database manager with schema set up.

    Returns:
        Services: Services container for testing.
    """
    return Services(test_config, db_manager=db_manager_with_schema)


@pytest.fixture
def tree(services):
    """The CategoryTree of the test services container."""
    return services.category_tree


@pytest.fixture
def add_expense(services):
    """Return a helper that files an expense under a category."""

    def _add(category, amount="10.00", expense_date=date(2025, 1, 15), owner_id=OWNER_ID):
        return services.expenses.create(owner_id, category.id, amount, expense_date)

    return _add
