"""Helper utilities for tests."""

from pathlib import Path
import sqlite3

OWNER_ID = 1
OTHER_OWNER_ID = 2


def run_migrations(conn: sqlite3.Connection, migrations_dir: Path) -> None:
    """Run all SQL migrations in order.

    Args:
        conn: SQLite connection to run migrations against.
        migrations_dir: Path to directory containing .sql migration files.
    """
    for migration_file in sorted(migrations_dir.glob("*.sql")):
        conn.executescript(migration_file.read_text())

    conn.commit()


def build_chain(tree, owner_id: int, length: int, prefix: str = "Level"):
    """Create a straight line of nested categories.

    Returns:
        List of the created categories, root first.
    """
    chain = []
    parent_id = None
    for level in range(1, length + 1):
        category = tree.create(owner_id, f"{prefix} {level}", parent_id=parent_id)
        chain.append(category)
        parent_id = category.id
    return chain
