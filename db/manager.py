"""Database manager for SQLite connections and path management."""

import sqlite3
from contextlib import contextmanager
from config import Config, get_migrations_dir


class DatabaseManager:
    """Manages database connections, transactions and paths.

    While a transaction() block is open, every connect() call made through
    this manager shares the transaction's connection, so services can be
    composed inside one atomic unit without knowing about it.

    Args:
        config: Application configuration object.
    """

    def __init__(self, config: Config):
        """Initialize the database manager.

        Args:
            config: Config object containing database configuration.
        """
        self.config = config
        self._active_conn = None

    def _open_connection(self) -> sqlite3.Connection:
        db_path = self.config.db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(db_path)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _close_connection(self, conn: sqlite3.Connection) -> None:
        conn.close()

    @property
    def in_transaction(self) -> bool:
        """True while a transaction() block owns the connection."""
        return self._active_conn is not None

    @contextmanager
    def connect(self):
        """Get a database connection with automatic cleanup.

        Yields:
            sqlite3.Connection: Database connection.
        """
        if self._active_conn is not None:
            yield self._active_conn
            return

        conn = self._open_connection()
        try:
            yield conn
        finally:
            self._close_connection(conn)

    @contextmanager
    def transaction(self):
        """Run a block atomically.

        Commits when the block exits normally and rolls back on any
        exception, which is re-raised. Nested calls join the outer
        transaction.

        Yields:
            sqlite3.Connection: The connection shared by the whole block.
        """
        if self._active_conn is not None:
            yield self._active_conn
            return

        with self.connect() as conn:
            self._active_conn = conn
            try:
                yield conn
                conn.commit()
            except BaseException:
                conn.rollback()
                raise
            finally:
                self._active_conn = None

    def commit(self, conn: sqlite3.Connection) -> None:
        """Commit unless an enclosing transaction() will do it.

        A commit refused by a deferred constraint is rolled back before the
        error is re-raised, so the connection is never left mid-transaction.

        Args:
            conn: Connection obtained from connect().
        """
        if self.in_transaction:
            return
        try:
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise

    def get_db_path(self):
        """Get the current database path.

        Returns:
            Path: Path to the database file.
        """
        return self.config.db_path

    def get_migrations_dir(self):
        """Get the migrations directory path.

        Returns:
            Path: Path to the migrations directory.
        """
        return get_migrations_dir()
