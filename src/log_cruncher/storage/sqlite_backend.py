"""
SQLite access log store.

Holds the dictionary tables, the request fact table and the ASN name
enrichment table. Uniqueness and referential integrity are enforced by
SQLite itself (UNIQUE constraints and `PRAGMA foreign_keys = ON`).
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from .base import (
    ConstraintViolation,
    QueryError,
    SchemaError,
    StorageBackend,
    StorageConnectionError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Dictionary, fact and enrichment tables
# =============================================================================

# AUTOINCREMENT keeps ids from ever being reused, even for the highest id.
CLIENT_IPS_SCHEMA = """
CREATE TABLE IF NOT EXISTS client_ips (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    address TEXT NOT NULL UNIQUE
)
"""

PATHS_SCHEMA = """
CREATE TABLE IF NOT EXISTS paths (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    path TEXT NOT NULL UNIQUE
)
"""

REFERERS_SCHEMA = """
CREATE TABLE IF NOT EXISTS referers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    referer TEXT NOT NULL UNIQUE
)
"""

USER_AGENTS_SCHEMA = """
CREATE TABLE IF NOT EXISTS user_agents (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_agent TEXT NOT NULL UNIQUE
)
"""

AUTONOMOUS_SYSTEMS_SCHEMA = """
CREATE TABLE IF NOT EXISTS autonomous_systems (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    asn INTEGER NOT NULL UNIQUE
)
"""

# Names are looked up after ingestion, so they live outside the
# (immutable) ASN dictionary.
ASN_NAMES_SCHEMA = """
CREATE TABLE IF NOT EXISTS asn_names (
    asn INTEGER PRIMARY KEY NOT NULL,
    name TEXT,
    droplist TEXT,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

REQUESTS_SCHEMA = """
CREATE TABLE IF NOT EXISTS requests (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    client_ip INTEGER REFERENCES client_ips(id),
    asn INTEGER REFERENCES autonomous_systems(id),
    country_code TEXT,
    requests INTEGER,
    ipv6 INTEGER NOT NULL DEFAULT 0,
    http2 INTEGER NOT NULL DEFAULT 0,
    cache_state TEXT,
    status INTEGER NOT NULL,
    response_bytes INTEGER NOT NULL CHECK (response_bytes >= 0),
    response_duration REAL NOT NULL CHECK (response_duration >= 0),
    request_start_time TEXT NOT NULL,
    url_path INTEGER NOT NULL REFERENCES paths(id),
    referer INTEGER REFERENCES referers(id),
    user_agent INTEGER REFERENCES user_agents(id)
)
"""

TABLE_SCHEMAS = [
    CLIENT_IPS_SCHEMA,
    PATHS_SCHEMA,
    REFERERS_SCHEMA,
    USER_AGENTS_SCHEMA,
    AUTONOMOUS_SYSTEMS_SCHEMA,
    ASN_NAMES_SCHEMA,
    REQUESTS_SCHEMA,
]

# Reports filter on time, path and agent; enrichment joins on asn
INDEX_DEFINITIONS = [
    "CREATE INDEX IF NOT EXISTS idx_requests_start_time ON requests(request_start_time)",
    "CREATE INDEX IF NOT EXISTS idx_requests_url_path ON requests(url_path)",
    "CREATE INDEX IF NOT EXISTS idx_requests_user_agent ON requests(user_agent)",
    "CREATE INDEX IF NOT EXISTS idx_requests_asn ON requests(asn)",
]


def _constraint_kind(error: sqlite3.IntegrityError) -> str:
    """Classify an IntegrityError by the constraint that failed."""
    message = str(error).upper()
    if "UNIQUE" in message:
        return "unique"
    if "FOREIGN KEY" in message:
        return "foreign_key"
    return "other"


# =============================================================================
# Backend
# =============================================================================


class SQLiteBackend(StorageBackend):
    """
    SQLite storage backend.

    One instance holds one connection. Concurrent actors (threads or
    processes) should each create their own backend on the same file.
    """

    def __init__(
        self,
        db_path: Path | str = "data/access-logs.db",
        *,
        check_same_thread: bool = False,
        timeout: float = 30.0,
    ):
        """
        Open nothing yet; the connection is made on first use.

        Args:
            db_path: Path to SQLite database file (or ':memory:')
            check_same_thread: Passed through to sqlite3.connect
            timeout: Seconds to wait on a locked database
        """
        self.db_path = Path(db_path)
        self._check_same_thread = check_same_thread
        self._timeout = timeout
        self._connection: Optional[sqlite3.Connection] = None
        self._transaction_depth = 0

        if not self._is_memory:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def backend_type(self) -> str:
        """Registry name of this backend."""
        return "sqlite"

    @property
    def _is_memory(self) -> bool:
        return str(self.db_path) == ":memory:"

    @property
    def in_transaction(self) -> bool:
        """True while inside a transaction() block."""
        return self._transaction_depth > 0

    def _get_connection(self) -> sqlite3.Connection:
        """Open the connection once, with foreign keys enforced."""
        if self._connection is None:
            try:
                self._connection = sqlite3.connect(
                    str(self.db_path),
                    check_same_thread=self._check_same_thread,
                    timeout=self._timeout,
                )
                self._connection.row_factory = sqlite3.Row
                self._connection.execute("PRAGMA foreign_keys = ON")
                if not self._is_memory:
                    # Readers do not block the ingesting writer
                    self._connection.execute("PRAGMA journal_mode = WAL")
                logger.debug(f"Opened log store {self.db_path}")
            except sqlite3.Error as e:
                raise StorageConnectionError(
                    f"Failed to connect to SQLite database: {e}"
                ) from e
        return self._connection

    @contextmanager
    def _cursor(self):
        """
        Context manager for database cursor.

        Outside a transaction() block every statement commits on its own.
        Inside one, errors propagate and the enclosing block decides.
        """
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
            if not self.in_transaction:
                conn.commit()
        except sqlite3.IntegrityError as e:
            if not self.in_transaction:
                conn.rollback()
            raise ConstraintViolation(
                f"SQLite constraint failed: {e}", kind=_constraint_kind(e)
            ) from e
        except sqlite3.Error as e:
            if not self.in_transaction:
                conn.rollback()
            raise QueryError(f"SQLite query failed: {e}") from e
        finally:
            cursor.close()

    @contextmanager
    def transaction(self):
        """Group statements into one IMMEDIATE transaction."""
        conn = self._get_connection()
        outermost = self._transaction_depth == 0
        if outermost:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise QueryError(f"Could not begin transaction: {e}") from e
        self._transaction_depth += 1
        try:
            yield self
        except BaseException:
            self._transaction_depth -= 1
            if outermost:
                conn.rollback()
            raise
        else:
            self._transaction_depth -= 1
            if outermost:
                try:
                    conn.commit()
                except sqlite3.Error as e:
                    conn.rollback()
                    raise QueryError(f"Could not commit transaction: {e}") from e

    def initialize(self) -> None:
        """Create the dictionary, fact and enrichment tables if missing."""
        logger.info(f"Creating log store schema in {self.db_path}")

        with self._cursor() as cursor:
            for table_sql in TABLE_SCHEMAS:
                cursor.execute(table_sql)

            for index_sql in INDEX_DEFINITIONS:
                cursor.execute(index_sql)

        logger.info("Log store schema ready")

    def close(self) -> None:
        """Close the connection; the next call reopens it."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
            self._transaction_depth = 0
            logger.debug(f"Closed log store {self.db_path}")

    def query(
        self,
        sql: str,
        params: Optional[dict] = None,
    ) -> list[dict]:
        """Run a SELECT with :name parameters and return every row as a dict."""
        with self._cursor() as cursor:
            cursor.execute(sql, params or {})
            columns = [desc[0] for desc in cursor.description or []]
            rows = cursor.fetchall()
            return [dict(zip(columns, row)) for row in rows]

    def iter_query(
        self,
        sql: str,
        params: Optional[dict] = None,
        batch_size: int = 1000,
    ) -> Iterator[dict]:
        """Lazily yield result rows as dictionaries, batch by batch."""
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            try:
                cursor.execute(sql, params or {})
                columns = [desc[0] for desc in cursor.description or []]
                while True:
                    rows = cursor.fetchmany(batch_size)
                    if not rows:
                        break
                    for row in rows:
                        yield dict(zip(columns, row))
            except sqlite3.Error as e:
                raise QueryError(f"SQLite query failed: {e}") from e
        finally:
            cursor.close()

    def execute(
        self,
        sql: str,
        params: Optional[dict] = None,
    ) -> int:
        """Run a write or DDL statement and return the affected row count."""
        with self._cursor() as cursor:
            cursor.execute(sql, params or {})
            return cursor.rowcount

    def insert(
        self,
        sql: str,
        params: Optional[dict] = None,
    ) -> int:
        """Execute a single-row INSERT and return its rowid."""
        with self._cursor() as cursor:
            cursor.execute(sql, params or {})
            return cursor.lastrowid

    def table_exists(self, table_name: str) -> bool:
        """True if the named table is in sqlite_master."""
        sql = """
            SELECT name FROM sqlite_master
            WHERE type='table' AND name=:table_name
        """
        result = self.query(sql, {"table_name": table_name})
        return len(result) > 0

    def get_table_row_count(self, table_name: str) -> int:
        """Count the rows of an existing table."""
        if not self.table_exists(table_name):
            raise SchemaError(f"Table '{table_name}' does not exist")

        # Identifiers cannot be bound; the name was checked above
        sql = f"SELECT COUNT(*) AS count FROM {table_name}"
        result = self.query(sql)
        return result[0]["count"] if result else 0
