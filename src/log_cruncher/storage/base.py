"""
Storage backend interface.

The dictionary store, the fact store and the normalization join all go
through a StorageBackend, so none of them talks to a database driver
directly.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Iterator, Optional


class StorageBackend(ABC):
    """
    A transactional SQL store holding the dictionary and fact tables.

    Implementations must enforce UNIQUE and FOREIGN KEY constraints
    themselves: get-or-create relies on the former to settle races between
    concurrent writers, and the fact store uses the latter as a backstop.
    All SQL uses named (:param) placeholders.
    """

    @property
    @abstractmethod
    def backend_type(self) -> str:
        pass

    @abstractmethod
    def initialize(self) -> None:
        """Create the tables and indexes that are missing. Idempotent."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    @abstractmethod
    def query(self, sql: str, params: Optional[dict] = None) -> list[dict]:
        """
        Run a SELECT and return every row as a dict.

        Raises:
            QueryError: If the statement fails
        """
        pass

    @abstractmethod
    def iter_query(
        self,
        sql: str,
        params: Optional[dict] = None,
        batch_size: int = 1000,
    ) -> Iterator[dict]:
        """
        Run a SELECT and lazily yield rows as dicts.

        Rows are fetched `batch_size` at a time on a cursor of their own, so
        calling again restarts from the first row.
        """
        pass

    @abstractmethod
    def execute(self, sql: str, params: Optional[dict] = None) -> int:
        """
        Run a statement that returns no rows.

        Returns:
            Rows affected (0 for DDL and PRAGMA statements)

        Raises:
            ConstraintViolation: If a table constraint rejects the change
            QueryError: For any other failure
        """
        pass

    @abstractmethod
    def insert(self, sql: str, params: Optional[dict] = None) -> int:
        """
        Run a single-row INSERT and return the new row id.

        Raises:
            ConstraintViolation: If a UNIQUE or FOREIGN KEY constraint fails
            QueryError: For any other failure
        """
        pass

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """
        Group statements into one atomic write.

        Commits on normal exit, rolls back if the block raises. Nested use
        joins the outer transaction.
        """
        pass

    @abstractmethod
    def table_exists(self, table_name: str) -> bool:
        pass

    @abstractmethod
    def get_table_row_count(self, table_name: str) -> int:
        """
        Raises:
            SchemaError: If the table does not exist
        """
        pass

    def __enter__(self) -> "StorageBackend":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class StorageError(Exception):
    """Base exception for storage errors."""

    pass


class StorageConnectionError(StorageError):
    """The database could not be opened."""

    pass


class QueryError(StorageError):
    """A statement failed to execute."""

    pass


class SchemaError(StorageError):
    """A table is missing or has an unexpected shape."""

    pass


class ConstraintViolation(QueryError):
    """
    Raised when a statement violates a table constraint.

    Attributes:
        kind: 'unique', 'foreign_key' or 'other'
    """

    def __init__(self, message: str, kind: str = "other"):
        self.kind = kind
        super().__init__(message)


class NotFoundError(StorageError):
    """
    Raised when a dictionary id does not resolve.

    Fact rows only ever reference existing entries, so this always signals
    a bug or a corrupted store, never bad input.
    """

    def __init__(self, dictionary: str, entry_id: object):
        self.dictionary = dictionary
        self.entry_id = entry_id
        super().__init__(f"No {dictionary} dictionary entry with id {entry_id!r}")


class ReferentialIntegrityError(StorageError):
    """
    Raised when a fact references a dictionary entry that does not exist.

    Attributes:
        field: The fact field holding the bad reference
        value: The unresolvable id (None for a missing required reference)
    """

    def __init__(self, message: str, field: Optional[str] = None, value: object = None):
        self.field = field
        self.value = value
        if field:
            message = f"{message} (field='{field}', value={value!r})"
        super().__init__(message)


class UniquenessRaceError(StorageError):
    """
    Raised inside get-or-create when a concurrent writer inserted the same
    value first. Recovered locally by re-reading; never surfaced to callers.
    """

    pass
