"""
Dictionary Store: deduplicating surrogate-key tables for repeated dimensions.

Each dictionary maps a unique value (exact, case-sensitive) to a stable
integer id. Entries are created on first sighting and never updated or
deleted, so every id ever handed out stays resolvable.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from ..config.constants import (
    DICT_ASN,
    DICT_CLIENT_IP,
    DICT_PATH,
    DICT_REFERER,
    DICT_USER_AGENT,
    TABLE_AUTONOMOUS_SYSTEMS,
    TABLE_CLIENT_IPS,
    TABLE_PATHS,
    TABLE_REFERERS,
    TABLE_USER_AGENTS,
)
from .base import (
    ConstraintViolation,
    NotFoundError,
    StorageBackend,
    StorageError,
    UniquenessRaceError,
)

logger = logging.getLogger(__name__)

DictionaryValue = Union[str, int]


@dataclass(frozen=True)
class Dictionary:
    """A dictionary table and the column holding its unique values."""

    name: str
    table: str
    column: str


DICTIONARIES: dict[str, Dictionary] = {
    d.name: d
    for d in [
        Dictionary(DICT_CLIENT_IP, TABLE_CLIENT_IPS, "address"),
        Dictionary(DICT_PATH, TABLE_PATHS, "path"),
        Dictionary(DICT_REFERER, TABLE_REFERERS, "referer"),
        Dictionary(DICT_USER_AGENT, TABLE_USER_AGENTS, "user_agent"),
        Dictionary(DICT_ASN, TABLE_AUTONOMOUS_SYSTEMS, "asn"),
    ]
}


def get_dictionary(name: str) -> Dictionary:
    """Look up a dictionary definition by name."""
    try:
        return DICTIONARIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown dictionary: '{name}'. "
            f"Available: {', '.join(sorted(DICTIONARIES))}"
        ) from None


class DictionaryStore:
    """
    Transactional get-or-create over the dictionary tables.

    Uniqueness is enforced by the storage layer's UNIQUE constraint, not by
    application locks. A writer that loses an insert race re-reads the
    winner's id instead of failing.
    """

    # A lost race is resolved by the next SELECT; more than a couple of
    # attempts means something other than a race is wrong.
    MAX_ATTEMPTS = 3

    def __init__(self, backend: StorageBackend):
        self._backend = backend

    def find(self, dictionary: str, value: DictionaryValue) -> Optional[int]:
        """Return the id for value, or None if it has never been seen."""
        d = get_dictionary(dictionary)
        rows = self._backend.query(
            f"SELECT id FROM {d.table} WHERE {d.column} = :value",
            {"value": value},
        )
        return rows[0]["id"] if rows else None

    def get_or_create(self, dictionary: str, value: DictionaryValue) -> int:
        """
        Return the id for value, inserting a new entry if it is unseen.

        Args:
            dictionary: Dictionary name (see DICTIONARIES)
            value: The exact value to look up

        Returns:
            The entry's id (same id for the same value, every time)

        Raises:
            ValueError: Unknown dictionary or a None value
            StorageError: If the entry could neither be read nor inserted
        """
        if value is None:
            raise ValueError(f"Cannot store None in the {dictionary} dictionary")

        d = get_dictionary(dictionary)

        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            existing = self.find(dictionary, value)
            if existing is not None:
                return existing

            try:
                return self._insert(d, value)
            except UniquenessRaceError:
                logger.debug(
                    f"Lost insert race for {d.name}={value!r} "
                    f"(attempt {attempt}), re-reading"
                )

        raise StorageError(
            f"Could not get or create {d.name} entry {value!r} "
            f"after {self.MAX_ATTEMPTS} attempts"
        )

    def _insert(self, d: Dictionary, value: DictionaryValue) -> int:
        try:
            return self._backend.insert(
                f"INSERT INTO {d.table} ({d.column}) VALUES (:value)",
                {"value": value},
            )
        except ConstraintViolation as e:
            if e.kind == "unique":
                raise UniquenessRaceError(str(e)) from e
            raise

    def resolve(self, dictionary: str, entry_id: int) -> DictionaryValue:
        """
        Return the value stored under entry_id.

        Raises:
            NotFoundError: If no entry has that id (a corrupted store)
        """
        d = get_dictionary(dictionary)
        rows = self._backend.query(
            f"SELECT {d.column} AS value FROM {d.table} WHERE id = :id",
            {"id": entry_id},
        )
        if not rows:
            raise NotFoundError(d.name, entry_id)
        return rows[0]["value"]

    def exists(self, dictionary: str, entry_id: int) -> bool:
        """True if entry_id resolves in the given dictionary."""
        d = get_dictionary(dictionary)
        rows = self._backend.query(
            f"SELECT 1 AS found FROM {d.table} WHERE id = :id",
            {"id": entry_id},
        )
        return bool(rows)

    def count(self, dictionary: str) -> int:
        """Number of entries in a dictionary."""
        return self._backend.get_table_row_count(get_dictionary(dictionary).table)
