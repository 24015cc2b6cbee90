"""
Storage layer for the access-log store.

Holds the Dictionary Store and the Fact Store on top of a SQLite backend.

Usage:
    from log_cruncher.storage import DictionaryStore, FactStore, get_backend

    with get_backend('sqlite', db_path='data/access-logs.db') as backend:
        backend.initialize()
        path_id = DictionaryStore(backend).get_or_create('path', '/')
"""

from .base import (
    ConstraintViolation,
    NotFoundError,
    QueryError,
    ReferentialIntegrityError,
    SchemaError,
    StorageBackend,
    StorageConnectionError,
    StorageError,
    UniquenessRaceError,
)
from .dictionaries import DICTIONARIES, Dictionary, DictionaryStore, get_dictionary
from .facts import FactStore, RequestFact
from .factory import get_backend, list_available_backends, register_backend

__all__ = [
    # Base classes and exceptions
    "StorageBackend",
    "StorageError",
    "StorageConnectionError",
    "QueryError",
    "SchemaError",
    "ConstraintViolation",
    "NotFoundError",
    "ReferentialIntegrityError",
    "UniquenessRaceError",
    # Dictionary and fact stores
    "Dictionary",
    "DICTIONARIES",
    "DictionaryStore",
    "get_dictionary",
    "FactStore",
    "RequestFact",
    # Factory functions
    "get_backend",
    "register_backend",
    "list_available_backends",
]
