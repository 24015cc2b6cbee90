"""
Storage backend factory.

Every concurrent actor (ingest worker, report run) asks the factory for its
own backend, so each one holds exactly one connection.
"""

import logging
from pathlib import Path
from typing import Optional

from .base import StorageBackend, StorageError

logger = logging.getLogger(__name__)

# Backend name -> class; built-in backends are imported on first request
_BACKENDS: dict[str, type[StorageBackend]] = {}
_BUILTIN = ("sqlite",)


def register_backend(name: str, backend_class: type[StorageBackend]) -> None:
    """Make `backend_class` available to get_backend() under `name`."""
    _BACKENDS[name.lower()] = backend_class
    logger.debug(f"Storage backend '{name}' registered")


def _ensure_builtin(name: str) -> None:
    if name in _BACKENDS or name not in _BUILTIN:
        return
    from .sqlite_backend import SQLiteBackend

    register_backend("sqlite", SQLiteBackend)


def _settings_kwargs(name: str) -> dict:
    from ..config.settings import get_settings

    if name == "sqlite":
        return {"db_path": Path(get_settings().sqlite_db_path)}
    return {}


def get_backend(name: Optional[str] = None, **kwargs) -> StorageBackend:
    """
    Build a new, not yet initialized, backend.

    With no name the configured `storage_backend` is used; with no kwargs
    the constructor arguments come from settings too (SQLite: db_path).

    Raises:
        StorageError: Unknown backend name, or the constructor failed

    Example:
        with get_backend('sqlite', db_path='data/access-logs.db') as backend:
            backend.initialize()
    """
    if name is None:
        from ..config.settings import get_settings

        name = get_settings().storage_backend
    name = name.lower()

    _ensure_builtin(name)
    backend_class = _BACKENDS.get(name)
    if backend_class is None:
        known = ", ".join(list_available_backends()) or "none"
        raise StorageError(f"Unknown storage backend: '{name}' (known: {known})")

    try:
        return backend_class(**(kwargs or _settings_kwargs(name)))
    except (OSError, TypeError, ValueError) as e:
        raise StorageError(f"Could not create {name} backend: {e}") from e


def list_available_backends() -> list[str]:
    """Names get_backend() accepts."""
    for name in _BUILTIN:
        _ensure_builtin(name)
    return sorted(_BACKENDS)
