"""Driver factory keyed by URL scheme."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from merlin.persistence.driver import Driver


def create_driver(url: str, id_key: str = "id") -> Driver:
    """Create a driver based on the database URL scheme.

    Args:
        url: ``memory://`` or ``sqlite:///path/to.db``
        id_key: Name of the id field

    Returns:
        A Driver instance (not yet connected).

    Raises:
        ValueError: For unsupported URL schemes.
    """
    if url.startswith("memory:"):
        from merlin.persistence.memory import MemoryDriver

        return MemoryDriver(id_key=id_key)

    if url.startswith("sqlite"):
        from merlin.persistence.sqlite import SQLiteDriver, sqlite_path

        return SQLiteDriver(sqlite_path(url), id_key=id_key)

    raise ValueError(f"Unsupported database URL scheme: {url}")
