"""Database protocol for SQL backends."""

from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass
class Row:
    """Type-safe row access with attribute-style access."""

    _data: dict[str, Any] = field(repr=False)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            return object.__getattribute__(self, name)
        try:
            return self._data[name]
        except KeyError:
            raise AttributeError(f"Row has no column '{name}'") from None

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Return a column value or a default."""
        return self._data.get(key, default)

    def keys(self) -> list[str]:
        """Return column names."""
        return list(self._data.keys())

    def values(self) -> list[Any]:
        """Return column values."""
        return list(self._data.values())

    def to_dict(self) -> dict[str, Any]:
        """Convert row to dictionary."""
        return dict(self._data)


@runtime_checkable
class Database(Protocol):
    """Protocol for SQL database backends (SQLite, PostgreSQL)."""

    async def execute(
        self,
        query: str,
        params: dict[str, Any] | None = None,
    ) -> list[Row]:
        """Execute a query and return results."""
        ...

    async def execute_update(
        self,
        query: str,
        params: dict[str, Any] | None = None,
    ) -> int:
        """Execute a statement and return the number of affected rows."""
        ...

    def transaction(self) -> AbstractAsyncContextManager["Database"]:
        """Start a transaction. Commits on exit, rolls back on exception.

        The yielded handle runs statements inside the transaction. Writes
        made through other handles are never part of it.
        """
        ...
