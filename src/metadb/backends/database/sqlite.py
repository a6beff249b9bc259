"""SQLite database backend."""

import asyncio
import re
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from metadb.protocols.database import Row

PARAM_PATTERN = re.compile(r":(\w+)")


class SQLiteTransaction:
    """Handle for statements inside an open ``SQLiteDatabase`` transaction.

    Statements issued through the handle join the transaction. Opening a
    transaction on the handle joins the same one.
    """

    def __init__(self, database: "SQLiteDatabase") -> None:
        self._database = database

    async def execute(
        self,
        query: str,
        params: dict[str, Any] | None = None,
    ) -> list[Row]:
        """Execute a query inside the transaction and return results."""
        return await self._database._fetch(query, params)

    async def execute_update(
        self,
        query: str,
        params: dict[str, Any] | None = None,
    ) -> int:
        """Execute a statement inside the transaction and return affected rows."""
        return await self._database._update(query, params)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["SQLiteTransaction"]:
        yield self


class SQLiteDatabase:
    """SQLite database backend.

    Suitable for development and small deployments. A single sqlite3
    connection is shared; statements run one at a time.

    While a transaction is open, only the task that opened it reaches the
    connection. Statements from other tasks wait until it commits or rolls
    back, so an aborted transaction never takes their writes with it.
    Tasks spawned inside a transaction must use the transaction handle.
    """

    def __init__(
        self,
        path: str | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize SQLite database.

        Args:
            path: Path to SQLite database file. Defaults to ./data/metadb.db
                  Use ":memory:" for in-memory database.
            **kwargs: Ignored (for compatibility with other backends)
        """
        if path == ":memory:":
            self.path: str | Path = ":memory:"
        else:
            self.path = Path(path) if path else Path("./data/metadb.db")
            self.path.parent.mkdir(parents=True, exist_ok=True)

        self._conn: sqlite3.Connection | None = None
        # One statement at a time
        self._lock = asyncio.Lock()
        # One transaction at a time; statements outside it wait here
        self._transaction_lock = asyncio.Lock()
        self._owner: asyncio.Task[Any] | None = None
        self._transaction: SQLiteTransaction | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            db_path = str(self.path) if isinstance(self.path, Path) else self.path
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    @staticmethod
    def _convert_params(
        query: str, params: dict[str, Any] | None
    ) -> tuple[str, tuple[Any, ...]]:
        """Rewrite :name placeholders to ? and order the values to match."""
        if not params:
            return query, ()

        names: list[str] = []

        def replace_param(match: re.Match[str]) -> str:
            names.append(match.group(1))
            return "?"

        query = PARAM_PATTERN.sub(replace_param, query)
        return query, tuple(params[name] for name in names)

    def _in_own_transaction(self) -> bool:
        return self._owner is not None and self._owner is asyncio.current_task()

    async def _fetch(self, query: str, params: dict[str, Any] | None) -> list[Row]:
        async with self._lock:
            conn = self._get_connection()
            query, values = self._convert_params(query, params)
            rows = conn.execute(query, values).fetchall()
            if self._owner is None:
                conn.commit()
            return [Row(_data=dict(row)) for row in rows]

    async def _update(self, query: str, params: dict[str, Any] | None) -> int:
        async with self._lock:
            conn = self._get_connection()
            query, values = self._convert_params(query, params)
            affected = conn.execute(query, values).rowcount
            if self._owner is None:
                conn.commit()
            return max(affected, 0)

    async def execute(
        self,
        query: str,
        params: dict[str, Any] | None = None,
    ) -> list[Row]:
        """Execute a query and return results."""
        if self._in_own_transaction():
            return await self._fetch(query, params)
        async with self._transaction_lock:
            return await self._fetch(query, params)

    async def execute_update(
        self,
        query: str,
        params: dict[str, Any] | None = None,
    ) -> int:
        """Execute a statement and return the number of affected rows."""
        if self._in_own_transaction():
            return await self._update(query, params)
        async with self._transaction_lock:
            return await self._update(query, params)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLiteTransaction]:
        """Start a transaction.

        Commits on exit and rolls back on exception. Calling this again
        from the task that holds the transaction joins it, since SQLite
        has no nested transactions.
        """
        if self._in_own_transaction() and self._transaction is not None:
            yield self._transaction
            return

        async with self._transaction_lock:
            conn = self._get_connection()
            self._owner = asyncio.current_task()
            self._transaction = SQLiteTransaction(self)
            try:
                yield self._transaction
                conn.commit()
            except BaseException:
                conn.rollback()
                raise
            finally:
                self._owner = None
                self._transaction = None

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
