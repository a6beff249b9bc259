"""SQL table gateway over a ``Database`` backend."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from metadb.predicates import Predicate, adapt_param, compile_predicate, quote_identifier
from metadb.protocols.database import Database, Row


@dataclass(frozen=True)
class Index:
    """A table index definition."""

    name: str
    columns: tuple[tuple[str, str], ...]  # (column, "ASC" | "DESC")

    def create_sql(self, table: str) -> str:
        cols = ", ".join(
            f"{quote_identifier(col)} {order.upper()}" for col, order in self.columns
        )
        return (
            f"CREATE INDEX IF NOT EXISTS {quote_identifier(self.name)} "
            f"ON {quote_identifier(table)} ({cols})"
        )


@dataclass(frozen=True)
class TableSchema:
    """Column and index layout of a table."""

    name: str
    columns: dict[str, str]
    primary_key: str
    indexes: tuple[Index, ...] = field(default_factory=tuple)

    def create_sql(self) -> str:
        defs = []
        for col, col_type in self.columns.items():
            definition = f"{quote_identifier(col)} {col_type}"
            if col == self.primary_key:
                definition += " PRIMARY KEY"
            defs.append(definition)
        return f"CREATE TABLE IF NOT EXISTS {quote_identifier(self.name)} ({', '.join(defs)})"


class SQLTable:
    """Row-level operations on one table.

    Every method takes an optional ``transaction`` handle obtained from
    ``Database.transaction()``; without one, statements run on the
    database directly.
    """

    def __init__(self, database: Database, schema: TableSchema) -> None:
        self.database = database
        self.schema = schema
        self._table = quote_identifier(schema.name)

    @property
    def name(self) -> str:
        return self.schema.name

    def _db(self, transaction: Database | None) -> Database:
        return transaction if transaction is not None else self.database

    def _columns_sql(self, columns: Sequence[str] | None) -> str:
        if not columns:
            return "*"
        return ", ".join(quote_identifier(c) for c in columns)

    @staticmethod
    def _where_sql(where: Predicate | None) -> tuple[str, dict[str, Any]]:
        sql, params = compile_predicate(where)
        return (f" WHERE {sql}" if sql else ""), params

    async def create(self, transaction: Database | None = None) -> None:
        """Create the table and its indexes if they do not exist."""
        db = self._db(transaction)
        await db.execute(self.schema.create_sql())
        for index in self.schema.indexes:
            await db.execute(index.create_sql(self.schema.name))

    async def find_one(
        self,
        where: Predicate | None,
        columns: Sequence[str] | None = None,
        transaction: Database | None = None,
    ) -> Row | None:
        """Return the first matching row or None."""
        rows = await self.find_all(where, columns=columns, limit=1, transaction=transaction)
        return rows[0] if rows else None

    async def find_all(
        self,
        where: Predicate | None,
        columns: Sequence[str] | None = None,
        offset: int | None = None,
        limit: int | None = None,
        order_by: Sequence[str] | None = None,
        transaction: Database | None = None,
    ) -> list[Row]:
        """Return matching rows, optionally ordered and paginated."""
        where_sql, params = self._where_sql(where)
        query = f"SELECT {self._columns_sql(columns)} FROM {self._table}{where_sql}"
        if order_by:
            query += " ORDER BY " + ", ".join(quote_identifier(c) for c in order_by)
        if limit is not None or offset is not None:
            # OFFSET needs a LIMIT; -1 is "no limit" in SQLite
            query += " LIMIT :_limit"
            params["_limit"] = limit if limit is not None else -1
            if offset is not None:
                query += " OFFSET :_offset"
                params["_offset"] = offset
        return await self._db(transaction).execute(query, params)

    async def update(
        self,
        values: Mapping[str, Any],
        where: Predicate | None,
        transaction: Database | None = None,
    ) -> int:
        """Update matching rows and return how many changed."""
        assignments = []
        params: dict[str, Any] = {}
        for i, (col, value) in enumerate(values.items()):
            assignments.append(f"{quote_identifier(col)} = :_set{i}")
            params[f"_set{i}"] = adapt_param(value)
        where_sql, where_params = self._where_sql(where)
        params.update(where_params)
        query = f"UPDATE {self._table} SET {', '.join(assignments)}{where_sql}"
        return await self._db(transaction).execute_update(query, params)

    async def upsert(
        self,
        row: Mapping[str, Any],
        transaction: Database | None = None,
    ) -> None:
        """Insert a row, or replace the non-key columns of an existing one."""
        pk = self.schema.primary_key
        cols = list(row.keys())
        names = ", ".join(quote_identifier(c) for c in cols)
        placeholders = ", ".join(f":_v{i}" for i in range(len(cols)))
        updates = ", ".join(
            f"{quote_identifier(c)} = excluded.{quote_identifier(c)}" for c in cols if c != pk
        )
        query = (
            f"INSERT INTO {self._table} ({names}) VALUES ({placeholders}) "
            f"ON CONFLICT ({quote_identifier(pk)}) "
        )
        query += f"DO UPDATE SET {updates}" if updates else "DO NOTHING"
        params = {f"_v{i}": adapt_param(row[c]) for i, c in enumerate(cols)}
        await self._db(transaction).execute_update(query, params)

    async def destroy(
        self,
        where: Predicate | None,
        transaction: Database | None = None,
    ) -> int:
        """Delete matching rows and return how many were removed."""
        where_sql, params = self._where_sql(where)
        query = f"DELETE FROM {self._table}{where_sql}"
        return await self._db(transaction).execute_update(query, params)

    async def truncate(self, transaction: Database | None = None) -> None:
        """Delete every row."""
        await self._db(transaction).execute_update(f"DELETE FROM {self._table}")

    async def count(
        self,
        where: Predicate | None,
        transaction: Database | None = None,
    ) -> int:
        """Count matching rows."""
        where_sql, params = self._where_sql(where)
        query = f"SELECT COUNT(*) AS total FROM {self._table}{where_sql}"
        rows = await self._db(transaction).execute(query, params)
        return int(rows[0].total) if rows else 0
