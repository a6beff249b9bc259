"""Expiring key-value store on a relational table."""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from metadb.codec import decode, encode, is_structured, kind_of
from metadb.collector import DEFAULT_GC_SCHEDULE, GcTask
from metadb.exceptions import KeyNotFoundError
from metadb.observability import Timer, emit_metric, emit_timer, get_logger, traced
from metadb.patterns import translate
from metadb.predicates import And, Eq, Gt, IsNull, Like, Lte, Or, Predicate, parse_timestamp
from metadb.protocols.database import Database, Row
from metadb.protocols.scheduler import Scheduler
from metadb.table import Index, SQLTable, TableSchema
from metadb.views import PrefixView

logger = get_logger(__name__)

DEFAULT_TABLE_NAME = "__metadb"

BASE_COLUMNS = {
    "key": "TEXT",
    "value": "TEXT NOT NULL",
    "expires": "TIMESTAMP NULL",
}

EXPIRES_INDEX = Index(name="expires_index", columns=(("expires", "DESC"),))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MetaItem:
    """A live row returned by ``MetaStore.all``."""

    key: str
    value: Any
    expires: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)


class MetaStore:
    """Key-value metadata stored in one relational table.

    Rows carry an optional expiration time. Expired rows are invisible to
    every read, write, delete, count and listing operation immediately,
    and are physically removed by ``gc()``, either called directly or on a
    schedule installed with ``monitor()``.

    Example:
        store = MetaStore(SQLiteDatabase(":memory:"))
        await store.sync()
        await store.put("settings", {"theme": "dark"})
        await store.expire("settings", 60)

    Every operation accepts an optional ``transaction`` obtained from the
    database's ``transaction()`` context manager. ``assign`` is only
    atomic when given one.
    """

    def __init__(
        self,
        database: Database,
        table_name: str = DEFAULT_TABLE_NAME,
        columns: Mapping[str, str] | None = None,
        indexes: Iterable[Index] | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            database: Database backend holding the table
            table_name: Name of the table
            columns: Extra columns as name -> SQL type
            indexes: Extra indexes; the expiration index is always added
            scheduler: Scheduler for ``monitor()``. APScheduler is used
                when omitted.
            clock: Returns the current time. Defaults to UTC wall clock.
        """
        extra_columns = dict(columns or {})
        reserved = set(extra_columns) & set(BASE_COLUMNS)
        if reserved:
            raise ValueError(f"Columns {sorted(reserved)} are managed by the store")

        schema = TableSchema(
            name=table_name,
            columns={**BASE_COLUMNS, **extra_columns},
            primary_key="key",
            indexes=tuple(indexes or ()) + (EXPIRES_INDEX,),
        )
        self.database = database
        self._table = SQLTable(database, schema)
        self._extra_columns = tuple(extra_columns)
        self._scheduler = scheduler
        self._owns_scheduler = False
        self._clock = clock or utcnow
        self._task: GcTask | None = None

    def __repr__(self) -> str:
        return f"MetaStore(table_name={self.table_name!r})"

    @property
    def table_name(self) -> str:
        """Table name used for operations."""
        return self._table.name

    @property
    def gc_task(self) -> GcTask | None:
        """The active GC task, if any."""
        return self._task

    def _live(self) -> Predicate:
        return Or(IsNull("expires"), Gt("expires", self._clock()))

    def _where(
        self,
        pattern: str | None,
        where: Mapping[str, Predicate | None] | None,
        include_expired: bool,
    ) -> Predicate:
        clauses: dict[str, Predicate | None] = {}
        if not include_expired:
            clauses["expires"] = self._live()
        if pattern is not None:
            clauses["key"] = Like("key", translate(pattern))
        if where:
            clauses.update(where)
        return And(*(c for c in clauses.values() if c is not None))

    def _to_item(self, row: Row) -> MetaItem:
        return MetaItem(
            key=row["key"],
            value=decode(row["value"]),
            expires=parse_timestamp(row.get("expires")),
            extra={col: row.get(col) for col in self._extra_columns},
        )

    @traced("sync")
    async def sync(self, transaction: Database | None = None) -> None:
        """Create the table and indexes if they do not exist."""
        await self._table.create(transaction=transaction)

    async def _get(self, key: str, transaction: Database | None) -> tuple[bool, Any]:
        row = await self._table.find_one(
            And(Eq("key", key), self._live()),
            columns=("value",),
            transaction=transaction,
        )
        if row is None:
            return False, None
        return True, decode(row["value"])

    @traced("get")
    async def get(self, key: str, transaction: Database | None = None) -> Any:
        """Get the value stored at key.

        Raises:
            KeyNotFoundError: If no live row exists
        """
        found, value = await self._get(key, transaction)
        if not found:
            raise KeyNotFoundError(key)
        return value

    @traced("get_or_default")
    async def get_or_default(
        self, key: str, default: Any, transaction: Database | None = None
    ) -> Any:
        """Get the value stored at key, or ``default`` if there is none."""
        found, value = await self._get(key, transaction)
        return value if found else default

    @traced("get_or_none")
    async def get_or_none(self, key: str, transaction: Database | None = None) -> Any:
        """Get the value stored at key, or None."""
        found, value = await self._get(key, transaction)
        return value if found else None

    @traced("has")
    async def has(self, key: str, transaction: Database | None = None) -> bool:
        """Whether a live row exists for key."""
        found, _ = await self._get(key, transaction)
        return found

    @traced("put")
    async def put(
        self,
        key: str,
        value: Any,
        extra: Mapping[str, Any] | None = None,
        transaction: Database | None = None,
    ) -> None:
        """Store a value. Clears any expiration on the key."""
        row = {**(extra or {}), "key": key, "value": encode(value), "expires": None}
        await self._table.upsert(row, transaction=transaction)
        logger.debug("Key stored", context={"key": key})

    @traced("assign")
    async def assign(
        self,
        key: str,
        value: Any,
        extra: Mapping[str, Any] | None = None,
        transaction: Database | None = None,
    ) -> None:
        """Shallow-merge a structured value into the one stored at key.

        Scalars, None and ABSENT overwrite. An object is merged into a
        stored object field by field with incoming fields winning, and an
        array into a stored array index by index. Nested values are
        replaced, not merged. Anything else behaves like ``put``.

        The read and the write are only atomic under a shared transaction.
        """
        if not is_structured(value):
            await self.put(key, value, extra=extra, transaction=transaction)
            return

        found, existing = await self._get(key, transaction)
        if found and is_structured(existing) and kind_of(existing) is kind_of(value):
            if isinstance(value, dict):
                value = {**existing, **value}
            else:
                value = list(value) + list(existing[len(value):])

        await self.put(key, value, extra=extra, transaction=transaction)

    @traced("delete")
    async def delete(self, key: str, transaction: Database | None = None) -> bool:
        """Remove a live row. Returns True if one existed."""
        removed = await self._table.destroy(
            And(Eq("key", key), self._live()), transaction=transaction
        )
        logger.debug(
            "Key deleted",
            context={"key": key, "found": removed > 0},
        )
        return removed > 0

    @traced("expire")
    async def expire(
        self, key: str, seconds: float, transaction: Database | None = None
    ) -> None:
        """Set the key to expire ``seconds`` from now.

        Raises:
            KeyNotFoundError: If no live row exists
        """
        now = self._clock()
        updated = await self._table.update(
            {"expires": now + timedelta(seconds=seconds)},
            And(Eq("key", key), Or(IsNull("expires"), Gt("expires", now))),
            transaction=transaction,
        )
        if updated < 1:
            raise KeyNotFoundError(key)
        logger.debug(
            "Key expiration set",
            context={"key": key, "seconds": seconds},
        )

    @traced("ttl")
    async def ttl(self, key: str, transaction: Database | None = None) -> float | None:
        """Seconds until key expires, or None if it never does.

        Raises:
            KeyNotFoundError: If no live row exists
        """
        now = self._clock()
        row = await self._table.find_one(
            And(Eq("key", key), Or(IsNull("expires"), Gt("expires", now))),
            columns=("expires",),
            transaction=transaction,
        )
        if row is None:
            raise KeyNotFoundError(key)
        expires = parse_timestamp(row["expires"])
        if expires is None:
            return None
        return max(0.0, (expires - now).total_seconds())

    @traced("persist")
    async def persist(self, key: str, transaction: Database | None = None) -> None:
        """Remove the expiration from a live key.

        Raises:
            KeyNotFoundError: If no live row exists
        """
        updated = await self._table.update(
            {"expires": None},
            And(Eq("key", key), self._live()),
            transaction=transaction,
        )
        if updated < 1:
            raise KeyNotFoundError(key)

    @traced("gc")
    async def gc(self) -> int:
        """Delete every expired row. Returns the number removed."""
        with Timer() as timer:
            removed = await self._table.destroy(Lte("expires", self._clock()))

        logger.info(
            "Expired rows removed",
            context={"removed": removed},
            duration_ms=timer.duration_ms,
        )
        emit_metric("metadb.gc.removed", float(removed))
        emit_timer("metadb.gc.duration", timer.duration_ms)
        return removed

    @traced("clear")
    async def clear(self, transaction: Database | None = None) -> None:
        """Remove every row, live or expired."""
        await self._table.truncate(transaction=transaction)
        logger.info("Table cleared")

    @traced("count")
    async def count(
        self,
        pattern: str | None = None,
        where: Mapping[str, Predicate | None] | None = None,
        include_expired: bool = False,
        transaction: Database | None = None,
    ) -> int:
        """Count live rows.

        Args:
            pattern: Wildcard pattern (``?`` one char, ``*`` any run) on keys
            where: Labelled clauses merged over the defaults, which are
                labelled ``expires`` and ``key``. A label mapped to None
                drops that clause.
            include_expired: Count expired rows too
            transaction: Optional transaction handle
        """
        return await self._table.count(
            self._where(pattern, where, include_expired), transaction=transaction
        )

    @traced("all")
    async def all(
        self,
        start: int | None = None,
        length: int | None = None,
        pattern: str | None = None,
        where: Mapping[str, Predicate | None] | None = None,
        include_expired: bool = False,
        transaction: Database | None = None,
    ) -> list[MetaItem]:
        """List live rows ordered by key.

        Args:
            start: Offset of the first row
            length: Maximum number of rows
            pattern: Wildcard pattern on keys
            where: Column clauses merged over the default ones
            include_expired: List expired rows too
            transaction: Optional transaction handle
        """
        rows = await self._table.find_all(
            self._where(pattern, where, include_expired),
            offset=start,
            limit=length,
            order_by=("key",),
            transaction=transaction,
        )
        return [self._to_item(row) for row in rows]

    def monitor(self, schedule: str | None = None) -> None:
        """Start periodic garbage collection, replacing any running schedule.

        Args:
            schedule: Cron expression, 5 fields or 6 with leading seconds.
                Defaults to every 20 minutes.
        """
        self.stop()

        if self._scheduler is None:
            from metadb.backends.scheduler.apscheduler import APSchedulerBackend

            self._scheduler = APSchedulerBackend()
            self._owns_scheduler = True

        self._task = GcTask(
            self,
            schedule or DEFAULT_GC_SCHEDULE,
            self._scheduler,
            owns_scheduler=self._owns_scheduler,
        )

    def stop(self) -> None:
        """Cancel periodic garbage collection, if running."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def prefix(self, prefix: str) -> PrefixView:
        """Return a view that namespaces every key under ``prefix``."""
        return PrefixView(self, prefix)
