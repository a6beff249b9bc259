"""Process-wide default store.

``init()`` installs a single ``MetaStore`` and the module-level functions
forward to it:

    import metadb

    metadb.init(SQLiteDatabase("app.db"))
    await metadb.sync()
    await metadb.put("schema_version", 3)

There is one writer: ``init`` (or ``init_from_config``) replaces the
instance and stops the previous one's GC schedule. Everything else only
reads the reference.
"""

from collections.abc import Mapping
from typing import Any

from metadb.collector import get_destroy_counter as _get_destroy_counter
from metadb.config import MetaDBConfig
from metadb.exceptions import MetaDBError
from metadb.observability import configure_logging, get_logger
from metadb.plugins import create_database, create_scheduler
from metadb.predicates import Predicate
from metadb.protocols.database import Database
from metadb.store import DEFAULT_TABLE_NAME, MetaItem, MetaStore
from metadb.views import PrefixView

logger = get_logger(__name__)

_global_instance: MetaStore | None = None


def init(database: Database, table_name: str = DEFAULT_TABLE_NAME, **kwargs: Any) -> MetaStore:
    """Install the process-wide store.

    Args:
        database: Database backend
        table_name: Table for the store
        **kwargs: Passed to ``MetaStore``

    Returns:
        The new store
    """
    global _global_instance

    if _global_instance is not None:
        _global_instance.stop()
    _global_instance = MetaStore(database, table_name=table_name, **kwargs)
    logger.info("Global store initialized", context={"table": table_name})
    return _global_instance


async def init_from_config(config: MetaDBConfig) -> MetaStore:
    """Build backends from configuration, install the store and sync its table."""
    configure_logging(config.logging.level, config.logging.format)

    database = create_database(config.database.backend, path=config.database.path)
    scheduler = create_scheduler(
        config.scheduler.backend,
        timezone=config.scheduler.timezone,
        misfire_grace_time=config.scheduler.misfire_grace_time,
    )
    store = init(
        database,
        table_name=config.store.table_name,
        columns=config.store.columns,
        scheduler=scheduler,
    )
    await store.sync()
    if config.store.monitor:
        store.monitor(config.store.gc_schedule)
    return store


def instance() -> MetaStore:
    """Return the process-wide store.

    Raises:
        MetaDBError: If ``init`` has not been called
    """
    if _global_instance is None:
        raise MetaDBError("metadb is not initialized; call metadb.init() first")
    return _global_instance


async def sync() -> None:
    await instance().sync()


async def get(key: str, transaction: Database | None = None) -> Any:
    return await instance().get(key, transaction=transaction)


async def get_or_default(key: str, default: Any, transaction: Database | None = None) -> Any:
    return await instance().get_or_default(key, default, transaction=transaction)


async def get_or_none(key: str, transaction: Database | None = None) -> Any:
    return await instance().get_or_none(key, transaction=transaction)


async def has(key: str, transaction: Database | None = None) -> bool:
    return await instance().has(key, transaction=transaction)


async def put(
    key: str,
    value: Any,
    extra: Mapping[str, Any] | None = None,
    transaction: Database | None = None,
) -> None:
    await instance().put(key, value, extra=extra, transaction=transaction)


async def assign(
    key: str,
    value: Any,
    extra: Mapping[str, Any] | None = None,
    transaction: Database | None = None,
) -> None:
    await instance().assign(key, value, extra=extra, transaction=transaction)


async def delete(key: str, transaction: Database | None = None) -> bool:
    return await instance().delete(key, transaction=transaction)


async def expire(key: str, seconds: float, transaction: Database | None = None) -> None:
    await instance().expire(key, seconds, transaction=transaction)


async def ttl(key: str, transaction: Database | None = None) -> float | None:
    return await instance().ttl(key, transaction=transaction)


async def persist(key: str, transaction: Database | None = None) -> None:
    await instance().persist(key, transaction=transaction)


async def gc() -> int:
    return await instance().gc()


async def clear(transaction: Database | None = None) -> None:
    await instance().clear(transaction=transaction)


async def count(
    pattern: str | None = None,
    where: Mapping[str, Predicate | None] | None = None,
    include_expired: bool = False,
    transaction: Database | None = None,
) -> int:
    return await instance().count(
        pattern, where=where, include_expired=include_expired, transaction=transaction
    )


async def all(
    start: int | None = None,
    length: int | None = None,
    pattern: str | None = None,
    where: Mapping[str, Predicate | None] | None = None,
    include_expired: bool = False,
    transaction: Database | None = None,
) -> list[MetaItem]:
    return await instance().all(
        start,
        length,
        pattern,
        where=where,
        include_expired=include_expired,
        transaction=transaction,
    )


def monitor(schedule: str | None = None) -> None:
    instance().monitor(schedule)


def stop() -> None:
    instance().stop()


def prefix(value: str) -> PrefixView:
    return instance().prefix(value)


def table_name() -> str:
    return instance().table_name


def get_destroy_counter() -> int:
    """Number of GC tasks that cancelled themselves after their store was collected."""
    return _get_destroy_counter()
