"""metadb - expiring key-value metadata stored in a relational table."""

from metadb.codec import ABSENT, ValueKind, decode, encode, kind_of
from metadb.collector import GcTask
from metadb.config import MetaDBConfig
from metadb.exceptions import (
    BackendError,
    ConfigError,
    CorruptValueError,
    KeyNotFoundError,
    MetaDBError,
    NotFoundError,
)
from metadb.facade import (
    all,
    assign,
    clear,
    count,
    delete,
    expire,
    gc,
    get,
    get_destroy_counter,
    get_or_default,
    get_or_none,
    has,
    init,
    init_from_config,
    instance,
    monitor,
    persist,
    prefix,
    put,
    stop,
    sync,
    table_name,
    ttl,
)
from metadb.observability import LogLevel, configure_logging, get_logger
from metadb.patterns import translate
from metadb.store import DEFAULT_TABLE_NAME, MetaItem, MetaStore
from metadb.views import PrefixView

__version__ = "0.1.0"
__all__ = [
    # Store
    "DEFAULT_TABLE_NAME",
    "GcTask",
    "MetaItem",
    "MetaStore",
    "PrefixView",
    # Values and patterns
    "ABSENT",
    "ValueKind",
    "decode",
    "encode",
    "kind_of",
    "translate",
    # Errors
    "BackendError",
    "ConfigError",
    "CorruptValueError",
    "KeyNotFoundError",
    "MetaDBError",
    "NotFoundError",
    # Config and logging
    "LogLevel",
    "MetaDBConfig",
    "configure_logging",
    "get_logger",
    # Global store
    "all",
    "assign",
    "clear",
    "count",
    "delete",
    "expire",
    "gc",
    "get",
    "get_destroy_counter",
    "get_or_default",
    "get_or_none",
    "has",
    "init",
    "init_from_config",
    "instance",
    "monitor",
    "persist",
    "prefix",
    "put",
    "stop",
    "sync",
    "table_name",
    "ttl",
]
