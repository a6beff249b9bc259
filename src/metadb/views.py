"""Key namespacing over a store."""

import dataclasses
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from metadb.predicates import Predicate, StartsWith
from metadb.protocols.database import Database

if TYPE_CHECKING:
    from metadb.protocols.meta_store import MetaStoreLike
    from metadb.store import MetaItem

# ``where`` label of the clause that pins listings to the namespace
SCOPE_CLAUSE = "key_prefix"


class PrefixView:
    """A store view that prepends a fixed prefix to every key.

    Views nest: ``store.prefix("app:").prefix("user:")`` stores under
    ``app:user:``. Unqualified ``count()`` and ``all()`` only see keys
    under the prefix.

    ``expire``, ``gc``, ``monitor``, ``stop`` and ``clear`` are passed to
    the backing store unchanged. In particular ``clear()`` truncates the
    whole table, not just the namespace, and ``expire(key)`` takes the
    full, unprefixed key.
    """

    def __init__(self, backend: "MetaStoreLike", prefix: str) -> None:
        self.backend = backend
        self.prefix_string = prefix

    def __repr__(self) -> str:
        return f"PrefixView(prefix={self.full_prefix!r}, table_name={self.table_name!r})"

    @property
    def table_name(self) -> str:
        return self.backend.table_name

    @property
    def full_prefix(self) -> str:
        """Prefix applied to keys in the underlying table."""
        if isinstance(self.backend, PrefixView):
            return self.backend.full_prefix + self.prefix_string
        return self.prefix_string

    def _key(self, key: str) -> str:
        return self.prefix_string + key

    def _pattern(self, pattern: str | None) -> str:
        return self.prefix_string + ("*" if pattern is None else pattern)

    def _scoped(
        self, where: Mapping[str, Predicate | None] | None
    ) -> dict[str, Predicate | None]:
        # The LIKE pattern folds case and expands "_"/"%" in the prefix.
        # A clause from an outer view is longer and takes precedence.
        return {SCOPE_CLAUSE: StartsWith("key", self.full_prefix), **(where or {})}

    async def get(self, key: str, transaction: Database | None = None) -> Any:
        return await self.backend.get(self._key(key), transaction=transaction)

    async def get_or_default(
        self, key: str, default: Any, transaction: Database | None = None
    ) -> Any:
        return await self.backend.get_or_default(self._key(key), default, transaction=transaction)

    async def get_or_none(self, key: str, transaction: Database | None = None) -> Any:
        return await self.backend.get_or_none(self._key(key), transaction=transaction)

    async def has(self, key: str, transaction: Database | None = None) -> bool:
        return await self.backend.has(self._key(key), transaction=transaction)

    async def put(
        self,
        key: str,
        value: Any,
        extra: Mapping[str, Any] | None = None,
        transaction: Database | None = None,
    ) -> None:
        await self.backend.put(self._key(key), value, extra=extra, transaction=transaction)

    async def assign(
        self,
        key: str,
        value: Any,
        extra: Mapping[str, Any] | None = None,
        transaction: Database | None = None,
    ) -> None:
        await self.backend.assign(self._key(key), value, extra=extra, transaction=transaction)

    async def delete(self, key: str, transaction: Database | None = None) -> bool:
        return await self.backend.delete(self._key(key), transaction=transaction)

    async def ttl(self, key: str, transaction: Database | None = None) -> float | None:
        return await self.backend.ttl(self._key(key), transaction=transaction)

    async def persist(self, key: str, transaction: Database | None = None) -> None:
        await self.backend.persist(self._key(key), transaction=transaction)

    async def expire(
        self, key: str, seconds: float, transaction: Database | None = None
    ) -> None:
        await self.backend.expire(key, seconds, transaction=transaction)

    async def gc(self) -> int:
        return await self.backend.gc()

    async def clear(self, transaction: Database | None = None) -> None:
        await self.backend.clear(transaction=transaction)

    def monitor(self, schedule: str | None = None) -> None:
        self.backend.monitor(schedule)

    def stop(self) -> None:
        self.backend.stop()

    async def count(
        self,
        pattern: str | None = None,
        where: Mapping[str, Predicate | None] | None = None,
        include_expired: bool = False,
        transaction: Database | None = None,
    ) -> int:
        return await self.backend.count(
            self._pattern(pattern),
            where=self._scoped(where),
            include_expired=include_expired,
            transaction=transaction,
        )

    async def all(
        self,
        start: int | None = None,
        length: int | None = None,
        pattern: str | None = None,
        where: Mapping[str, Predicate | None] | None = None,
        include_expired: bool = False,
        transaction: Database | None = None,
    ) -> list["MetaItem"]:
        items = await self.backend.all(
            start,
            length,
            self._pattern(pattern),
            where=self._scoped(where),
            include_expired=include_expired,
            transaction=transaction,
        )
        cut = len(self.prefix_string)
        return [dataclasses.replace(item, key=item.key[cut:]) for item in items]

    def prefix(self, prefix: str) -> "PrefixView":
        """Return a nested view under ``prefix``."""
        return PrefixView(self, prefix)
