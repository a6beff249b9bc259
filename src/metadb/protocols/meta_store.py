"""Capability set shared by stores and prefix views."""

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from metadb.predicates import Predicate
from metadb.protocols.database import Database

if TYPE_CHECKING:
    from metadb.store import MetaItem
    from metadb.views import PrefixView


@runtime_checkable
class MetaStoreLike(Protocol):
    """Anything a ``PrefixView`` can wrap: a ``MetaStore`` or another view."""

    @property
    def table_name(self) -> str: ...

    async def get(self, key: str, transaction: Database | None = None) -> Any: ...

    async def get_or_default(
        self, key: str, default: Any, transaction: Database | None = None
    ) -> Any: ...

    async def get_or_none(self, key: str, transaction: Database | None = None) -> Any: ...

    async def has(self, key: str, transaction: Database | None = None) -> bool: ...

    async def put(
        self,
        key: str,
        value: Any,
        extra: Mapping[str, Any] | None = None,
        transaction: Database | None = None,
    ) -> None: ...

    async def assign(
        self,
        key: str,
        value: Any,
        extra: Mapping[str, Any] | None = None,
        transaction: Database | None = None,
    ) -> None: ...

    async def delete(self, key: str, transaction: Database | None = None) -> bool: ...

    async def expire(
        self, key: str, seconds: float, transaction: Database | None = None
    ) -> None: ...

    async def ttl(self, key: str, transaction: Database | None = None) -> float | None: ...

    async def persist(self, key: str, transaction: Database | None = None) -> None: ...

    async def gc(self) -> int: ...

    async def clear(self, transaction: Database | None = None) -> None: ...

    async def count(
        self,
        pattern: str | None = None,
        where: Mapping[str, Predicate | None] | None = None,
        include_expired: bool = False,
        transaction: Database | None = None,
    ) -> int: ...

    async def all(
        self,
        start: int | None = None,
        length: int | None = None,
        pattern: str | None = None,
        where: Mapping[str, Predicate | None] | None = None,
        include_expired: bool = False,
        transaction: Database | None = None,
    ) -> list["MetaItem"]: ...

    def monitor(self, schedule: str | None = None) -> None: ...

    def stop(self) -> None: ...

    def prefix(self, prefix: str) -> "PrefixView": ...
