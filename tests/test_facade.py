"""Tests for the process-wide store functions."""

import logging

import pytest

import metadb
from metadb import facade
from metadb.config import MetaDBConfig
from metadb.exceptions import MetaDBError
from metadb.store import MetaStore


@pytest.fixture(autouse=True)
def reset_global():
    """Start and end every test without a global store."""
    facade._global_instance = None
    yield
    if facade._global_instance is not None:
        facade._global_instance.stop()
    facade._global_instance = None


class TestUninitialized:
    """Tests for calls before init."""

    def test_instance_raises(self):
        """instance() explains how to initialize."""
        with pytest.raises(MetaDBError, match="metadb.init"):
            facade.instance()

    @pytest.mark.asyncio
    async def test_operations_raise(self):
        """Forwarding functions raise too."""
        with pytest.raises(MetaDBError):
            await metadb.get("a")
        with pytest.raises(MetaDBError):
            metadb.prefix("x")


class TestGlobalStore:
    """Tests for the module-level functions."""

    @pytest.mark.asyncio
    async def test_round_trip(self, db, clock, scheduler):
        """Module functions forward to the installed store."""
        store = metadb.init(db, clock=clock, scheduler=scheduler)
        assert facade.instance() is store
        assert metadb.table_name() == "__metadb"

        await metadb.sync()
        await metadb.put("a", {"x": 1})
        await metadb.assign("a", {"y": 2})
        assert await metadb.get("a") == {"x": 1, "y": 2}
        assert await metadb.get_or_default("missing", 5) == 5
        assert await metadb.get_or_none("missing") is None
        assert await metadb.has("a")

        await metadb.expire("a", 10)
        assert await metadb.ttl("a") == 10
        await metadb.persist("a")
        assert await metadb.ttl("a") is None

        await metadb.prefix("app.").put("b", 2)
        assert await metadb.get("app.b") == 2
        assert await metadb.count() == 2
        assert [item.key for item in await metadb.all()] == ["a", "app.b"]

        assert await metadb.delete("a")
        await metadb.clear()
        assert await metadb.count() == 0

    @pytest.mark.asyncio
    async def test_gc_and_monitor(self, db, clock, scheduler):
        """gc and monitor reach the installed store."""
        metadb.init(db, clock=clock, scheduler=scheduler)
        await metadb.sync()
        await metadb.put("a", 1)
        await metadb.expire("a", 1)
        clock.advance(5)

        assert await metadb.gc() == 1

        metadb.monitor("*/5 * * * *")
        assert [job.expression for job in scheduler.active_jobs] == ["*/5 * * * *"]
        metadb.stop()
        assert scheduler.active_jobs == []

    @pytest.mark.asyncio
    async def test_reinit_stops_previous(self, db, scheduler):
        """Replacing the global store cancels the old schedule."""
        first = metadb.init(db, table_name="first", scheduler=scheduler)
        first.monitor("* * * * *")

        second = metadb.init(db, table_name="second", scheduler=scheduler)

        assert first.gc_task is None
        assert scheduler.active_jobs == []
        assert facade.instance() is second

    def test_destroy_counter_is_exposed(self):
        """The destroy counter is readable without a store."""
        assert isinstance(metadb.get_destroy_counter(), int)


class TestInitFromConfig:
    """Tests for config-driven setup."""

    @pytest.mark.asyncio
    async def test_builds_store(self, sample_config_dict):
        """Backends come from configuration and the table is created."""
        config = MetaDBConfig.from_dict(sample_config_dict)
        try:
            store = await metadb.init_from_config(config)

            assert isinstance(store, MetaStore)
            assert metadb.table_name() == "test_meta"
            assert store.gc_task is None

            await metadb.put("k", [1, 2])
            assert await metadb.get("k") == [1, 2]
        finally:
            if facade._global_instance is not None:
                await facade._global_instance.database.close()
            root = logging.getLogger("metadb")
            root.handlers.clear()
            root.setLevel(logging.NOTSET)

    @pytest.mark.asyncio
    async def test_monitor_enabled(self, sample_config_dict):
        """monitor: true starts the GC schedule."""
        sample_config_dict["store"]["monitor"] = True
        config = MetaDBConfig.from_dict(sample_config_dict)
        try:
            store = await metadb.init_from_config(config)
            assert store.gc_task is not None
            assert store.gc_task.schedule == "*/5 * * * *"
        finally:
            store = facade._global_instance
            if store is not None:
                store.stop()
                store._scheduler.shutdown()
                await store.database.close()
            root = logging.getLogger("metadb")
            root.handlers.clear()
            root.setLevel(logging.NOTSET)
