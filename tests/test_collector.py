"""Tests for scheduled garbage collection."""

import asyncio
import gc
import logging

import pytest

from metadb.collector import DEFAULT_GC_SCHEDULE, GcTask, get_destroy_counter
from metadb.observability import register_metric_callback, unregister_metric_callback
from metadb.store import MetaStore


class TestMonitor:
    """Tests for MetaStore.monitor."""

    @pytest.mark.asyncio
    async def test_default_schedule(self, store, scheduler) -> None:
        """Monitor defaults to every 20 minutes."""
        store.monitor()
        assert scheduler.jobs[0].expression == DEFAULT_GC_SCHEDULE == "*/20 * * * *"
        assert store.gc_task.schedule == DEFAULT_GC_SCHEDULE

    @pytest.mark.asyncio
    async def test_replaces_previous_task(self, store, scheduler) -> None:
        """A new monitor cancels the old task first."""
        store.monitor("* * * * *")
        first = store.gc_task
        store.monitor("*/5 * * * * *")

        assert not first.active
        assert store.gc_task is not first
        assert [j.expression for j in scheduler.active_jobs] == ["*/5 * * * * *"]

    @pytest.mark.asyncio
    async def test_stop(self, store, scheduler) -> None:
        """Stop cancels the task and is safe to repeat."""
        store.monitor("* * * * *")
        store.stop()
        store.stop()
        assert store.gc_task is None
        assert scheduler.active_jobs == []


class TestGcTask:
    """Tests for GcTask ticks."""

    @pytest.mark.asyncio
    async def test_tick_sweeps_live_store(self, store, scheduler, clock) -> None:
        """Each tick removes expired rows."""
        await store.put("a", 1)
        await store.expire("a", 1)
        store.monitor("* * * * * *")

        clock.advance(2)
        await scheduler.fire()

        assert await store.count(include_expired=True) == 0
        assert store.gc_task.active

    @pytest.mark.asyncio
    async def test_failed_sweep_keeps_schedule(self, store, scheduler, caplog) -> None:
        """A sweep error is logged and the task stays active."""
        store.monitor("* * * * * *")

        async def broken() -> int:
            raise RuntimeError("database down")

        store.gc = broken  # type: ignore[method-assign]

        with caplog.at_level(logging.ERROR, logger="metadb.collector"):
            await scheduler.fire()
            await scheduler.fire()

        assert store.gc_task.active
        assert scheduler.jobs[0].runs == 2
        assert [r.getMessage() for r in caplog.records] == ["GC sweep failed"] * 2

    @pytest.mark.asyncio
    async def test_cancel_is_terminal(self, store, scheduler) -> None:
        """A cancelled task ignores further ticks."""
        task = GcTask(store, "* * * * *", scheduler)
        task.cancel()
        task.cancel()
        assert not task.active
        assert scheduler.jobs[0].cancelled
        await task.tick()


class TestLeakSafety:
    """Tests that a schedule does not keep its store alive."""

    @pytest.mark.asyncio
    async def test_collected_store_cancels_task(self, db, scheduler, clock) -> None:
        """The first tick after collection cancels the job and bumps the counter."""
        meta = MetaStore(db, table_name="leaky", scheduler=scheduler, clock=clock)
        await meta.sync()
        meta.monitor("* * * * * *")
        task = meta.gc_task
        job = scheduler.jobs[0]

        await scheduler.fire()
        assert task.active

        before = get_destroy_counter()
        del meta
        gc.collect()

        await scheduler.fire()
        assert get_destroy_counter() == before + 1
        assert not task.active
        assert job.cancelled

        await scheduler.fire()
        assert get_destroy_counter() == before + 1
        assert job.runs == 2

    @pytest.mark.asyncio
    async def test_task_holds_no_strong_reference(self, db, scheduler) -> None:
        """Dropping the store frees it even with a live task."""
        meta = MetaStore(db, table_name="weak", scheduler=scheduler)
        meta.monitor("* * * * *")
        task = meta.gc_task

        del meta
        gc.collect()

        assert task._ref() is None

    @pytest.mark.asyncio
    async def test_owned_scheduler_is_shut_down(self, db, scheduler) -> None:
        """A scheduler built for the store goes away with it."""
        meta = MetaStore(db, table_name="owned", scheduler=scheduler)
        task = GcTask(meta, "* * * * *", scheduler, owns_scheduler=True)

        del meta
        gc.collect()
        await scheduler.fire()
        await asyncio.sleep(0)

        assert not task.active
        assert scheduler.shut_down

    @pytest.mark.asyncio
    async def test_shared_scheduler_keeps_running(self, db, scheduler) -> None:
        """An injected scheduler outlives the stores using it."""
        survivor = MetaStore(db, table_name="survivor", scheduler=scheduler)
        await survivor.sync()
        survivor.monitor("* * * * *")
        meta = MetaStore(db, table_name="shared", scheduler=scheduler)
        meta.monitor("* * * * *")

        del meta
        gc.collect()
        await scheduler.fire()
        await asyncio.sleep(0)

        assert not scheduler.shut_down
        assert survivor.gc_task.active
        survivor.stop()


class TestTickContext:
    """Tests for logs emitted during a tick."""

    @pytest.mark.asyncio
    async def test_sweep_logs_carry_table(self, store, scheduler, caplog) -> None:
        """Sweep log lines name the table and the operation."""
        store.monitor("* * * * * *")

        with caplog.at_level(logging.INFO, logger="metadb.store"):
            await scheduler.fire()

        record = next(r for r in caplog.records if r.getMessage() == "Expired rows removed")
        assert record.context == {"table": "meta", "operation": "gc", "removed": 0}

    @pytest.mark.asyncio
    async def test_failure_metric_names_table(self, store, scheduler) -> None:
        """A failed sweep is counted against its table."""
        received: list[tuple] = []

        def callback(name: str, value: float, labels: dict) -> None:
            received.append((name, labels))

        async def broken() -> int:
            raise RuntimeError("database down")

        store.monitor("* * * * * *")
        store.gc = broken  # type: ignore[method-assign]
        register_metric_callback(callback)
        try:
            await scheduler.fire()
        finally:
            unregister_metric_callback(callback)

        assert ("metadb.gc.failed", {"table": "meta", "operation": "gc_tick"}) in received
