"""Scheduled garbage collection of expired rows.

A ``GcTask`` only holds a weak reference to its store, so a store with an
active schedule can still be reclaimed. The first tick after the store is
gone cancels the job and bumps a process-wide counter.
"""

import asyncio
import weakref
from typing import TYPE_CHECKING

from metadb.observability import OperationContext, emit_counter, get_logger
from metadb.protocols.scheduler import ScheduledJob, Scheduler

if TYPE_CHECKING:
    from metadb.store import MetaStore

logger = get_logger(__name__)

DEFAULT_GC_SCHEDULE = "*/20 * * * *"

_destroy_counter = 0


def get_destroy_counter() -> int:
    """Number of GC tasks that cancelled themselves after their store was collected."""
    return _destroy_counter


class GcTask:
    """One recurring sweep bound to a store through a weak reference.

    With ``owns_scheduler`` the scheduler was built for this store alone
    and is shut down once the store is gone.
    """

    def __init__(
        self,
        store: "MetaStore",
        schedule: str,
        scheduler: Scheduler,
        owns_scheduler: bool = False,
    ) -> None:
        self.schedule = schedule
        self._ref: weakref.ref["MetaStore"] = weakref.ref(store)
        self._table_name = store.table_name
        self._scheduler = scheduler
        self._owns_scheduler = owns_scheduler
        self._job: ScheduledJob | None = scheduler.schedule(schedule, self.tick)
        logger.info(
            "GC task scheduled",
            context={"table": self._table_name, "schedule": schedule},
        )

    @property
    def active(self) -> bool:
        return self._job is not None

    def cancel(self) -> None:
        """Stop the task. Cancelled is terminal; repeated calls are no-ops."""
        if self._job is None:
            return
        job, self._job = self._job, None
        job.cancel()

    async def tick(self) -> None:
        """Run one scheduled sweep, or cancel if the store is gone."""
        if self._job is None:
            return

        with OperationContext(table=self._table_name, operation="gc_tick"):
            store = self._ref()
            if store is None:
                self._release()
                return

            try:
                await store.gc()
            except Exception as e:
                # The schedule survives a failed sweep; the next tick retries
                logger.error("GC sweep failed", error=e)
                emit_counter("metadb.gc.failed")

    def _release(self) -> None:
        global _destroy_counter

        self.cancel()
        _destroy_counter += 1
        logger.info("GC task cancelled, store was collected")
        emit_counter("metadb.gc.task_destroyed")

        if self._owns_scheduler:
            # Shut down after this tick returns; the scheduler may still be
            # waiting on it
            asyncio.get_running_loop().call_soon(self._scheduler.shutdown)
            logger.debug("Owned scheduler released")
