"""APScheduler-backed cron scheduler."""

import uuid
from typing import Any

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from metadb.observability import get_logger
from metadb.protocols.scheduler import JobCallback

logger = get_logger(__name__)


def parse_cron(expression: str, timezone: str = "UTC") -> CronTrigger:
    """Build a trigger from a 5-field or 6-field (seconds first) cron expression.

    Raises:
        ValueError: If the expression has another number of fields
    """
    fields = expression.split()
    if len(fields) == 5:
        return CronTrigger.from_crontab(expression, timezone=timezone)
    if len(fields) == 6:
        second, minute, hour, day, month, day_of_week = fields
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=day_of_week,
            timezone=timezone,
        )
    raise ValueError(
        f"Cron expression must have 5 or 6 fields, got {len(fields)}: {expression!r}"
    )


class APSchedulerJob:
    """Handle to a job registered with APScheduler."""

    def __init__(self, job: Job) -> None:
        self.job = job
        self._cancelled = False

    @property
    def id(self) -> str:
        return self.job.id

    def cancel(self) -> None:
        """Remove the job from its scheduler."""
        if self._cancelled:
            return
        self._cancelled = True
        try:
            self.job.remove()
        except JobLookupError:
            # Scheduler already dropped it (e.g. after shutdown)
            logger.debug("Job already removed", context={"job_id": self.job.id})


class APSchedulerBackend:
    """Scheduler backend using APScheduler's ``AsyncIOScheduler``.

    The scheduler is started on first use and must be used from within a
    running event loop.
    """

    def __init__(
        self,
        scheduler: AsyncIOScheduler | None = None,
        timezone: str = "UTC",
        misfire_grace_time: int = 60,
        **kwargs: Any,
    ) -> None:
        """Initialize the backend.

        Args:
            scheduler: Existing scheduler to share. A new one is created
                when omitted.
            timezone: Timezone for cron fields
            misfire_grace_time: Seconds a late run may still start
            **kwargs: Ignored (for compatibility with other backends)
        """
        self.timezone = timezone
        self.scheduler = scheduler or AsyncIOScheduler(
            timezone=timezone,
            job_defaults={
                "coalesce": True,  # Combine missed runs
                "max_instances": 1,  # One sweep at a time
                "misfire_grace_time": misfire_grace_time,
            },
        )

    def schedule(self, expression: str, callback: JobCallback) -> APSchedulerJob:
        """Run ``callback`` per the cron expression."""
        trigger = parse_cron(expression, timezone=self.timezone)
        job = self.scheduler.add_job(
            callback,
            trigger=trigger,
            id=f"metadb-{uuid.uuid4().hex}",
        )

        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Scheduler started")

        logger.debug(
            "Job scheduled",
            context={"job_id": job.id, "schedule": expression},
        )
        return APSchedulerJob(job)

    def shutdown(self, wait: bool = False) -> None:
        """Stop the scheduler and drop its jobs."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Scheduler shutdown", context={"wait": wait})
