"""Scheduler protocol for periodic jobs."""

from typing import Awaitable, Callable, Protocol, runtime_checkable

JobCallback = Callable[[], Awaitable[None]]


@runtime_checkable
class ScheduledJob(Protocol):
    """Handle to a recurring job."""

    def cancel(self) -> None:
        """Stop the job. Safe to call more than once."""
        ...


@runtime_checkable
class Scheduler(Protocol):
    """Protocol for cron-driven schedulers."""

    def schedule(self, expression: str, callback: JobCallback) -> ScheduledJob:
        """Run ``callback`` repeatedly per a cron expression.

        Accepts the standard 5-field form and a 6-field form whose first
        field is seconds.
        """
        ...

    def shutdown(self) -> None:
        """Stop running jobs and release the scheduler's resources."""
        ...
