"""Protocol interfaces for pluggable backends."""

from metadb.protocols.database import Database, Row
from metadb.protocols.meta_store import MetaStoreLike
from metadb.protocols.scheduler import JobCallback, ScheduledJob, Scheduler

__all__ = [
    "Database",
    "JobCallback",
    "MetaStoreLike",
    "Row",
    "ScheduledJob",
    "Scheduler",
]
