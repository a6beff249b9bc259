"""Plugin discovery via Python entry points."""

from importlib.metadata import entry_points
from typing import Any

from metadb.exceptions import BackendError
from metadb.protocols import Database, Scheduler

BACKEND_GROUPS = {
    "database": "metadb.backends.database",
    "scheduler": "metadb.backends.scheduler",
}


def discover_backends(group: str) -> dict[str, Any]:
    """Discover all registered backends for a given group.

    Args:
        group: The backend group name (database, scheduler)

    Returns:
        Dictionary mapping backend names to their classes
    """
    full_group = BACKEND_GROUPS.get(group, group)
    eps = entry_points(group=full_group)
    return {ep.name: ep.load() for ep in eps}


def get_backend(group: str, name: str) -> Any:
    """Get a specific backend class by group and name.

    Args:
        group: The backend group name (database, scheduler)
        name: The backend name (e.g., "sqlite", "apscheduler")

    Returns:
        The backend class

    Raises:
        BackendError: If the backend is not found
    """
    backends = discover_backends(group)
    if name not in backends:
        available = ", ".join(sorted(backends.keys())) or "(none)"
        raise BackendError(
            f"Backend '{name}' not found in group '{group}'. Available: {available}"
        )
    return backends[name]


def create_database(backend: str, **kwargs: Any) -> Database:
    """Create a Database instance.

    Args:
        backend: The backend name (e.g., "sqlite")
        **kwargs: Backend-specific configuration

    Returns:
        A Database implementation
    """
    cls = get_backend("database", backend)
    return cls(**kwargs)


def create_scheduler(backend: str, **kwargs: Any) -> Scheduler:
    """Create a Scheduler instance.

    Args:
        backend: The backend name (e.g., "apscheduler")
        **kwargs: Backend-specific configuration

    Returns:
        A Scheduler implementation
    """
    cls = get_backend("scheduler", backend)
    return cls(**kwargs)
