"""metadb exceptions."""

from typing import Any


class MetaDBError(Exception):
    """Base exception for metadb."""

    pass


class ConfigError(MetaDBError):
    """Configuration error."""

    pass


class BackendError(MetaDBError):
    """Backend lookup or construction error."""

    pass


class NotFoundError(MetaDBError):
    """Resource not found."""

    pass


class KeyNotFoundError(NotFoundError, KeyError):
    """No live row exists for the requested key."""

    def __init__(self, key: str) -> None:
        super().__init__(f"key not found: {key}")
        self.key = key

    def __str__(self) -> str:
        return self.args[0]


class CorruptValueError(MetaDBError):
    """Stored value text could not be decoded."""

    def __init__(self, message: str, raw: Any = None) -> None:
        super().__init__(message)
        self.raw = raw
