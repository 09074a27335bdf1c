"""Exception types raised by the index and storage layers."""
from __future__ import annotations


class ChainDBError(RuntimeError):
    """Base class for catalog errors."""


class ConfigError(ChainDBError):
    pass


class NotInitializedError(ChainDBError):
    def __init__(self, component: str):
        super().__init__(f"{component} has no search client; run bootstrap first")
        self.component = component


class ServiceConnectionError(ChainDBError):
    """The search service could not be reached."""


class ServiceError(ChainDBError):
    """The search service answered with an error payload."""

    def __init__(self, message: str, status: int = 0, error_type: str = "", reason: str = ""):
        super().__init__(message)
        self.status = status
        self.error_type = error_type
        self.reason = reason


class SchemaError(ServiceError):
    pass


class WriteError(ServiceError):
    pass


class DeleteError(ServiceError):
    pass


class QueryError(ServiceError):
    pass


class ResponseParseError(ChainDBError):
    pass


class NotFound(ChainDBError):
    def __init__(self, name: str):
        super().__init__(f"file not found: {name}")
        self.name = name


class AccessError(ChainDBError):
    def __init__(self, name: str, cause: Exception | None = None):
        detail = f": {cause}" if cause else ""
        super().__init__(f"cannot access file {name}{detail}")
        self.name = name
