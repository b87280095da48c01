"""
Planner error taxonomy.

NetworkError and BackendError come out of the REST client and trigger a
rollback in the sync layer. ValidationError is raised before any local
state changes. A temp-entity bypass is not an error: it is reported as
SyncStatus.BYPASSED.
"""
from typing import Optional


class PlannerError(Exception):
    """Base class for all planner engine errors."""
    pass


class NetworkError(PlannerError):
    """Raised when the backend could not be reached (transport failure)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class BackendError(PlannerError):
    """Raised when the backend answers with a non-2xx status."""

    def __init__(self, status: int, message: str = ""):
        self.status = status
        self.message = message.strip() if message else ""
        super().__init__(f"Backend returned {status}: {self.message or 'no details'}")


class ValidationError(PlannerError):
    """Raised when a command fails a client-side precondition."""
    pass


class ConfigError(PlannerError):
    """Raised when configuration is invalid or incomplete."""
    pass
