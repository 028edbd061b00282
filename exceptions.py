"""Custom exception hierarchy for the relay reporter."""
from __future__ import annotations

from typing import Any, Optional


class RelayError(Exception):
    """Base exception for all reporter errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Configuration exceptions
class ConfigurationError(RelayError):
    """Raised when configuration is invalid or incomplete for a backend."""

    def __init__(self, message: str, field: Optional[str] = None, env_var: Optional[str] = None):
        details = {}
        if field:
            details["field"] = field
        if env_var:
            details["env_var"] = env_var
        super().__init__(message, details)
        self.field = field
        self.env_var = env_var


class DisabledError(RelayError):
    """Raised when a backend is requested for mode ``off``.

    Not a failure: the façade treats it as an explicit request to stay inert.
    """

    def __init__(self):
        super().__init__("Reporter is disabled (mode is 'off')")


# Backend exceptions
class BackendError(RelayError):
    """Base exception for backend operation failures."""

    pass


class ApiError(BackendError):
    """Raised when the test-management service rejects a request."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
    ):
        details = {}
        if status_code is not None:
            details["status_code"] = status_code
        if endpoint:
            details["endpoint"] = endpoint
        super().__init__(message, details)
        self.status_code = status_code
        self.endpoint = endpoint


class RunNotStartedError(BackendError):
    """Raised when a backend is asked to deliver results before its run exists."""

    def __init__(self, operation: str):
        super().__init__(
            f"Cannot {operation}: test run has not been started",
            {"operation": operation},
        )
        self.operation = operation


# Run-state exceptions
class RunStateError(RelayError):
    """Raised when the persisted run state cannot be read or written."""

    def __init__(self, message: str, path: Optional[str] = None):
        details = {"path": path} if path else {}
        super().__init__(message, details)
        self.path = path


class RunStateNotFoundError(RunStateError):
    """Raised when reading a run state that does not exist."""

    def __init__(self, path: str):
        super().__init__(f"Run state not found: {path}", path)
