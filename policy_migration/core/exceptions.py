"""
Custom exceptions for the policy migration service.

This module defines the error taxonomy used throughout the application.
Request-time errors (resolution, pre-flight checks) are raised to the caller;
errors raised after a migration was accepted are recorded on its registry
entry instead.
"""

from typing import Any, Dict, Optional


class PolicyMigrationError(Exception):
    """Base exception class for policy migration errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}


class ConfigurationError(PolicyMigrationError):
    """Raised when there's an error in configuration."""
    pass


class ValidationError(PolicyMigrationError):
    """Raised when request parameters are missing or inconsistent."""
    pass


class NotTrustedError(PolicyMigrationError):
    """Raised when a target identifier does not match any trusted device."""
    pass


class ConflictError(PolicyMigrationError):
    """Raised when a policy already exists on the destination or is in flight."""
    pass


class NotFoundError(PolicyMigrationError):
    """Raised when a policy or migration record cannot be found."""
    pass


class AuthenticationError(PolicyMigrationError):
    """Raised when a credential for a remote device cannot be obtained."""
    pass


class ProtocolShapeError(PolicyMigrationError):
    """Raised when a remote response is missing expected fields."""

    def __init__(self, message: str, body: Any = None, **kwargs):
        super().__init__(message, **kwargs)
        self.body = body


class TransportError(PolicyMigrationError):
    """Raised when a remote request cannot be completed."""

    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status = status


class TaskError(PolicyMigrationError):
    """Base class for remote task failures."""

    def __init__(self, message: str, task_id: Optional[str] = None, body: Any = None, **kwargs):
        super().__init__(message, **kwargs)
        self.task_id = task_id
        self.body = body


class TaskFailedError(TaskError):
    """Raised when a remote task reports FAILURE."""
    pass


class TaskTimeoutError(TaskError):
    """Raised when a remote task does not finish before the deadline."""
    pass


class TransferError(PolicyMigrationError):
    """Raised when moving a policy file fails."""
    pass


class UnsupportedProtocolError(TransferError):
    """Raised when a download source uses an unsupported scheme."""
    pass


class ChunkUploadError(TransferError):
    """Raised when an upload chunk is rejected by the destination."""

    def __init__(self, message: str, start: int, end: int, status: int, **kwargs):
        super().__init__(message, **kwargs)
        self.start = start
        self.end = end
        self.status = status
