"""
Core module for the policy migration service.

This module contains the error taxonomy and error categorization
used throughout the application.
"""

from policy_migration.core.exceptions import (
    PolicyMigrationError,
    ConfigurationError,
    ValidationError,
    NotTrustedError,
    ConflictError,
    NotFoundError,
    AuthenticationError,
    ProtocolShapeError,
    TransportError,
    TaskError,
    TaskFailedError,
    TaskTimeoutError,
    TransferError,
    UnsupportedProtocolError,
    ChunkUploadError,
)
from policy_migration.core.error_handler import ErrorHandler, ErrorInfo, ErrorCategory

__all__ = [
    "PolicyMigrationError",
    "ConfigurationError",
    "ValidationError",
    "NotTrustedError",
    "ConflictError",
    "NotFoundError",
    "AuthenticationError",
    "ProtocolShapeError",
    "TransportError",
    "TaskError",
    "TaskFailedError",
    "TaskTimeoutError",
    "TransferError",
    "UnsupportedProtocolError",
    "ChunkUploadError",
    "ErrorHandler",
    "ErrorInfo",
    "ErrorCategory",
]
