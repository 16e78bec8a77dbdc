"""
Error categorization for the policy migration service.

Maps exceptions onto categories, severities and the HTTP status codes the
inbound API reports, so that the API and CLI layers share one mapping.
"""

import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Type

from .exceptions import (
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
    TransferError,
    UnsupportedProtocolError,
)


class ErrorCategory(str, Enum):
    """Categories of errors for better handling and reporting."""
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    TRUST = "trust"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    AUTHENTICATION = "authentication"
    PROTOCOL = "protocol"
    CONNECTIVITY = "connectivity"
    TASK = "task"
    TRANSFER = "transfer"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorInfo:
    """Categorized error information."""
    error: Exception
    category: ErrorCategory
    severity: ErrorSeverity
    http_status: int
    message: str
    timestamp: datetime = field(default_factory=datetime.now)
    details: Dict[str, Any] = field(default_factory=dict)
    traceback_str: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Render the error the way the API reports it."""
        return {
            "code": self.http_status,
            "message": self.message,
            "type": self.category.value,
            "details": self.details or None,
        }


class ErrorHandler:
    """Categorizes errors raised by the migration components."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._error_mappings = self._build_error_mappings()

    def _build_error_mappings(self) -> Dict[Type[Exception], Dict[str, Any]]:
        """Build mapping of exception types to categories, severities and statuses."""
        return {
            ConfigurationError: {
                "category": ErrorCategory.CONFIGURATION,
                "severity": ErrorSeverity.HIGH,
                "status": 500,
            },
            ValidationError: {
                "category": ErrorCategory.VALIDATION,
                "severity": ErrorSeverity.LOW,
                "status": 400,
            },
            NotTrustedError: {
                "category": ErrorCategory.TRUST,
                "severity": ErrorSeverity.MEDIUM,
                "status": 400,
            },
            ConflictError: {
                "category": ErrorCategory.CONFLICT,
                "severity": ErrorSeverity.LOW,
                "status": 409,
            },
            NotFoundError: {
                "category": ErrorCategory.NOT_FOUND,
                "severity": ErrorSeverity.LOW,
                "status": 404,
            },
            AuthenticationError: {
                "category": ErrorCategory.AUTHENTICATION,
                "severity": ErrorSeverity.HIGH,
                "status": 500,
            },
            ProtocolShapeError: {
                "category": ErrorCategory.PROTOCOL,
                "severity": ErrorSeverity.HIGH,
                "status": 500,
            },
            TransportError: {
                "category": ErrorCategory.CONNECTIVITY,
                "severity": ErrorSeverity.HIGH,
                "status": 500,
            },
            TaskError: {
                "category": ErrorCategory.TASK,
                "severity": ErrorSeverity.HIGH,
                "status": 500,
            },
            TransferError: {
                "category": ErrorCategory.TRANSFER,
                "severity": ErrorSeverity.HIGH,
                "status": 500,
            },
            UnsupportedProtocolError: {
                "category": ErrorCategory.VALIDATION,
                "severity": ErrorSeverity.LOW,
                "status": 400,
            },
        }

    def _lookup(self, error: Exception) -> Dict[str, Any]:
        # Walk the MRO so subclasses inherit their parent's mapping
        for error_type in type(error).__mro__:
            if error_type in self._error_mappings:
                return self._error_mappings[error_type]
        return {
            "category": ErrorCategory.UNKNOWN,
            "severity": ErrorSeverity.CRITICAL,
            "status": 500,
        }

    def categorize(self, error: Exception) -> ErrorInfo:
        """
        Categorize an error.

        Args:
            error: The exception to categorize

        Returns:
            ErrorInfo describing the error
        """
        mapping = self._lookup(error)
        details: Dict[str, Any] = {}
        if isinstance(error, PolicyMigrationError):
            message = error.message
            details = dict(error.details)
        else:
            message = str(error) or error.__class__.__name__

        return ErrorInfo(
            error=error,
            category=mapping["category"],
            severity=mapping["severity"],
            http_status=mapping["status"],
            message=message,
            details=details,
            traceback_str="".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            ),
        )

    def handle(self, error: Exception) -> ErrorInfo:
        """Categorize an error and log it at a level matching its severity."""
        info = self.categorize(error)
        if info.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL):
            self.logger.error(f"{info.category.value} error: {info.message}")
        else:
            self.logger.info(f"{info.category.value} error: {info.message}")
        return info
