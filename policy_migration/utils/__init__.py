"""
Utilities module for the policy migration service.
"""

from policy_migration.utils.helpers import (
    format_bytes,
    format_duration,
    pick,
)
from policy_migration.utils.logging import (
    setup_logging,
    get_logger,
    MigrationLogger,
)

__all__ = [
    # Helper functions
    "format_bytes",
    "format_duration",
    "pick",
    # Logging utilities
    "setup_logging",
    "get_logger",
    "MigrationLogger",
]
