"""
Data models for the policy migration service.
"""

from policy_migration.models.config import MigrationSettings, load_settings
from policy_migration.models.policy import (
    UNKNOWN,
    MigrationRecord,
    PolicyState,
    TaskResult,
    TaskStatus,
)

__all__ = [
    "MigrationSettings",
    "load_settings",
    "UNKNOWN",
    "MigrationRecord",
    "PolicyState",
    "TaskResult",
    "TaskStatus",
]
