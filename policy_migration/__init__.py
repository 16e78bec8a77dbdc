"""
Trusted Policy Migration

Moves security policies between trusted appliances, or from a URL onto an
appliance, through the appliances' export, import and apply tasks.
"""

__version__ = "0.1.0"
__author__ = "Policy Migration Team"

from policy_migration.models.config import MigrationSettings, load_settings
from policy_migration.models.policy import MigrationRecord, PolicyState

__all__ = [
    "MigrationSettings",
    "load_settings",
    "MigrationRecord",
    "PolicyState",
]
