"""
Orchestration module for policy migrations.

This module provides the orchestrator that drives migrations, the registry
of in-flight migrations and the query/delete service.
"""

from .registry import MigrationKey, MigrationRegistry
from .orchestrator import MigrationOrchestrator, MigrationRun
from .facade import PolicyService

__all__ = [
    "MigrationKey",
    "MigrationRegistry",
    "MigrationOrchestrator",
    "MigrationRun",
    "PolicyService",
]
