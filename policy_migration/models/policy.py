"""
Policy and migration record models.

This module defines the migration states, the record tracked for every
in-flight migration and the result of a finished remote task.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

UNKNOWN = "UNKNOWN"


class PolicyState(str, Enum):
    """State of a policy as reported to clients."""
    REQUESTED = "REQUESTED"
    EXPORTING = "EXPORTING"
    DOWNLOADING = "DOWNLOADING"
    UPLOADING = "UPLOADING"
    IMPORTING = "IMPORTING"
    ERROR = "ERROR"
    AVAILABLE = "AVAILABLE"
    INACTIVE = "INACTIVE"

    @property
    def is_live(self) -> bool:
        """Whether the state is reported from a live appliance query."""
        return self in (PolicyState.AVAILABLE, PolicyState.INACTIVE)


class TaskStatus(str, Enum):
    """Terminal statuses of a remote task."""
    FINISHED = "COMPLETED"
    FAILURE = "FAILURE"


class MigrationRecord(BaseModel):
    """A policy as seen by clients, either live or mid-migration."""
    id: str
    name: str = UNKNOWN
    enforcement_mode: str = Field(default=UNKNOWN, alias="enforcementMode")
    state: PolicyState = PolicyState.REQUESTED
    path: str = UNKNOWN

    model_config = ConfigDict(populate_by_name=True)

    def to_api(self) -> Dict[str, Any]:
        """Serialize with the wire field names."""
        return self.model_dump(by_alias=True, mode="json")

    def with_state(self, state: PolicyState) -> "MigrationRecord":
        """Return a copy of the record in a new state."""
        return self.model_copy(update={"state": state})


class TaskResult(BaseModel):
    """Outcome of a remote task that reached FINISHED."""
    task_id: str
    reference: Optional[str] = None
    body: Dict[str, Any] = Field(default_factory=dict)
