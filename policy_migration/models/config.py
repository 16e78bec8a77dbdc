"""
Configuration models for the policy migration service.

This module defines the pydantic settings model and the loader that
reads it from a YAML or JSON file.
"""

import base64
import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from policy_migration.core.exceptions import ConfigurationError


class MigrationSettings(BaseModel):
    """Runtime settings for endpoints, staging and transfer behaviour."""
    local_host: str = "localhost"
    local_port: int = Field(default=8100, ge=1, le=65535)
    local_username: str = "admin"
    local_password: str = ""
    token_url: str = "http://localhost:8100/shared/token"
    device_groups_url: str = "http://localhost:8100/mgmt/shared/resolver/device-groups"
    device_group_prefix: str = "TrustProxy_"
    staging_directory: Path = Path("/var/tmp")
    chunk_size: int = Field(default=512000, ge=1)
    poll_interval: float = Field(default=2.0, gt=0)  # seconds
    task_timeout: float = Field(default=120.0, gt=0)  # seconds
    verify_ssl: bool = False
    link_local_sources: bool = True
    request_timeout: Optional[float] = Field(default=None, gt=0)  # seconds

    @field_validator('device_group_prefix', 'local_host')
    @classmethod
    def must_not_be_empty(cls, v):
        if not v or not v.strip():
            raise ValueError('value cannot be empty')
        return v.strip()

    @property
    def local_authorization(self) -> str:
        """HTTP Basic header value for the local trust credential."""
        raw = f"{self.local_username}:{self.local_password}".encode()
        return "Basic " + base64.b64encode(raw).decode()

    def staged_path(self, file_name: str) -> Path:
        """Full path of a file in the staging directory."""
        return self.staging_directory / file_name


def load_settings(path: Optional[Union[str, Path]] = None, **overrides: Any) -> MigrationSettings:
    """
    Load settings from a YAML or JSON file.

    Args:
        path: Optional settings file; defaults are used when omitted
        **overrides: Values that take precedence over the file contents

    Returns:
        Validated settings

    Raises:
        ConfigurationError: If the file cannot be read or fails validation
    """
    data: Dict[str, Any] = {}
    if path is not None:
        file_path = Path(path)
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                if file_path.suffix.lower() == ".json":
                    data = json.load(f) or {}
                else:
                    data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Could not read settings file {file_path}: {e}")
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file {file_path} must contain a mapping")

    data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return MigrationSettings(**data)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid settings: {e}", details={"errors": e.errors()})
