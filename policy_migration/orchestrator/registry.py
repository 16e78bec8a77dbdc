"""
In-memory registry of in-flight migrations.

Entries are keyed by the destination endpoint and the policy id and are
replaced whole on every state change, so readers never observe a
half-updated record. The registry is owned by one orchestrator and lives
as long as the process.
"""

import logging
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

from policy_migration.core.exceptions import ConflictError
from policy_migration.models.policy import MigrationRecord, PolicyState

logger = logging.getLogger(__name__)


class MigrationKey(NamedTuple):
    """Identity of a migration: destination host, port and policy id."""
    host: str
    port: int
    policy_id: str

    def __str__(self) -> str:
        return f"{self.host}:{self.port}:{self.policy_id}"


class MigrationRegistry:
    """Tracks the record of every migration that has not completed."""

    def __init__(self):
        self._entries: Dict[MigrationKey, MigrationRecord] = {}

    def register(self, key: MigrationKey, record: MigrationRecord) -> MigrationRecord:
        """
        Add the record for a newly requested migration.

        An entry left in ERROR by an earlier attempt is replaced.

        Raises:
            ConflictError: If a migration for the same key is still running
        """
        existing = self._entries.get(key)
        if existing is not None and existing.state != PolicyState.ERROR:
            raise ConflictError(
                f"policy {key.policy_id} is already being migrated to {key.host}:{key.port} "
                f"(state {existing.state.value})",
                details={"state": existing.state.value},
            )
        if existing is not None:
            logger.info(f"replacing failed migration entry {key}")
        self._entries[key] = record
        return record

    def update_state(
        self,
        key: MigrationKey,
        state: PolicyState,
        owner: Optional[MigrationRecord] = None
    ) -> Optional[MigrationRecord]:
        """
        Move an entry to a new state.

        Entries removed in the meantime are not recreated. When ``owner`` is
        given, the entry is only updated while it is still that record.

        Returns:
            The updated record, or None if the key is no longer tracked
            or now belongs to another migration
        """
        current = self._entries.get(key)
        if current is None or (owner is not None and current is not owner):
            logger.debug(f"migration {key} is no longer tracked, ignoring {state.value}")
            return None
        updated = current.with_state(state)
        self._entries[key] = updated
        return updated

    def remove(self, key: MigrationKey, owner: Optional[MigrationRecord] = None) -> Optional[MigrationRecord]:
        """Drop an entry, only if it is still ``owner`` when given; returns the removed record."""
        current = self._entries.get(key)
        if current is None or (owner is not None and current is not owner):
            return None
        return self._entries.pop(key)

    def get(self, key: MigrationKey) -> Optional[MigrationRecord]:
        return self._entries.get(key)

    def records(self) -> List[MigrationRecord]:
        """Snapshot of every tracked record, any destination."""
        return list(self._entries.values())

    def items(self) -> List[Tuple[MigrationKey, MigrationRecord]]:
        return list(self._entries.items())

    def find(
        self,
        host: str,
        port: int,
        policy_id: Optional[str] = None,
        policy_name: Optional[str] = None
    ) -> Optional[MigrationKey]:
        """Key of the entry on an endpoint matching a policy id or name."""
        for key, record in self._entries.items():
            if key.host != host or key.port != port:
                continue
            if policy_id and key.policy_id == str(policy_id):
                return key
            if policy_name and record.name == policy_name:
                return key
        return None

    def __contains__(self, key: MigrationKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[MigrationKey]:
        return iter(list(self._entries))
