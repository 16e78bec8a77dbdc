"""
Security policy operations on an appliance.

Wraps the appliance's policy collection and its export/import/apply task
collections. Task based operations go through the RemoteTaskPoller.
"""

import logging
from typing import List, Optional

from policy_migration.core.exceptions import ProtocolShapeError, TransportError
from policy_migration.endpoints.base import RemoteEndpoint
from policy_migration.models.policy import UNKNOWN, MigrationRecord, PolicyState
from policy_migration.tasks.poller import RemoteTaskPoller
from policy_migration.transport.sender import RemoteRequestSender

logger = logging.getLogger(__name__)

POLICIES_PATH = "mgmt/tm/asm/policies"
TASKS_PATH = "mgmt/tm/asm/tasks"
FILE_TRANSFER_PATH = "mgmt/tm/asm/file-transfer"
POLICY_LINK = "http://localhost/mgmt/tm/asm/policies/{policy_id}"


def staged_file_name(policy_id: str) -> str:
    """Name of the exported policy file for a policy id."""
    return f"exportedPolicy_{policy_id}.xml"


class PolicyClient:
    """Client for the policy API of any endpoint."""

    def __init__(self, sender: RemoteRequestSender, poller: RemoteTaskPoller):
        self.sender = sender
        self.poller = poller

    async def list_policies(self, endpoint: RemoteEndpoint) -> List[MigrationRecord]:
        """
        List the policies present on an appliance.

        Returns:
            Records tagged AVAILABLE or INACTIVE from each policy's active flag

        Raises:
            ProtocolShapeError: If the response carries no policy list
            TransportError: If the appliance cannot be queried
        """
        path = f"{POLICIES_PATH}?$select=id,name,fullPath,enforcementMode,active"
        try:
            response = await endpoint.request(self.sender, "GET", path)
        except TransportError as e:
            if e.details.get("connect_error"):
                raise TransportError(
                    f"ASM is not provisioned on {endpoint.host}:{endpoint.port}",
                    details=e.details,
                ) from e
            raise

        if not isinstance(response, dict) or "items" not in response:
            raise ProtocolShapeError(
                f"policies request did not return a list of policies: {response!r}",
                body=response,
            )

        return [
            MigrationRecord(
                id=str(policy["id"]),
                name=policy.get("name", UNKNOWN),
                enforcement_mode=policy.get("enforcementMode") or UNKNOWN,
                state=PolicyState.AVAILABLE if policy.get("active") else PolicyState.INACTIVE,
                path=policy.get("fullPath") or UNKNOWN,
            )
            for policy in response["items"]
        ]

    async def export_policy(self, endpoint: RemoteEndpoint, policy_id: str) -> str:
        """
        Export a policy into the appliance's download area.

        Returns:
            The staged file name the export was written to
        """
        file_name = staged_file_name(policy_id)
        body = {
            "filename": file_name,
            "minimal": True,
            "policyReference": {"link": POLICY_LINK.format(policy_id=policy_id)},
        }
        logger.info(f"exporting policy {policy_id} from {endpoint.host}:{endpoint.port}")
        await self._run_task(endpoint, "export-policy", body)
        return file_name

    async def import_policy(self, endpoint: RemoteEndpoint, policy_id: str, name: str) -> Optional[str]:
        """
        Import an uploaded policy file under a new name.

        Returns:
            Id of the imported policy when the task reports one
        """
        body = {"filename": staged_file_name(policy_id), "name": name}
        logger.info(f"importing policy {policy_id} as {name} to {endpoint.host}:{endpoint.port}")
        result = await self._run_task(endpoint, "import-policy", body)
        return result.reference

    async def apply_policy(self, endpoint: RemoteEndpoint, policy_id: str) -> None:
        """Apply a policy so it becomes active."""
        body = {"policyReference": {"link": POLICY_LINK.format(policy_id=policy_id)}}
        logger.info(f"applying policy {policy_id} on {endpoint.host}:{endpoint.port}")
        await self._run_task(endpoint, "apply-policy", body)

    async def delete_policy(self, endpoint: RemoteEndpoint, policy_id: str) -> None:
        """Delete a policy from an appliance."""
        logger.info(f"deleting policy {policy_id} on {endpoint.host}:{endpoint.port}")
        await endpoint.request(self.sender, "DELETE", f"{POLICIES_PATH}/{policy_id}")

    async def _run_task(self, endpoint: RemoteEndpoint, kind: str, body: dict):
        async def submit():
            return await endpoint.request(self.sender, "POST", f"{TASKS_PATH}/{kind}", body=body)

        return await self.poller.submit_and_await(endpoint, kind, submit)
