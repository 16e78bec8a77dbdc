"""
Query and delete operations over live appliances and the registry.
"""

import logging
from typing import List, Optional, Tuple

from policy_migration.core.exceptions import NotFoundError, ValidationError
from policy_migration.models.policy import MigrationRecord, PolicyState

from .orchestrator import MigrationOrchestrator
from .registry import MigrationKey

logger = logging.getLogger(__name__)


class PolicyService:
    """
    Read and delete side of the service.

    Listings merge the records of in-flight migrations with the policies
    queried live from the addressed appliance.
    """

    def __init__(self, orchestrator: MigrationOrchestrator):
        self.orchestrator = orchestrator
        self.resolver = orchestrator.resolver
        self.client = orchestrator.client
        self.downloader = orchestrator.downloader
        self.registry = orchestrator.registry

    async def list_policies(self, target: Optional[str] = None) -> List[MigrationRecord]:
        """
        List in-flight migrations (any destination) and the policies on a target.

        Raises:
            NotTrustedError: If the target is not a trusted device
            TransportError: If the target cannot be queried
        """
        endpoint = await self.resolver.resolve(target)
        live = await self.client.list_policies(endpoint)
        return self.registry.records() + live

    async def get_policy(
        self,
        target: Optional[str] = None,
        policy_id: Optional[str] = None,
        policy_name: Optional[str] = None
    ) -> MigrationRecord:
        """
        Find one policy in the listing of a target.

        Names match by prefix, ids exactly.

        Raises:
            NotFoundError: If nothing matches
        """
        for policy in await self.list_policies(target):
            if policy_name and policy.name.startswith(policy_name):
                return policy
            if policy_id and policy.id == str(policy_id):
                return policy
        raise NotFoundError("no policy with matching policyName or policyId found.")

    async def export_policy_content(
        self,
        source: Optional[str],
        policy_id: Optional[str] = None,
        policy_name: Optional[str] = None
    ) -> Tuple[MigrationRecord, str]:
        """
        Export a policy from an appliance and return its XML.

        The staged copy is deleted once read.

        Returns:
            The exported policy and its XML content

        Raises:
            ValidationError: If neither a policy id nor a name is given
            NotFoundError: If the policy does not exist on the source
        """
        if not policy_id and not policy_name:
            raise ValidationError("you must supply either a policyName or policyId to export")

        endpoint = await self.resolver.resolve(source)
        policy = next(
            (
                p for p in await self.client.list_policies(endpoint)
                if (policy_id and p.id == str(policy_id)) or (policy_name and p.name == policy_name)
            ),
            None,
        )
        if policy is None:
            raise NotFoundError("could not find policy")

        file_name = await self.client.export_policy(endpoint, policy.id)
        await self.downloader.download_from_endpoint(endpoint, file_name)
        return policy, self.downloader.read_and_remove(file_name)

    async def delete_policy(
        self,
        target: Optional[str] = None,
        policy_id: Optional[str] = None,
        policy_name: Optional[str] = None
    ) -> str:
        """
        Remove a policy from a target and from the registry.

        A matching in-flight entry is dropped. The remote policy is deleted
        only when it is live and AVAILABLE; anything else, including no
        match at all, succeeds without a remote call.

        Returns:
            Confirmation message

        Raises:
            ValidationError: If neither a policy id nor a name is given
            NotTrustedError: If the target is not a trusted device
        """
        if not policy_id and not policy_name:
            raise ValidationError("you must supply either a policyName or policyId to delete")

        endpoint = await self.resolver.resolve(target)
        live = await self.client.list_policies(endpoint)

        match: Optional[MigrationRecord] = None
        for policy in live:
            if policy_id and policy.id == str(policy_id):
                match = policy
            elif policy_name and policy.name == policy_name:
                match = policy

        if match is not None:
            key: Optional[MigrationKey] = MigrationKey(endpoint.host, endpoint.port, match.id)
        else:
            key = self.registry.find(endpoint.host, endpoint.port, policy_id, policy_name)

        if key is not None and self.registry.remove(key) is not None:
            logger.info(f"removed in-flight migration {key}")

        if match is not None and match.state == PolicyState.AVAILABLE:
            await self.client.delete_policy(endpoint, match.id)
        elif match is None:
            logger.info(
                f"no policy matching {policy_id or policy_name} on {endpoint.host}:{endpoint.port}"
            )

        return f"policy removed on target {endpoint.host}:{endpoint.port}"
