"""
Endpoint resolution against the device trust store.

Target identifiers are matched against the devices in the trust store's
reserved device groups. An absent identifier or the local host name
short-circuits to the local appliance without any remote call.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from policy_migration.core.exceptions import NotTrustedError, ProtocolShapeError
from policy_migration.endpoints.base import LocalEndpoint, RemoteEndpoint, TrustedEndpoint
from policy_migration.endpoints.credentials import TrustTokenProvider
from policy_migration.models.config import MigrationSettings
from policy_migration.transport.sender import RemoteRequestSender

logger = logging.getLogger(__name__)

UNDISCOVERED = "UNDISCOVERED"


class EndpointResolver:
    """Resolves caller-supplied target identifiers to endpoints."""

    def __init__(
        self,
        sender: RemoteRequestSender,
        settings: MigrationSettings,
        tokens: Optional[TrustTokenProvider] = None
    ):
        self.sender = sender
        self.settings = settings
        self.tokens = tokens or TrustTokenProvider(sender, settings)

    def local(self) -> LocalEndpoint:
        """The local appliance."""
        return LocalEndpoint(self.tokens)

    async def resolve(self, identifier: Optional[str]) -> RemoteEndpoint:
        """
        Resolve a host address or device UUID to an endpoint.

        Args:
            identifier: Host, machine id, "localhost" or None

        Returns:
            The matching endpoint

        Raises:
            NotTrustedError: If no trusted device matches
        """
        if not identifier or identifier == self.settings.local_host:
            return self.local()

        for device in await self.list_devices():
            if device.host == identifier or device.uuid == identifier:
                logger.debug(f"resolved {identifier} to {device.host}:{device.port}")
                return device

        raise NotTrustedError(f"target {identifier} is not a trusted device.")

    async def list_devices(self) -> List[TrustedEndpoint]:
        """Fetch the devices of every reserved device group."""
        groups = await self._device_groups()
        per_group = await asyncio.gather(*(self._group_devices(group) for group in groups))
        return [device for devices in per_group for device in devices]

    async def _local_request(self, method: str, url: str, body: Any = None) -> Any:
        return await self.sender.send(
            method,
            url,
            headers={"Authorization": self.settings.local_authorization},
            body=body,
        )

    async def _device_groups(self) -> List[str]:
        response = await self._local_request("GET", self.settings.device_groups_url)
        items = response.get("items") if isinstance(response, dict) else None

        groups = [
            group["groupName"]
            for group in items or []
            if str(group.get("groupName", "")).startswith(self.settings.device_group_prefix)
        ]
        if not groups:
            groups = [await self._create_device_group(self.settings.device_group_prefix + "0")]
        return groups

    async def _create_device_group(self, group_name: str) -> str:
        logger.info(f"creating device group {group_name}")
        response = await self._local_request(
            "POST",
            self.settings.device_groups_url,
            body={
                "groupName": group_name,
                "display": "Trusted policy migration devices",
                "description": "Devices policies can be migrated between",
            },
        )
        if isinstance(response, dict) and response.get("groupName"):
            return response["groupName"]
        return group_name

    async def _group_devices(self, group_name: str) -> List[TrustedEndpoint]:
        url = f"{self.settings.device_groups_url}/{group_name}/devices"
        response = await self._local_request("GET", url)
        if not isinstance(response, dict) or "items" not in response:
            raise ProtocolShapeError(
                f"device group {group_name} did not return a list of devices",
                body=response,
            )

        devices = []
        for device in response["items"]:
            if "mcpDeviceName" in device or device.get("state") == UNDISCOVERED:
                devices.append(self._to_endpoint(device))
        return devices

    def _to_endpoint(self, device: Dict[str, Any]) -> TrustedEndpoint:
        return TrustedEndpoint(
            host=device["address"],
            port=device.get("httpsPort", 443),
            tokens=self.tokens,
            uuid=device.get("machineId"),
            state=device.get("state"),
        )
