"""
Credentials for appliance requests.

Same-host calls use the fixed local trust credential. Cross-host calls use
a token issued by the local trust authority for the destination address.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl

from policy_migration.core.exceptions import AuthenticationError, TransportError
from policy_migration.models.config import MigrationSettings
from policy_migration.transport.sender import RemoteRequestSender

logger = logging.getLogger(__name__)


@dataclass
class Credentials:
    """Headers and query parameters that authenticate one request."""
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)


class TrustTokenProvider:
    """Exchanges the local trust credential for per-host tokens."""

    def __init__(self, sender: RemoteRequestSender, settings: MigrationSettings):
        self.sender = sender
        self.settings = settings

    def local_credentials(self) -> Credentials:
        """Credentials for the local appliance."""
        return Credentials(headers={"Authorization": self.settings.local_authorization})

    async def get_token(self, host: str) -> Optional[Dict[str, Any]]:
        """
        Obtain a token for a remote host.

        Args:
            host: Address of the remote device

        Returns:
            The token document, or None for the local appliance

        Raises:
            AuthenticationError: If the trust authority does not issue a token
        """
        if host == self.settings.local_host:
            return None

        try:
            token = await self.sender.send(
                "POST",
                self.settings.token_url,
                headers={"Authorization": self.settings.local_authorization},
                body={"address": host},
            )
        except TransportError as e:
            raise AuthenticationError(f"could not obtain a token for {host}: {e.message}") from e

        if not isinstance(token, dict) or not (token.get("queryParam") or token.get("token")):
            raise AuthenticationError(f"token request for {host} returned no token: {token!r}")
        return token

    async def credentials_for(self, host: str) -> Credentials:
        """Fresh credentials for a host; tokens are never cached."""
        token = await self.get_token(host)
        if token is None:
            return self.local_credentials()
        if token.get("queryParam"):
            return Credentials(params=dict(parse_qsl(token["queryParam"])))
        return Credentials(headers={"Authorization": f"Bearer {token['token']}"})
