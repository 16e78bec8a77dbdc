"""
Base classes for migration endpoints.

An endpoint is a resolved appliance a policy is migrated from or to. The
local appliance and trusted remote devices differ only in how URLs are
built and how requests are authenticated, so that choice is made once,
at resolution time, by picking the subclass.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from policy_migration.endpoints.credentials import Credentials, TrustTokenProvider
from policy_migration.transport.sender import RemoteRequestSender


class RemoteEndpoint(ABC):
    """
    Abstract base class for a resolved appliance.

    Subclasses supply the URL scheme and the credentials attached to each
    request; everything else is shared.
    """

    def __init__(
        self,
        host: str,
        port: int,
        uuid: Optional[str] = None,
        state: Optional[str] = None
    ):
        self.host = host
        self.port = int(port)
        self.uuid = uuid
        self.state = state

    @property
    @abstractmethod
    def base_url(self) -> str:
        """Scheme, host and port of the management API."""
        pass

    @property
    def is_local(self) -> bool:
        return False

    @abstractmethod
    async def credentials(self) -> Credentials:
        """
        Credentials for a single request.

        Returns:
            Fresh credentials; callers must not reuse them across requests
        """
        pass

    def url(self, path: str) -> str:
        """Absolute URL of a management API path."""
        return f"{self.base_url}/{path.lstrip('/')}"

    async def request(
        self,
        sender: RemoteRequestSender,
        method: str,
        path: str,
        body: Any = None
    ) -> Any:
        """Send an authenticated JSON request to this endpoint."""
        creds = await self.credentials()
        return await sender.send(
            method,
            self.url(path),
            headers=creds.headers or None,
            params=creds.params or None,
            body=body,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the wire field names."""
        return {
            "targetHost": self.host,
            "targetPort": self.port,
            "targetUUID": self.uuid,
            "state": self.state,
        }

    def __eq__(self, other):
        if not isinstance(other, RemoteEndpoint):
            return NotImplemented
        return (self.host, self.port) == (other.host, other.port)

    def __hash__(self):
        return hash((self.host, self.port))

    def __repr__(self):
        return f"{self.__class__.__name__}({self.host}:{self.port})"


class LocalEndpoint(RemoteEndpoint):
    """The appliance this service runs on, reached over plain HTTP."""

    def __init__(self, tokens: TrustTokenProvider):
        settings = tokens.settings
        super().__init__(settings.local_host, settings.local_port)
        self._tokens = tokens

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def is_local(self) -> bool:
        return True

    async def credentials(self) -> Credentials:
        return self._tokens.local_credentials()


class TrustedEndpoint(RemoteEndpoint):
    """A trusted remote device, authenticated with a per-request token."""

    def __init__(
        self,
        host: str,
        port: int,
        tokens: TrustTokenProvider,
        uuid: Optional[str] = None,
        state: Optional[str] = None
    ):
        super().__init__(host, port, uuid=uuid, state=state)
        self._tokens = tokens

    @property
    def base_url(self) -> str:
        return f"https://{self.host}:{self.port}"

    async def credentials(self) -> Credentials:
        return await self._tokens.credentials_for(self.host)
