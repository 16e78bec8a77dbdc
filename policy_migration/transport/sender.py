"""
Remote request sender.

The rest of the package talks to appliances through the RemoteRequestSender
protocol: given a method, URL, headers and body it returns the parsed
response body or raises TransportError. AiohttpRequestSender is the
production implementation; it also exposes raw streaming requests for the
transfer engine.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Protocol

import aiohttp

from policy_migration.core.exceptions import TransportError

logger = logging.getLogger(__name__)


class RemoteRequestSender(Protocol):
    """Capability to send a JSON request to a remote management API."""

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
        body: Any = None,
    ) -> Any:
        ...


def _parse_body(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


class AiohttpRequestSender:
    """
    RemoteRequestSender backed by a shared aiohttp ClientSession.

    The session is created lazily on first use so the sender can be built
    outside of a running event loop.
    """

    def __init__(self, verify_ssl: bool = False, timeout: Optional[float] = None):
        """
        Initialize the sender.

        Args:
            verify_ssl: Verify TLS certificates (appliances usually self-sign)
            timeout: Optional total timeout per request in seconds
        """
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session."""
        if self.session is None or self.session.closed:
            if self.verify_ssl:
                connector = aiohttp.TCPConnector()
            else:
                connector = aiohttp.TCPConnector(ssl=False)
            self.session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self.session

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
        body: Any = None,
    ) -> Any:
        """
        Send a request and return the parsed response body.

        Raises:
            TransportError: On connection failure or an HTTP status >= 400
        """
        session = await self._get_session()
        request_headers = {"Content-Type": "application/json"}
        request_headers.update(headers or {})
        data = json.dumps(body) if body is not None else None

        try:
            async with session.request(
                method.upper(), url, headers=request_headers, params=params, data=data
            ) as response:
                text = await response.text()
                if response.status >= 400:
                    raise TransportError(
                        f"{method.upper()} {url} returned {response.status}: {text[:200]}",
                        status=response.status,
                        details={"body": _parse_body(text)},
                    )
                return _parse_body(text)
        except aiohttp.ClientConnectorError as e:
            raise TransportError(
                f"{method.upper()} {url} failed: {e}",
                details={"connect_error": True},
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"{method.upper()} {url} failed: {e}") from e

    @asynccontextmanager
    async def request(self, method: str, url: str, **kwargs: Any) -> AsyncIterator[aiohttp.ClientResponse]:
        """
        Open a raw request for streaming transfers.

        aiohttp errors propagate unchanged; callers decide whether a failure
        is soft or hard.
        """
        session = await self._get_session()
        async with session.request(method.upper(), url, **kwargs) as response:
            yield response

    async def close(self) -> None:
        """Close the underlying session."""
        if self.session is not None and not self.session.closed:
            await self.session.close()
        self.session = None

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
