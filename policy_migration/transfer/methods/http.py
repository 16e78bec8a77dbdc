"""
HTTP and HTTPS policy sources.

The response body is streamed straight into the staging directory. One
redirect is followed, always over HTTPS; failures are reported through
the TransferResult instead of being raised.
"""

import asyncio
from pathlib import Path
from typing import Optional
from urllib.parse import urljoin, urlparse, urlunparse

import aiohttp

from ..base import TransferMethod, TransferResult, remove_file, stream_to_file
from ..factory import register_transfer_method


def redirect_target(original_url: str, location: str) -> str:
    """
    Resolve a redirect ``Location`` against the original URL.

    Absolute locations keep their host, relative ones are resolved against
    the original host. The result always uses HTTPS.
    """
    original = urlparse(original_url)
    target = urlparse(location)
    if target.hostname:
        return urlunparse(target._replace(scheme="https"))
    base = urlunparse(original._replace(scheme="https", params="", query="", fragment=""))
    return urljoin(base, location)


@register_transfer_method('http', 'https')
class HttpTransfer(TransferMethod):
    """Downloads a policy file from a web server."""

    async def transfer(self, source: str, destination: Path) -> TransferResult:
        """
        Download a URL into the staging directory.

        Args:
            source: ``http:`` or ``https:`` URL
            destination: Staged file path

        Returns:
            TransferResult; ``success`` is False when nothing was downloaded
        """
        self._start(source)
        self.logger.info(f"downloading {source}")

        url = source
        try:
            location = await self._fetch(url, destination)
            if location:
                url = redirect_target(source, location)
                self.logger.info(f"following download redirect to: {url}")
                location = await self._fetch(url, destination)
                if location:
                    return self._soft_failure(destination, f"{url} redirected again to {location}")
        except (aiohttp.ClientError, asyncio.TimeoutError, _HttpStatusError) as e:
            return self._soft_failure(destination, f"error downloading url {url} - {e}")

        return self._finish(destination.name, url=url)

    async def _fetch(self, url: str, destination: Path) -> Optional[str]:
        """Stream ``url`` to ``destination``; returns a redirect location instead when given one."""
        async with self.sender.request("GET", url, allow_redirects=False) as response:
            location = response.headers.get("Location")
            if 300 < response.status < 400 and location:
                return location
            if response.status >= 300:
                raise _HttpStatusError(f"{url} returned status {response.status}")

            if response.content_length:
                self._update_progress(total_bytes=response.content_length)
            written = await stream_to_file(response, destination)
            self._update_progress(transferred_bytes=written)
            return None

    def _soft_failure(self, destination: Path, message: str) -> TransferResult:
        self.logger.error(message)
        remove_file(destination)
        return self._fail(message)


class _HttpStatusError(Exception):
    """A download source answered with an unusable status."""
