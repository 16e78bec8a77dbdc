"""
Policy file downloads into the staging directory.

Two operations with deliberately different failure semantics:

- ``download`` fetches a caller-supplied URL. Network failures are soft:
  the partial file is removed and None is returned.
- ``download_from_endpoint`` fetches an exported policy from an
  appliance. Every failure is raised, since appliance-to-appliance
  transfers must succeed or stop the migration.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import aiohttp

from policy_migration.appliance.client import FILE_TRANSFER_PATH
from policy_migration.core.exceptions import NotFoundError, TransferError, TransportError
from policy_migration.endpoints.base import RemoteEndpoint
from policy_migration.models.config import MigrationSettings
from policy_migration.transport.sender import AiohttpRequestSender
from policy_migration.utils.helpers import format_bytes

from .base import remove_file, stream_to_file
from .factory import TransferMethodFactory
from . import methods  # noqa: F401  registers the download sources

logger = logging.getLogger(__name__)


class Downloader:
    """Downloads policy files from URLs and appliances."""

    def __init__(self, sender: AiohttpRequestSender, settings: MigrationSettings):
        self.sender = sender
        self.settings = settings

    def _prepare(self, file_name: str) -> Path:
        destination = self.settings.staged_path(file_name)
        destination.parent.mkdir(parents=True, exist_ok=True)
        if destination.is_symlink() or destination.exists():
            size = destination.lstat().st_size
            remove_file(destination)
            logger.info(f"file {file_name} ({format_bytes(size)}) was deleted")
        return destination

    async def download(self, source: Optional[str], file_name: str) -> Optional[str]:
        """
        Download a policy file from a URL.

        Args:
            source: ``file:``, ``http:`` or ``https:`` URL
            file_name: Name of the staged file

        Returns:
            ``file_name`` on success, None when nothing was downloaded

        Raises:
            UnsupportedProtocolError: If the URL scheme is not supported
            TransferError: If a ``file:`` source does not exist
        """
        if not source:
            return None

        method = TransferMethodFactory.create_transfer_method(
            urlparse(source).scheme, self.sender, self.settings
        )
        logger.info(f"downloading policy file: {file_name} from url: {source}")
        destination = self._prepare(file_name)

        result = await method.transfer(source, destination)
        return file_name if result.success else None

    async def download_from_endpoint(self, endpoint: RemoteEndpoint, file_name: str) -> str:
        """
        Download an exported policy file from an appliance.

        Returns:
            ``file_name``

        Raises:
            TransferError: If the appliance answers with an error status
            TransportError: If the request fails
        """
        logger.info(f"downloading policy file {file_name} from {endpoint.host}:{endpoint.port}")
        destination = self._prepare(file_name)
        url = endpoint.url(f"{FILE_TRANSFER_PATH}/downloads/{file_name}")
        creds = await endpoint.credentials()

        try:
            async with self.sender.request(
                "GET", url, headers=creds.headers, params=creds.params
            ) as response:
                if response.status > 399:
                    body = await response.text()
                    raise TransferError(
                        f"error downloading policy {file_name} from {endpoint.host}:{endpoint.port}"
                        f" - status {response.status}: {body[:200]}",
                        details={"status": response.status},
                    )
                written = await stream_to_file(response, destination)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            remove_file(destination)
            raise TransportError(
                f"error downloading policy {file_name} from {endpoint.host}:{endpoint.port} - {e}"
            ) from e

        logger.info(f"downloaded {file_name} ({format_bytes(written)})")
        return file_name

    def read_and_remove(self, file_name: str) -> str:
        """
        Return a staged file's text and delete it.

        Raises:
            NotFoundError: If the file is not staged
        """
        path = self.settings.staged_path(file_name)
        if not path.exists():
            raise NotFoundError(f"file {path} was not found")
        try:
            return path.read_text(encoding="utf-8")
        finally:
            remove_file(path)

    def remove(self, file_name: str) -> None:
        """Delete a staged file if present."""
        if remove_file(self.settings.staged_path(file_name)):
            logger.debug(f"removed staged file {file_name}")
