"""
Chunked policy file upload.

A staged file is sent to an appliance's upload area in sequential,
non-overlapping byte ranges. Each chunk is its own request with fresh
credentials; the upload is complete once the last byte has been accepted.
"""

import asyncio
from typing import BinaryIO, Iterator, Tuple

import aiohttp

from policy_migration.appliance.client import FILE_TRANSFER_PATH
from policy_migration.core.exceptions import ChunkUploadError, TransferError, TransportError
from policy_migration.endpoints.base import RemoteEndpoint

from .base import TransferMethod, TransferResult


def chunk_ranges(total_size: int, chunk_size: int) -> Iterator[Tuple[int, int]]:
    """Inclusive ``(start, end)`` byte ranges covering ``total_size`` bytes."""
    for start in range(0, total_size, chunk_size):
        yield start, min(start + chunk_size, total_size) - 1


def read_range(f: BinaryIO, start: int, end: int) -> bytes:
    """Read the inclusive byte range ``start``-``end`` of an open file."""
    f.seek(start)
    return f.read(end - start + 1)


class ChunkedUploader(TransferMethod):
    """Uploads staged files to an appliance in bounded chunks."""

    async def upload(self, endpoint: RemoteEndpoint, file_name: str) -> TransferResult:
        """Upload a staged file; see ``transfer``."""
        return await self.transfer(file_name, endpoint)

    async def transfer(self, source: str, destination: RemoteEndpoint) -> TransferResult:
        """
        Upload a staged file to an appliance.

        Args:
            source: Name of the staged file
            destination: Appliance to upload to

        Returns:
            TransferResult for the completed upload

        Raises:
            TransferError: If the staged file is missing or empty
            ChunkUploadError: If the appliance rejects a chunk
            TransportError: If a chunk request fails
        """
        path = self.settings.staged_path(source)
        try:
            total_size = path.stat().st_size
        except OSError as e:
            raise TransferError(f"staged file {source} is not readable: {e}") from e
        if total_size == 0:
            raise TransferError(f"staged file {source} is empty")

        url = destination.url(f"{FILE_TRANSFER_PATH}/uploads/{source}")
        target = f"{destination.host}:{destination.port}"
        self._start(source, total_size)
        self.logger.info(f"uploading policy file {source} to {target}")

        with open(path, "rb") as f:
            for start, end in chunk_ranges(total_size, self.settings.chunk_size):
                data = await asyncio.to_thread(read_range, f, start, end)
                await self._upload_chunk(destination, url, data, start, end, total_size)
                self._update_progress(transferred_bytes=end + 1)

        return self._finish(source, chunks=-(-total_size // self.settings.chunk_size))

    async def _upload_chunk(
        self,
        endpoint: RemoteEndpoint,
        url: str,
        data: bytes,
        start: int,
        end: int,
        total_size: int
    ) -> None:
        creds = await endpoint.credentials()
        headers = {
            "Content-Type": "application/octet-stream",
            "Content-Range": f"{start}-{end}/{total_size}",
            "Content-Length": str(end - start + 1),
        }
        headers.update(creds.headers)
        self.logger.info(f"uploading {start}-{end}/{total_size} to {endpoint.host}:{endpoint.port}")

        try:
            async with self.sender.request(
                "POST", url, headers=headers, params=creds.params, data=data
            ) as response:
                await response.read()
                if response.status > 399:
                    raise ChunkUploadError(
                        f"upload part start: {start} end: {end} return status: {response.status}",
                        start=start,
                        end=end,
                        status=response.status,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"upload part start: {start} end: {end} failed: {e}") from e
