"""
Base classes for policy file transfers.

This module defines the abstract base class and common data structures
shared by the download sources and the chunked uploader.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import aiohttp

from policy_migration.models.config import MigrationSettings
from policy_migration.transport.sender import AiohttpRequestSender

logger = logging.getLogger(__name__)

STREAM_CHUNK = 64 * 1024


class TransferStatus(str, Enum):
    """Status of a transfer operation."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class TransferProgress:
    """Progress information for a transfer operation."""
    total_bytes: int = 0
    transferred_bytes: int = 0
    current_file: Optional[str] = None
    status: TransferStatus = TransferStatus.PENDING
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def progress_percentage(self) -> float:
        """Calculate progress percentage based on bytes transferred."""
        if self.total_bytes == 0:
            return 0.0
        return min(100.0, (self.transferred_bytes / self.total_bytes) * 100.0)

    @property
    def elapsed_time(self) -> Optional[float]:
        """Calculate elapsed time in seconds."""
        if not self.start_time:
            return None
        end_time = self.end_time or datetime.now()
        return (end_time - self.start_time).total_seconds()


@dataclass
class TransferResult:
    """Result of a transfer operation."""
    success: bool
    status: TransferStatus
    progress: TransferProgress
    file_name: Optional[str] = None
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def remove_file(path: Path) -> bool:
    """Remove a file or dangling link if present; returns whether one was removed."""
    if path.is_symlink() or path.exists():
        path.unlink()
        return True
    return False


async def stream_to_file(response: aiohttp.ClientResponse, destination: Path) -> int:
    """
    Write a response body to ``destination`` atomically.

    The body is streamed into a sibling ``.part`` file which replaces the
    destination only once complete. The partial file is removed on error.

    Returns:
        Number of bytes written
    """
    partial = destination.with_name(destination.name + ".part")
    written = 0
    try:
        with open(partial, "wb") as f:
            async for chunk in response.content.iter_chunked(STREAM_CHUNK):
                f.write(chunk)
                written += len(chunk)
        os.replace(partial, destination)
    except BaseException:
        remove_file(partial)
        raise
    return written


class TransferMethod(ABC):
    """
    Abstract base class for all transfer methods.

    Holds the transport, the settings and progress reporting shared by the
    download sources and the uploader.
    """

    def __init__(self, sender: AiohttpRequestSender, settings: MigrationSettings):
        """
        Initialize the transfer method.

        Args:
            sender: Transport used for streaming requests
            settings: Staging and chunking settings
        """
        self.sender = sender
        self.settings = settings
        self._progress_callback: Optional[Callable[[TransferProgress], None]] = None
        self._progress = TransferProgress()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def set_progress_callback(self, callback: Callable[[TransferProgress], None]) -> None:
        """
        Set a callback function to receive progress updates.

        Args:
            callback: Function that will be called with TransferProgress updates
        """
        self._progress_callback = callback

    def _update_progress(self, **kwargs) -> None:
        """
        Update progress information and notify callback if set.

        Args:
            **kwargs: Progress fields to update
        """
        for key, value in kwargs.items():
            if hasattr(self._progress, key):
                setattr(self._progress, key, value)

        if self._progress_callback:
            try:
                self._progress_callback(self._progress)
            except Exception as e:
                self.logger.warning(f"Progress callback failed: {e}")

    def _start(self, current_file: str, total_bytes: int = 0) -> None:
        self._progress = TransferProgress()
        self._update_progress(
            status=TransferStatus.RUNNING,
            start_time=datetime.now(),
            current_file=current_file,
            total_bytes=total_bytes,
        )

    def _finish(self, file_name: str, **metadata) -> TransferResult:
        self._update_progress(status=TransferStatus.COMPLETED, end_time=datetime.now())
        return TransferResult(
            success=True,
            status=TransferStatus.COMPLETED,
            progress=self._progress,
            file_name=file_name,
            metadata=metadata,
        )

    def _fail(self, error_message: str) -> TransferResult:
        self._update_progress(
            status=TransferStatus.FAILED,
            error_message=error_message,
            end_time=datetime.now(),
        )
        return TransferResult(
            success=False,
            status=TransferStatus.FAILED,
            progress=self._progress,
            error_message=error_message,
        )

    @abstractmethod
    async def transfer(self, source: Any, destination: Any) -> TransferResult:
        """
        Move one policy file.

        Args:
            source: Where the file comes from
            destination: Where the file goes

        Returns:
            TransferResult with operation details
        """
        pass
