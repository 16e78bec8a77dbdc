"""
Local file source.

``file:`` sources are materialized in the staging directory by a symbolic
link (or a copy when linking is disabled) instead of a network fetch.
"""

import os
import shutil
from pathlib import Path
from urllib.parse import unquote, urlparse

from policy_migration.core.exceptions import TransferError

from ..base import TransferMethod, TransferResult
from ..factory import register_transfer_method


@register_transfer_method('file')
class LocalFileTransfer(TransferMethod):
    """Stages a policy file that already exists on this host."""

    async def transfer(self, source: str, destination: Path) -> TransferResult:
        """
        Link or copy a local file into the staging directory.

        Args:
            source: ``file:`` URL of the policy file
            destination: Staged file path

        Raises:
            TransferError: If the source file does not exist
        """
        source_path = Path(unquote(urlparse(source).path))
        self._start(str(source_path))

        if not source_path.is_file():
            message = f"file does not exist {source_path}"
            self._fail(message)
            raise TransferError(message, details={"source": source})

        if self.settings.link_local_sources:
            os.symlink(source_path.resolve(), destination)
            method = "symlink"
        else:
            shutil.copyfile(source_path, destination)
            method = "copy"

        size = source_path.stat().st_size
        self._update_progress(total_bytes=size, transferred_bytes=size)
        self.logger.info(f"staged {source_path} as {destination.name} ({method})")
        return self._finish(destination.name, method=method)
