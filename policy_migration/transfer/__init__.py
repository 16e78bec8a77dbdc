"""
Policy file transfer module.

Downloads from URLs and appliances into the staging directory and chunked
uploads from the staging directory to appliances.
"""

from .base import TransferProgress, TransferResult, TransferStatus
from .factory import TransferMethodFactory
from .download import Downloader
from .upload import ChunkedUploader, chunk_ranges

__all__ = [
    'TransferProgress',
    'TransferResult',
    'TransferStatus',
    'TransferMethodFactory',
    'Downloader',
    'ChunkedUploader',
    'chunk_ranges',
]
