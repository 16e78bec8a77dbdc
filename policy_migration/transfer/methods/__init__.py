"""
Download source implementations.

Importing this package registers every source with the TransferMethodFactory.
"""

from .local import LocalFileTransfer
from .http import HttpTransfer, redirect_target

__all__ = [
    'LocalFileTransfer',
    'HttpTransfer',
    'redirect_target',
]
