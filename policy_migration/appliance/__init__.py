"""
Appliance module: security policy operations on a resolved endpoint.
"""

from .client import FILE_TRANSFER_PATH, PolicyClient, staged_file_name

__all__ = [
    'PolicyClient',
    'FILE_TRANSFER_PATH',
    'staged_file_name',
]
