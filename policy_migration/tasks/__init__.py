"""
Remote task module: submit-and-poll protocol for appliance tasks.
"""

from .poller import RemoteTaskPoller, extract_reference

__all__ = [
    'RemoteTaskPoller',
    'extract_reference',
]
