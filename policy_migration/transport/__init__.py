"""
Transport module: the remote request sender used to reach appliances.
"""

from .sender import AiohttpRequestSender, RemoteRequestSender

__all__ = [
    'AiohttpRequestSender',
    'RemoteRequestSender',
]
