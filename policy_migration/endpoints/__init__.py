"""
Endpoint module: resolved appliances, their credentials and the resolver.
"""

from .base import LocalEndpoint, RemoteEndpoint, TrustedEndpoint
from .credentials import Credentials, TrustTokenProvider
from .resolver import EndpointResolver

__all__ = [
    'RemoteEndpoint',
    'LocalEndpoint',
    'TrustedEndpoint',
    'Credentials',
    'TrustTokenProvider',
    'EndpointResolver',
]
