"""
REST API module for the policy migration service.
"""

from .main import app, start_server

__all__ = ["app", "start_server"]
