"""
Command-line interface for the policy migration service.
"""

from .main import main

__all__ = ["main"]
