"""
Helper utilities for the policy migration service.
"""

from typing import Any, Dict, Optional


def format_bytes(bytes_count: float) -> str:
    """Format bytes into human-readable string."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024.0:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024.0
    return f"{bytes_count:.1f} PB"


def format_duration(seconds: float) -> str:
    """Format duration in seconds into human-readable string."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"


def pick(query: Dict[str, Any], body: Optional[Dict[str, Any]], *names: str) -> Optional[Any]:
    """
    First non-empty parameter among ``names``.

    Body values take precedence over query values; within each source the
    names are tried in order.
    """
    for source in (body or {}, query):
        for name in names:
            value = source.get(name)
            if value not in (None, ""):
                return value
    return None
