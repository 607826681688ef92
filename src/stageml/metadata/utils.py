"""
Timestamps recorded with saved stages.
"""

from datetime import datetime, timezone


def timestamp_now() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")
