"""
Timezone-aware timestamps for every stored row
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time in UTC, always timezone-aware"""
    return datetime.now(timezone.utc)
