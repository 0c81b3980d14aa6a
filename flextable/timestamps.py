"""Timestamp utilities for FlexTable with millisecond precision.

All audit timestamps are UTC with exactly 3 decimal places.
Format: YYYY-MM-DD HH:MM:SS.fff
"""

import time
from datetime import datetime, timezone


def format_timestamp(dt: datetime) -> str:
    """Render a datetime in the audit format, truncated to milliseconds."""
    return f"{dt.strftime('%Y-%m-%d %H:%M:%S')}.{dt.microsecond // 1000:03d}"


def get_current_timestamp() -> str:
    """
    Get current UTC timestamp with exactly 3 decimal places.

    Returns:
        String timestamp in format: YYYY-MM-DD HH:MM:SS.fff
    """
    return format_timestamp(datetime.now(timezone.utc))


def current_millis() -> int:
    """Milliseconds since the epoch, used to salt physical table names."""
    return time.time_ns() // 1_000_000


def current_date() -> str:
    """Today's UTC date as YYYY-MM-DD."""
    return datetime.now(timezone.utc).strftime('%Y-%m-%d')
