"""Timezone-aware timestamps for session bookkeeping."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current UTC time with tzinfo set (datetime.utcnow() is deprecated)."""
    return datetime.now(timezone.utc)
