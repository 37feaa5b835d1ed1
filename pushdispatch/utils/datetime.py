# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for pushdispatch.

All timestamps are stored in UTC and all Python datetimes are
timezone-aware, so naive/aware comparisons never occur in queries
against the device registry or the delivery log.

Usage:
    from pushdispatch.utils.datetime import utc_now

    # For SQLAlchemy model defaults
    created_at = mapped_column(DateTime(timezone=True), default=utc_now)
"""

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.

    Note:
        - If dt is None, returns None
        - If dt is naive, assumes UTC and adds tzinfo
        - If dt is aware, converts to UTC
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def monotonic_ms() -> int:
    """Milliseconds from a monotonic clock, for measuring durations."""
    return int(time.monotonic() * 1000)


def elapsed_ms(start_ms: int) -> int:
    """Milliseconds elapsed since a monotonic_ms() reading.

    Args:
        start_ms: Value previously returned by monotonic_ms().

    Returns:
        Non-negative elapsed milliseconds.
    """
    return max(0, monotonic_ms() - start_ms)


# Aliases for convenience
now = utc_now
