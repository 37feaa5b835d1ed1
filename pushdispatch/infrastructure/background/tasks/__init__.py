# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task actors for pushdispatch.

One actor per notification queue:
- send_timetable_notification: notification-timetable (priority 1)
- send_custom_notification: notification-custom (priority 2)
- send_announcement_notification: notification-announcement (priority 1)

Usage:
    from pushdispatch.infrastructure.background.tasks import get_all_actors

    actors = get_all_actors()

Running Workers:
    dramatiq pushdispatch.infrastructure.background.tasks --processes 2 --threads 4
"""

from pushdispatch.infrastructure.background.tasks.notifications import (
    get_notification_actors,
    send_announcement_notification,
    send_custom_notification,
    send_timetable_notification,
)

# Re-export run_async for convenience
from pushdispatch.infrastructure.background.tasks.base import run_async

__all__ = [
    "send_timetable_notification",
    "send_custom_notification",
    "send_announcement_notification",
    # Utilities
    "run_async",
    "get_all_actors",
]


def get_all_actors() -> list:
    """Get list of all defined actors.

    Returns:
        List of all Dramatiq actors.
    """
    return get_notification_actors()
