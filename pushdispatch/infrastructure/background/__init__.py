# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task infrastructure module for pushdispatch.

Provides notification job processing with Dramatiq:
- Redis broker for message persistence and durability
- Retries with exponential backoff, dead-letter retention
- Prometheus metrics middleware (optional)

Quick Start:
    # Setup broker (call once at startup)
    from pushdispatch.infrastructure.background import setup_dramatiq
    setup_dramatiq()

    # Enqueue through the producer API
    from pushdispatch.infrastructure.notifications.queue import NotificationQueue
    NotificationQueue().queue_timetable_notification(tokens, "ios", payload)

Running Workers:
    pushdispatch-worker  # sized by WORKER_PROCESSES / WORKER_THREADS
"""

from pushdispatch.infrastructure.background.broker import (
    BrokerManager,
    Priority,
    Queues,
    get_broker,
    get_broker_manager,
    setup_dramatiq,
    shutdown_dramatiq,
)

# Task actors are imported lazily to avoid circular imports
# Use: from pushdispatch.infrastructure.background.tasks import send_timetable_notification

__all__ = [
    "BrokerManager",
    "Priority",
    "Queues",
    "get_broker",
    "get_broker_manager",
    "setup_dramatiq",
    "shutdown_dramatiq",
]
