# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Producer API for the notification job queues.

Jobs are routed to one of three Dramatiq queues by type:
- notification-timetable (priority 1)
- notification-custom (priority 2)
- notification-announcement (priority 1)

Enqueueing is fire-and-forget but never silent: when the broker cannot
be reached within the configured timeout, EnqueueError is raised.

Example:
    >>> queue = NotificationQueue()
    >>> queue.queue_timetable_notification(tokens, "ios", payload, department_id="dept-a")
"""

import logging
from typing import Any

import dramatiq
import redis.exceptions
from dramatiq.errors import BrokerError

from pushdispatch.infrastructure.background.broker import get_broker_manager, shutdown_dramatiq
from pushdispatch.infrastructure.notifications.errors import EnqueueError
from pushdispatch.infrastructure.notifications.types import (
    NotificationJob,
    NotificationType,
    PushNotificationPayload,
)

logger = logging.getLogger(__name__)

# Broker failures that mean "not enqueued"
_BROKER_ERRORS = (
    BrokerError,
    redis.exceptions.ConnectionError,
    redis.exceptions.TimeoutError,
)


def _actor_for(type: NotificationType) -> dramatiq.Actor:
    # Importing the tasks module sets up the broker and registers actors
    from pushdispatch.infrastructure.background.tasks import notifications as tasks

    return {
        NotificationType.TIMETABLE: tasks.send_timetable_notification,
        NotificationType.CUSTOM: tasks.send_custom_notification,
        NotificationType.ANNOUNCEMENT: tasks.send_announcement_notification,
    }[type]


class NotificationQueue:
    """Enqueues notification jobs onto their typed queues."""

    def enqueue(
        self,
        type: NotificationType | str,
        tokens: list[str],
        platform: str,
        payload: PushNotificationPayload,
        department_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Enqueue one job.

        Args:
            type: Notification type, selecting the queue.
            tokens: Device tokens, all on the same platform.
            platform: Platform of the tokens.
            payload: Notification content.
            department_id: Targeted department, for the delivery log.
            metadata: Producer metadata, copied to the delivery log.

        Returns:
            Broker message id.

        Raises:
            EnqueueError: If the broker is unreachable.
        """
        job = NotificationJob(
            type=NotificationType(type),
            tokens=list(tokens),
            platform=platform,
            payload=payload,
            department_id=department_id,
            metadata=metadata,
        )
        actor = _actor_for(job.type)

        try:
            message = actor.send(job.to_message())
        except _BROKER_ERRORS as e:
            logger.error(
                "Failed to enqueue %s notification (%d tokens): %s",
                job.type.value,
                len(job.tokens),
                str(e),
            )
            raise EnqueueError(f"Could not enqueue {job.type.value} notification", e) from e

        logger.info(
            "%s notification queued: %d tokens, department: %s",
            job.type.value.capitalize(),
            len(job.tokens),
            department_id or "N/A",
        )
        return message.message_id

    def queue_timetable_notification(
        self,
        tokens: list[str],
        platform: str,
        payload: PushNotificationPayload,
        department_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        return self.enqueue(
            NotificationType.TIMETABLE, tokens, platform, payload, department_id, metadata
        )

    def queue_custom_notification(
        self,
        tokens: list[str],
        platform: str,
        payload: PushNotificationPayload,
        department_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        return self.enqueue(
            NotificationType.CUSTOM, tokens, platform, payload, department_id, metadata
        )

    def queue_announcement_notification(
        self,
        tokens: list[str],
        platform: str,
        payload: PushNotificationPayload,
        department_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        return self.enqueue(
            NotificationType.ANNOUNCEMENT, tokens, platform, payload, department_id, metadata
        )

    def queue_stats(self) -> dict[str, Any]:
        """Pending, delayed and dead-lettered counts per queue."""
        return get_broker_manager().get_queue_stats()

    def close(self) -> None:
        """Shut the broker down (graceful shutdown)."""
        shutdown_dramatiq()
        logger.info("Notification queues closed")
