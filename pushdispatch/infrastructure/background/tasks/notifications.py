# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification dispatch background tasks for pushdispatch.

One actor per notification queue. Each actor deserializes the job and
hands it to the current thread's DispatchWorker. Exceptions propagate
to Dramatiq's Retries middleware (exponential backoff); malformed
messages raise JobPayloadError, which is never retried.
"""

import logging
from typing import Any

import dramatiq
from dramatiq.middleware import CurrentMessage

from pushdispatch.core.config import get_settings
from pushdispatch.infrastructure.background.broker import Priority, Queues, setup_dramatiq
from pushdispatch.infrastructure.background.tasks.base import run_async
from pushdispatch.infrastructure.notifications.bootstrap import get_thread_dispatch_worker
from pushdispatch.infrastructure.notifications.errors import JobPayloadError
from pushdispatch.infrastructure.notifications.types import NotificationJob
from pushdispatch.utils.logging import bind_context, clear_context

# Setup broker before defining actors
setup_dramatiq()

logger = logging.getLogger(__name__)

_queue_settings = get_settings().queue

RETRY_OPTIONS: dict[str, Any] = {
    "max_retries": _queue_settings.max_retries,
    "min_backoff": _queue_settings.backoff_base_ms,
    "max_backoff": _queue_settings.backoff_max_ms,
    "time_limit": _queue_settings.time_limit_ms,
    "throws": (JobPayloadError,),
}


def is_final_attempt(max_retries: int) -> bool:
    """Whether the message being processed will not be retried again.

    Outside a worker (direct actor call) there is no current message and
    the call counts as final.

    Args:
        max_retries: The actor's retry limit.

    Returns:
        True on the last allowed attempt.
    """
    message = CurrentMessage.get_current_message()
    if message is None:
        return True
    retries = message.options.get("retries", 0)
    limit = message.options.get("max_retries", max_retries)
    return retries >= limit


def dispatch_job(message: dict[str, Any], queue_name: str) -> dict[str, Any]:
    """Process one queued notification job on this worker thread.

    Args:
        message: NotificationJob.to_message() output.
        queue_name: Queue the job came from, for log context.

    Returns:
        Outcome summary, stored by the results backend.

    Raises:
        JobPayloadError: If the message is malformed.
    """
    try:
        job = NotificationJob.from_message(message)
    except JobPayloadError as e:
        logger.error("[%s] Discarding malformed notification job: %s", queue_name, str(e))
        raise

    final_attempt = is_final_attempt(RETRY_OPTIONS["max_retries"])

    current = CurrentMessage.get_current_message()
    bind_context(
        queue=queue_name,
        message_id=current.message_id if current is not None else None,
        department_id=job.department_id,
    )

    async def _process() -> dict[str, Any]:
        worker = await get_thread_dispatch_worker()
        return await worker.process(job, final_attempt=final_attempt)

    try:
        return run_async(_process())
    finally:
        clear_context()


@dramatiq.actor(
    queue_name=Queues.TIMETABLE,
    priority=Priority.HIGH,
    **RETRY_OPTIONS,
)
def send_timetable_notification(message: dict[str, Any]) -> dict[str, Any]:
    """Deliver a timetable update notification job.

    Args:
        message: Serialized NotificationJob.

    Returns:
        Outcome summary.
    """
    return dispatch_job(message, Queues.TIMETABLE)


@dramatiq.actor(
    queue_name=Queues.CUSTOM,
    priority=Priority.NORMAL,
    **RETRY_OPTIONS,
)
def send_custom_notification(message: dict[str, Any]) -> dict[str, Any]:
    """Deliver a custom broadcast notification job.

    Args:
        message: Serialized NotificationJob.

    Returns:
        Outcome summary.
    """
    return dispatch_job(message, Queues.CUSTOM)


@dramatiq.actor(
    queue_name=Queues.ANNOUNCEMENT,
    priority=Priority.HIGH,
    **RETRY_OPTIONS,
)
def send_announcement_notification(message: dict[str, Any]) -> dict[str, Any]:
    """Deliver an announcement notification job.

    Args:
        message: Serialized NotificationJob.

    Returns:
        Outcome summary.
    """
    return dispatch_job(message, Queues.ANNOUNCEMENT)


def get_notification_actors() -> list:
    """Get all notification actors.

    Returns:
        List of notification actor functions.
    """
    return [
        send_timetable_notification,
        send_custom_notification,
        send_announcement_notification,
    ]
