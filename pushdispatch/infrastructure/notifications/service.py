# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification service for producers.

This module provides the NotificationService that handles:
- Device registration
- Fan-out of a notification to departments (or everyone) as queued jobs
- Device counts and delivery statistics for reporting

Producers never talk to provider clients directly; they resolve targets
here and enqueue platform-homogeneous jobs for the dispatch workers.

Example:
    >>> service = NotificationService(registry, queue, delivery_log)
    >>> await service.notify_departments("announcement", ["dept-a"], payload)
"""

import logging
from datetime import datetime
from typing import Any, Literal, Sequence

from pushdispatch.infrastructure.notifications.delivery_log import DeliveryLog
from pushdispatch.infrastructure.notifications.queue import NotificationQueue
from pushdispatch.infrastructure.notifications.registry import DeviceCount, DeviceRegistry
from pushdispatch.infrastructure.notifications.router import group_by_platform
from pushdispatch.infrastructure.notifications.types import (
    DeviceTarget,
    NotificationType,
    PushNotificationPayload,
)

logger = logging.getLogger(__name__)


class NotificationService:
    """Producer-side facade over the registry, queues and delivery log.

    Attributes:
        _registry: Device registry.
        _queue: Job queue producer.
        _delivery_log: Delivery log for reporting.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        queue: NotificationQueue,
        delivery_log: DeliveryLog,
    ) -> None:
        """Initialize the notification service.

        Args:
            registry: Device registry.
            queue: Job queue producer.
            delivery_log: Delivery log.
        """
        self._registry = registry
        self._queue = queue
        self._delivery_log = delivery_log

    async def register_device(
        self,
        user_id: str,
        token: str,
        platform: str,
        department_id: str | None = None,
    ) -> DeviceTarget:
        """Register or refresh a user's device.

        Raises:
            ValueError: If the token is empty or the platform unknown.
        """
        return await self._registry.register(user_id, token, platform, department_id)

    async def notify_departments(
        self,
        type: NotificationType | str,
        department_ids: Sequence[str] | Literal["all"],
        payload: PushNotificationPayload,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Queue a notification for every device of the target departments.

        One job is enqueued per platform present among the targets.

        Args:
            type: Notification type, selecting the queue.
            department_ids: Target departments, or "all".
            payload: Notification content.
            metadata: Producer metadata, copied to the delivery log.

        Returns:
            total_devices, queued_jobs and per-platform token counts.

        Raises:
            EnqueueError: If the broker is unreachable.
        """
        notification_type = NotificationType(type)

        if department_ids == "all":
            devices = await self._registry.list_all()
            department_id = None
        else:
            devices = await self._registry.list_by_department(department_ids)
            department_id = department_ids[0] if len(department_ids) == 1 else None

        if not devices:
            logger.warning("No devices found for %s notification", notification_type.value)
            return {"total_devices": 0, "queued_jobs": 0, "platforms": {}}

        platforms: dict[str, int] = {}
        for platform, tokens in group_by_platform(devices).items():
            self._queue.enqueue(
                notification_type,
                tokens,
                platform,
                payload,
                department_id=department_id,
                metadata=metadata,
            )
            platforms[platform] = len(tokens)

        return {
            "total_devices": len(devices),
            "queued_jobs": len(platforms),
            "platforms": platforms,
        }

    async def get_device_count(
        self,
        department_ids: Sequence[str] | Literal["all"],
    ) -> DeviceCount:
        return await self._registry.count_devices(department_ids)

    async def get_statistics(
        self,
        department_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, int]:
        return await self._delivery_log.get_statistics(department_id, start, end)

    async def get_recent_logs(
        self,
        limit: int = 50,
        department_id: str | None = None,
    ) -> list[dict[str, Any]]:
        records = await self._delivery_log.get_recent(limit, department_id)
        return [record.to_dict() for record in records]
