# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Push notification dispatch pipeline.

Producers enqueue NotificationJobs; Dramatiq workers process them
through the DispatchWorker, which routes tokens to the APNs or FCM
client, purges dead tokens from the device registry and appends one
delivery log record per job.

Key Components:
- DeviceRegistry: Push tokens per user and department
- APNsClient, FCMClient: Provider clients
- PushRouter: Platform routing and target resolution
- NotificationQueue: Producer enqueue API
- DispatchWorker: Per-job processing
- DeliveryLog: Append-only outcome records
- NotificationService: Producer facade

Usage:
    from pushdispatch.infrastructure.notifications import (
        NotificationQueue,
        PushNotificationPayload,
    )

    queue = NotificationQueue()
    queue.queue_announcement_notification(
        tokens,
        "android",
        PushNotificationPayload(title="Campus closed", body="No classes today"),
    )
"""

from pushdispatch.infrastructure.notifications.delivery_log import DeliveryLog
from pushdispatch.infrastructure.notifications.errors import (
    EnqueueError,
    ErrorCategory,
    JobPayloadError,
    PushDispatchError,
    PushErrorCode,
    TransientDeliveryError,
    category_of,
    is_invalid_token_code,
    is_transient_code,
)
from pushdispatch.infrastructure.notifications.providers import APNsClient, FCMClient
from pushdispatch.infrastructure.notifications.queue import NotificationQueue
from pushdispatch.infrastructure.notifications.registry import (
    DeviceCount,
    DeviceRegistry,
    DeviceRepository,
)
from pushdispatch.infrastructure.notifications.router import PushRouter
from pushdispatch.infrastructure.notifications.service import NotificationService
from pushdispatch.infrastructure.notifications.types import (
    BatchPushNotificationResult,
    DeviceTarget,
    NotificationJob,
    NotificationPlatform,
    NotificationType,
    PushError,
    PushNotificationPayload,
    PushNotificationResult,
    PushPriority,
)
from pushdispatch.infrastructure.notifications.worker import DispatchWorker

__all__ = [
    # Components
    "DeviceRegistry",
    "DeviceRepository",
    "DeviceCount",
    "APNsClient",
    "FCMClient",
    "PushRouter",
    "NotificationQueue",
    "DispatchWorker",
    "DeliveryLog",
    "NotificationService",
    # Types
    "NotificationPlatform",
    "NotificationType",
    "PushPriority",
    "PushNotificationPayload",
    "PushError",
    "PushNotificationResult",
    "BatchPushNotificationResult",
    "DeviceTarget",
    "NotificationJob",
    # Errors
    "PushErrorCode",
    "ErrorCategory",
    "category_of",
    "is_invalid_token_code",
    "is_transient_code",
    "PushDispatchError",
    "EnqueueError",
    "JobPayloadError",
    "TransientDeliveryError",
]
