# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Push provider clients.

Each client speaks one provider protocol and turns raw provider
responses into PushNotificationResult values:
- APNsClient: Apple Push Notification service (iOS)
- FCMClient: Firebase Cloud Messaging (Android)
"""

from pushdispatch.infrastructure.notifications.providers.apns import (
    AioapnsProvider,
    APNsClient,
    APNsProvider,
    ApnsChunkResponse,
    ApnsFailure,
)
from pushdispatch.infrastructure.notifications.providers.base import (
    MAX_BATCH_SIZE,
    BaseProviderClient,
    chunked,
)
from pushdispatch.infrastructure.notifications.providers.fcm import FCMClient

__all__ = [
    "MAX_BATCH_SIZE",
    "BaseProviderClient",
    "chunked",
    "APNsClient",
    "APNsProvider",
    "AioapnsProvider",
    "ApnsChunkResponse",
    "ApnsFailure",
    "FCMClient",
]
