# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Push router: sends a notification through the right provider per platform.

The router never raises for delivery problems. Unknown platforms fail
with not_configured, unconfigured providers with their own
*_not_configured code, and unexpected client exceptions with
send_error, all as failed tokens in the BatchPushNotificationResult.
"""

import logging
from typing import Sequence

from pushdispatch.infrastructure.notifications.errors import PushErrorCode
from pushdispatch.infrastructure.notifications.providers.base import BaseProviderClient
from pushdispatch.infrastructure.notifications.registry import DeviceRegistry
from pushdispatch.infrastructure.notifications.types import (
    BatchPushNotificationResult,
    DeviceTarget,
    NotificationPlatform,
    PushNotificationPayload,
)

logger = logging.getLogger(__name__)


def group_by_platform(devices: Sequence[DeviceTarget]) -> dict[str, list[str]]:
    """Partition devices into token lists per platform, order preserved."""
    groups: dict[str, list[str]] = {}
    for device in devices:
        groups.setdefault(device.platform, []).append(device.token)
    return groups


class PushRouter:
    """Routes notifications to provider clients by platform.

    Attributes:
        registry: Device registry for target resolution and cleanup.
        clients: Provider client per platform value.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        apns: BaseProviderClient,
        fcm: BaseProviderClient,
    ) -> None:
        """Initialize the router.

        Args:
            registry: Device registry.
            apns: Client for iOS devices.
            fcm: Client for Android devices.
        """
        self.registry = registry
        self.clients: dict[str, BaseProviderClient] = {
            NotificationPlatform.IOS.value: apns,
            NotificationPlatform.ANDROID.value: fcm,
        }

    def is_configured(self) -> bool:
        """True if at least one provider can send."""
        return any(client.is_configured() for client in self.clients.values())

    async def send_to_tokens(
        self,
        tokens: list[str],
        platform: str,
        payload: PushNotificationPayload,
    ) -> BatchPushNotificationResult:
        """Send to tokens that all share one platform.

        Args:
            tokens: Device tokens.
            platform: Platform of every token.
            payload: Notification content.

        Returns:
            Aggregate result covering every token.
        """
        if not tokens:
            return BatchPushNotificationResult.empty()

        client = self.clients.get(platform)
        if client is None:
            logger.warning("Unsupported platform %s, skipping %d tokens", platform, len(tokens))
            return self._not_configured(tokens)
        if not client.is_configured():
            logger.warning("%s provider not configured, skipping %d tokens", platform, len(tokens))
            return client.create_not_configured_result(tokens)

        try:
            return await client.send_to_tokens(tokens, payload)
        except Exception as e:
            logger.error("Failed to send %s push notifications: %s", platform, str(e), exc_info=True)
            return BatchPushNotificationResult.all_failed(
                tokens, PushErrorCode.SEND_ERROR, str(e) or type(e).__name__
            )

    async def send_to_devices(
        self,
        devices: Sequence[DeviceTarget],
        payload: PushNotificationPayload,
    ) -> BatchPushNotificationResult:
        """Send to a mixed-platform device list.

        One send_to_tokens call is made per platform present; results are
        merged additively.
        """
        batch = BatchPushNotificationResult.empty()
        for platform, tokens in group_by_platform(devices).items():
            batch.merge(await self.send_to_tokens(tokens, platform, payload))
        return batch

    async def send_to_users(
        self,
        user_ids: Sequence[str],
        payload: PushNotificationPayload,
    ) -> BatchPushNotificationResult:
        devices = await self.registry.list_by_user(user_ids)
        if not devices:
            logger.warning("No devices found for %d users", len(user_ids))
        return await self.send_to_devices(dedupe(devices), payload)

    async def send_to_department(
        self,
        department_id: str,
        payload: PushNotificationPayload,
    ) -> BatchPushNotificationResult:
        return await self.send_to_departments([department_id], payload)

    async def send_to_departments(
        self,
        department_ids: Sequence[str],
        payload: PushNotificationPayload,
    ) -> BatchPushNotificationResult:
        devices = await self.registry.list_by_department(department_ids)
        if not devices:
            logger.warning("No devices found for departments: %s", ", ".join(department_ids))
        return await self.send_to_devices(dedupe(devices), payload)

    async def send_to_all(self, payload: PushNotificationPayload) -> BatchPushNotificationResult:
        devices = await self.registry.list_all()
        if not devices:
            logger.warning("No devices found for global notification")
        return await self.send_to_devices(dedupe(devices), payload)

    async def cleanup_invalid_tokens(self, tokens: Sequence[str]) -> int:
        """Remove dead tokens from the registry.

        Failures are logged and reported as zero removals; the tokens
        will be reported invalid again on the next send.

        Returns:
            Number of registrations removed.
        """
        if not tokens:
            return 0
        try:
            return await self.registry.remove(tokens)
        except Exception as e:
            logger.error("Failed to clean up %d invalid tokens: %s", len(tokens), str(e))
            return 0

    def _not_configured(self, tokens: list[str]) -> BatchPushNotificationResult:
        return BatchPushNotificationResult.all_failed(
            tokens,
            PushErrorCode.NOT_CONFIGURED,
            "Push notification service not configured",
        )


def dedupe(devices: Sequence[DeviceTarget]) -> list[DeviceTarget]:
    """Drop repeated tokens, keeping the first occurrence."""
    seen: set[str] = set()
    unique: list[DeviceTarget] = []
    for device in devices:
        if device.token not in seen:
            seen.add(device.token)
            unique.append(device)
    return unique
