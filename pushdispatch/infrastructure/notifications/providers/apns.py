# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Apple Push Notification service client.

Sends notifications to iOS devices over the APNs HTTP/2 API using
token-based provider authentication (ES256 .p8 signing key). The
aioapns library handles JWT signing and the HTTP/2 connection pool.

Tokens are sent in chunks of at most 500; each chunk is one call to the
chunk provider. A chunk that fails as a whole (connection refused,
TLS error) marks its tokens with batch_error and later chunks are still
attempted.

Configuration (via environment variables):
- APNS_KEY_ID, APNS_TEAM_ID: Signing key identifiers
- APNS_BUNDLE_ID: App bundle id, used as apns-topic
- APNS_PRIVATE_KEY_PATH: Path to the .p8 key
- APNS_PRODUCTION: Use the production endpoint (default sandbox)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from aioapns import APNs, NotificationRequest, PushType

from pushdispatch.core.config.settings import APNsSettings
from pushdispatch.infrastructure.notifications.errors import PushErrorCode
from pushdispatch.infrastructure.notifications.providers.base import (
    BaseProviderClient,
    chunked,
)
from pushdispatch.infrastructure.notifications.types import (
    BatchPushNotificationResult,
    NotificationPlatform,
    PushNotificationPayload,
    PushNotificationResult,
    PushPriority,
)
from pushdispatch.utils.logging import mask_token

logger = logging.getLogger(__name__)

# APNs HTTP status -> error code
STATUS_CODE_MAP: dict[int, PushErrorCode] = {
    400: PushErrorCode.BAD_REQUEST,
    403: PushErrorCode.FORBIDDEN,
    405: PushErrorCode.METHOD_NOT_ALLOWED,
    410: PushErrorCode.UNREGISTERED_TOKEN,
    413: PushErrorCode.PAYLOAD_TOO_LARGE,
    429: PushErrorCode.TOO_MANY_REQUESTS,
    500: PushErrorCode.SERVER_ERROR,
    503: PushErrorCode.SERVER_ERROR,
}

PRIORITY_MAP: dict[PushPriority, int] = {
    PushPriority.HIGH: 10,
    PushPriority.NORMAL: 5,
}

# Top-level keys owned by APNs itself
RESERVED_PAYLOAD_KEYS = frozenset({"aps"})


def map_status(status: int | None) -> PushErrorCode:
    """Map an APNs HTTP status to an error code."""
    if status is None:
        return PushErrorCode.UNKNOWN_ERROR
    return STATUS_CODE_MAP.get(status, PushErrorCode.UNKNOWN_ERROR)


@dataclass
class ApnsFailure:
    """A token APNs refused."""

    token: str
    status: int | None
    reason: str | None = None


@dataclass
class ApnsChunkResponse:
    """Per-chunk provider outcome: accepted tokens and refusals."""

    sent: list[str] = field(default_factory=list)
    failed: list[ApnsFailure] = field(default_factory=list)


class APNsProvider(Protocol):
    """Sends one APNs message to a chunk of device tokens."""

    async def send(
        self,
        message: dict[str, Any],
        tokens: list[str],
        priority: int,
        collapse_id: str | None,
    ) -> ApnsChunkResponse:
        ...

    async def close(self) -> None:
        ...


class AioapnsProvider:
    """APNsProvider backed by aioapns.

    aioapns sends one HTTP/2 request per token; requests for a chunk are
    multiplexed over the shared connection pool.
    """

    def __init__(self, settings: APNsSettings) -> None:
        self._client = APNs(
            key=settings.private_key_path,
            key_id=settings.key_id,
            team_id=settings.team_id,
            topic=settings.bundle_id,
            use_sandbox=not settings.production,
        )

    async def send(
        self,
        message: dict[str, Any],
        tokens: list[str],
        priority: int,
        collapse_id: str | None,
    ) -> ApnsChunkResponse:
        requests = [
            NotificationRequest(
                device_token=token,
                message=message,
                priority=priority,
                collapse_key=collapse_id,
                push_type=PushType.ALERT,
            )
            for token in tokens
        ]
        responses = await asyncio.gather(
            *(self._client.send_notification(request) for request in requests),
            return_exceptions=True,
        )

        # Nothing got through: the chunk as a whole failed
        errors = [r for r in responses if isinstance(r, BaseException)]
        if errors and len(errors) == len(responses):
            raise errors[0]

        chunk = ApnsChunkResponse()
        for token, response in zip(tokens, responses):
            if isinstance(response, BaseException):
                chunk.failed.append(ApnsFailure(token=token, status=None, reason=str(response)))
            elif response.is_successful:
                chunk.sent.append(token)
            else:
                chunk.failed.append(
                    ApnsFailure(
                        token=token,
                        status=_parse_status(response.status),
                        reason=response.description,
                    )
                )
        return chunk

    async def close(self) -> None:
        # Older aioapns releases have no close()
        close = getattr(self._client, "close", None)
        if close is not None:
            await close()


def _parse_status(status: Any) -> int | None:
    try:
        return int(status)
    except (TypeError, ValueError):
        return None


class APNsClient(BaseProviderClient):
    """Push provider client for iOS devices.

    Attributes:
        settings: APNs credentials and endpoint selection.
    """

    platform = NotificationPlatform.IOS
    not_configured_code = PushErrorCode.APNS_NOT_CONFIGURED

    def __init__(
        self,
        settings: APNsSettings,
        provider: APNsProvider | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: APNs settings.
            provider: Chunk provider; built from settings on first use when omitted.
        """
        super().__init__()
        self.settings = settings
        self._provider = provider

    def is_configured(self) -> bool:
        return self.settings.is_configured

    def _get_provider(self) -> APNsProvider | None:
        if self._provider is None:
            try:
                self._provider = AioapnsProvider(self.settings)
                self.logger.info(
                    "APNs provider initialized (%s)",
                    "production" if self.settings.production else "sandbox",
                )
            except Exception as e:
                # Unreadable key file or malformed key
                self.logger.error("Failed to initialize APNs provider: %s", str(e))
                return None
        return self._provider

    def build_message(self, payload: PushNotificationPayload) -> dict[str, Any]:
        """Build the APNs JSON payload.

        Custom data is merged at the top level, next to "aps". A data key
        named "aps" is dropped so it cannot replace the alert dictionary.

        Args:
            payload: Notification content.

        Returns:
            APNs payload dictionary.
        """
        aps: dict[str, Any] = {
            "alert": {"title": payload.title, "body": payload.body},
            "sound": payload.sound or "default",
        }
        if payload.badge is not None:
            aps["badge"] = payload.badge

        message: dict[str, Any] = {"aps": aps}
        for key, value in (payload.data or {}).items():
            if key in RESERVED_PAYLOAD_KEYS:
                self.logger.warning("Dropping reserved APNs payload key from data: %s", key)
                continue
            message[key] = value
        return message

    async def send_to_tokens(
        self,
        tokens: list[str],
        payload: PushNotificationPayload,
    ) -> BatchPushNotificationResult:
        """Send one notification to many iOS device tokens.

        Args:
            tokens: APNs device tokens.
            payload: Notification content.

        Returns:
            Aggregate result covering every input token.
        """
        if not tokens:
            return BatchPushNotificationResult.empty()

        if not self.is_configured():
            return self.create_not_configured_result(tokens)

        provider = self._get_provider()
        if provider is None:
            return self.create_not_configured_result(tokens)

        message = self.build_message(payload)
        priority = PRIORITY_MAP[payload.priority]
        batch = BatchPushNotificationResult.empty()

        for index, chunk in enumerate(chunked(tokens, self.batch_size)):
            try:
                response = await provider.send(message, chunk, priority, payload.collapse_key)
            except Exception as e:
                self.logger.error(
                    "Failed to send APNs batch %d (%d tokens): %s",
                    index + 1,
                    len(chunk),
                    str(e),
                )
                batch.merge(
                    BatchPushNotificationResult.all_failed(
                        chunk, PushErrorCode.BATCH_ERROR, str(e) or type(e).__name__
                    )
                )
                continue

            for token in response.sent:
                self.record(batch, PushNotificationResult.ok(token))

            for failure in response.failed:
                code = map_status(failure.status)
                self.logger.debug(
                    "APNs rejected %s: %s (%s)",
                    mask_token(failure.token),
                    code.value,
                    failure.reason,
                )
                self.record(
                    batch,
                    PushNotificationResult.failed(
                        failure.token,
                        code,
                        failure.reason or "Unknown APNs error",
                    ),
                )

        self.logger.info(
            "APNs send complete: %d delivered, %d failed, %d invalid",
            batch.delivered_to,
            batch.failed_count,
            len(batch.invalid_tokens),
        )
        return batch

    async def close(self) -> None:
        """Close the HTTP/2 connection pool."""
        if self._provider is not None:
            await self._provider.close()
            self._provider = None
