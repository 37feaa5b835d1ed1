# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base classes for push provider clients.

Each provider client speaks one push protocol (APNs, FCM). Clients are
stateless apart from cached credentials and connections, and never
raise for per-token failures: every token ends up in the returned
BatchPushNotificationResult as either delivered or failed.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterator, Sequence

from pushdispatch.infrastructure.notifications.errors import (
    PushErrorCode,
    is_invalid_token_code,
)
from pushdispatch.infrastructure.notifications.types import (
    BatchPushNotificationResult,
    NotificationPlatform,
    PushNotificationPayload,
    PushNotificationResult,
)

# Provider hard limit on tokens per batch
MAX_BATCH_SIZE = 500


def chunked(tokens: Sequence[str], size: int = MAX_BATCH_SIZE) -> Iterator[list[str]]:
    """Split tokens into consecutive chunks of at most size items.

    Args:
        tokens: Device tokens.
        size: Maximum chunk length.

    Yields:
        Lists of tokens, preserving order.
    """
    if size <= 0:
        raise ValueError("Chunk size must be positive")
    for start in range(0, len(tokens), size):
        yield list(tokens[start:start + size])


class BaseProviderClient(ABC):
    """Abstract base class for push provider clients.

    Attributes:
        platform: Platform served by this client.
        not_configured_code: Error code used when credentials are missing.
        batch_size: Maximum tokens per provider batch.
    """

    platform: NotificationPlatform
    not_configured_code: PushErrorCode = PushErrorCode.NOT_CONFIGURED
    batch_size: int = MAX_BATCH_SIZE

    def __init__(self) -> None:
        """Initialize the client."""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether credentials are present and the client can send."""
        ...

    @abstractmethod
    async def send_to_tokens(
        self,
        tokens: list[str],
        payload: PushNotificationPayload,
    ) -> BatchPushNotificationResult:
        """Send one notification to many tokens.

        Args:
            tokens: Device tokens for this client's platform.
            payload: Notification content.

        Returns:
            Aggregate result covering every input token.
        """
        ...

    async def send_to_token(
        self,
        token: str,
        payload: PushNotificationPayload,
    ) -> PushNotificationResult:
        """Send to a single token.

        Args:
            token: Device token.
            payload: Notification content.

        Returns:
            Result for the token.
        """
        batch = await self.send_to_tokens([token], payload)
        return batch.results[0]

    async def close(self) -> None:
        """Release network resources held by the client."""

    def create_not_configured_result(self, tokens: list[str]) -> BatchPushNotificationResult:
        """All-failed result used when credentials are missing.

        Args:
            tokens: Tokens that could not be sent.

        Returns:
            Result with every token failed with not_configured_code.
        """
        return BatchPushNotificationResult.all_failed(
            tokens,
            self.not_configured_code,
            f"{self.platform.value} push provider is not configured",
        )

    def record(
        self,
        batch: BatchPushNotificationResult,
        result: PushNotificationResult,
    ) -> None:
        """Add a token result, flagging dead tokens for cleanup.

        Args:
            batch: Aggregate being built.
            result: Token outcome.
        """
        batch.add(result, invalid=is_invalid_token_code(result.error_code))
