# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Shared types for the notification dispatch pipeline.

Provider responses are parsed into PushNotificationResult and
BatchPushNotificationResult at the client boundary; no raw provider
objects travel further inward.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from pushdispatch.infrastructure.notifications.errors import (
    JobPayloadError,
    PushErrorCode,
)

DataValue = str | int | float | bool


class NotificationPlatform(str, Enum):
    """Device platforms known to the registry."""

    IOS = "ios"
    ANDROID = "android"
    WEB = "web"


class NotificationType(str, Enum):
    """Producer categories; each has its own queue."""

    TIMETABLE = "timetable"
    CUSTOM = "custom"
    ANNOUNCEMENT = "announcement"


class PushPriority(str, Enum):
    """Delivery priority requested from the provider."""

    HIGH = "high"
    NORMAL = "normal"


@dataclass
class PushNotificationPayload:
    """Platform-independent notification content.

    Attributes:
        title: Notification title.
        body: Notification body text.
        data: Custom key/value data delivered to the app.
        badge: App icon badge count (iOS).
        sound: Sound name; providers default to "default".
        priority: Delivery priority.
        collapse_key: Collapse identifier; newer notifications replace older ones.
    """

    title: str
    body: str
    data: dict[str, DataValue] | None = None
    badge: int | None = None
    sound: str | None = None
    priority: PushPriority = PushPriority.NORMAL
    collapse_key: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dictionary."""
        return {
            "title": self.title,
            "body": self.body,
            "data": dict(self.data) if self.data else None,
            "badge": self.badge,
            "sound": self.sound,
            "priority": self.priority.value,
            "collapse_key": self.collapse_key,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "PushNotificationPayload":
        """Build a payload from to_dict() output.

        Raises:
            JobPayloadError: If title/body are missing or priority is unknown.
        """
        try:
            return cls(
                title=raw["title"],
                body=raw["body"],
                data=raw.get("data") or None,
                badge=raw.get("badge"),
                sound=raw.get("sound"),
                priority=PushPriority(raw.get("priority") or PushPriority.NORMAL.value),
                collapse_key=raw.get("collapse_key"),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise JobPayloadError("Invalid notification payload", e) from e


@dataclass(frozen=True)
class PushError:
    """Provider failure for one token."""

    code: str
    message: str


@dataclass
class PushNotificationResult:
    """Outcome of one token send."""

    success: bool
    token: str
    error: PushError | None = None

    @classmethod
    def ok(cls, token: str) -> "PushNotificationResult":
        return cls(success=True, token=token)

    @classmethod
    def failed(
        cls,
        token: str,
        code: PushErrorCode | str,
        message: str,
    ) -> "PushNotificationResult":
        code_value = code.value if isinstance(code, PushErrorCode) else code
        return cls(success=False, token=token, error=PushError(code=code_value, message=message))

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error else None


@dataclass
class BatchPushNotificationResult:
    """Aggregate outcome of sending to a list of tokens.

    Invariants: delivered_to + failed_count == total_devices, and every
    entry of invalid_tokens is the token of a failed result.
    """

    delivered_to: int = 0
    failed_count: int = 0
    total_devices: int = 0
    invalid_tokens: list[str] = field(default_factory=list)
    results: list[PushNotificationResult] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "BatchPushNotificationResult":
        """All-zero result for an empty token list."""
        return cls()

    @classmethod
    def all_failed(
        cls,
        tokens: Iterable[str],
        code: PushErrorCode | str,
        message: str,
    ) -> "BatchPushNotificationResult":
        """Mark every token failed with the same error."""
        results = [PushNotificationResult.failed(token, code, message) for token in tokens]
        return cls(
            delivered_to=0,
            failed_count=len(results),
            total_devices=len(results),
            invalid_tokens=[],
            results=results,
        )

    def add(self, result: PushNotificationResult, invalid: bool = False) -> None:
        """Record one token outcome.

        Args:
            result: Token outcome.
            invalid: Whether the token must be purged from the registry.
        """
        self.results.append(result)
        self.total_devices += 1
        if result.success:
            self.delivered_to += 1
        else:
            self.failed_count += 1
            if invalid:
                self.invalid_tokens.append(result.token)

    def merge(self, other: "BatchPushNotificationResult") -> "BatchPushNotificationResult":
        """Add another result's counts and lists into this one.

        Returns:
            self, for chaining.
        """
        self.delivered_to += other.delivered_to
        self.failed_count += other.failed_count
        self.total_devices += other.total_devices
        self.invalid_tokens.extend(other.invalid_tokens)
        self.results.extend(other.results)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Summary without per-token results."""
        return {
            "delivered_to": self.delivered_to,
            "failed_count": self.failed_count,
            "total_devices": self.total_devices,
            "invalid_tokens": len(self.invalid_tokens),
        }


@dataclass(frozen=True)
class DeviceTarget:
    """A token with the platform it was registered on."""

    token: str
    platform: str


@dataclass
class NotificationJob:
    """One unit of dispatch work, as carried by the job queue.

    Attributes:
        type: Producer category.
        tokens: Device tokens, normally all on the same platform.
        platform: Platform of the tokens.
        payload: Notification content.
        department_id: Targeted department, for the delivery log.
        metadata: Free-form producer metadata, copied to the delivery log.
    """

    type: NotificationType
    tokens: list[str]
    platform: str
    payload: PushNotificationPayload
    department_id: str | None = None
    metadata: dict[str, Any] | None = None

    def to_message(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dict for the broker."""
        return {
            "type": self.type.value,
            "tokens": list(self.tokens),
            "platform": self.platform,
            "payload": self.payload.to_dict(),
            "department_id": self.department_id,
            "metadata": self.metadata,
        }

    @classmethod
    def from_message(cls, raw: dict[str, Any]) -> "NotificationJob":
        """Deserialize a broker message.

        Raises:
            JobPayloadError: If the message is malformed.
        """
        try:
            tokens = raw["tokens"]
            if not isinstance(tokens, list):
                raise TypeError("tokens must be a list")
            return cls(
                type=NotificationType(raw["type"]),
                tokens=[str(t) for t in tokens],
                platform=str(raw["platform"]),
                payload=PushNotificationPayload.from_dict(raw["payload"]),
                department_id=raw.get("department_id"),
                metadata=raw.get("metadata"),
            )
        except JobPayloadError:
            raise
        except (KeyError, ValueError, TypeError) as e:
            raise JobPayloadError("Invalid notification job message", e) from e
