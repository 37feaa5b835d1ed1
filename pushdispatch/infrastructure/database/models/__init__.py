# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""ORM models for the device registry and delivery log."""

from pushdispatch.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)
from pushdispatch.infrastructure.database.models.device import Device
from pushdispatch.infrastructure.database.models.notification_log import NotificationLog

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "Device",
    "NotificationLog",
]
