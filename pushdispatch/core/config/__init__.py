# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for pushdispatch.

Example:
    >>> from pushdispatch.core.config import get_settings
    >>> settings = get_settings()
    >>> settings.queue.max_attempts
    3
"""

from pushdispatch.core.config.settings import (
    APNsSettings,
    DatabaseSettings,
    FCMSettings,
    FcmLegacyMode,
    FcmMode,
    FcmV1Mode,
    QueueSettings,
    RedisSettings,
    Settings,
    WorkerSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Subsettings
    "DatabaseSettings",
    "RedisSettings",
    "APNsSettings",
    "FCMSettings",
    "QueueSettings",
    "WorkerSettings",
    # FCM operating modes
    "FcmMode",
    "FcmV1Mode",
    "FcmLegacyMode",
]
