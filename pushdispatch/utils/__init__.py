# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers for pushdispatch.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime operations and duration helpers
"""

from pushdispatch.utils.datetime import (
    elapsed_ms,
    ensure_utc,
    monotonic_ms,
    now,
    utc_now,
)
from pushdispatch.utils.logging import (
    bind_context,
    clear_context,
    get_logger,
    mask_token,
    setup_logging,
)

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "mask_token",
    # Datetime
    "utc_now",
    "now",
    "ensure_utc",
    "monotonic_ms",
    "elapsed_ms",
]
