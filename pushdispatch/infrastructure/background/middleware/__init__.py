# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background processing middleware for pushdispatch.

This module provides custom Dramatiq middleware for:
- Prometheus metrics (optional)
"""

from pushdispatch.infrastructure.background.middleware.metrics import (
    PROMETHEUS_AVAILABLE,
    MetricsMiddleware,
    get_metrics_middleware,
    set_metrics_middleware,
)

__all__ = [
    "MetricsMiddleware",
    "PROMETHEUS_AVAILABLE",
    "get_metrics_middleware",
    "set_metrics_middleware",
]
