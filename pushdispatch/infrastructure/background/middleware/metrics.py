# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Prometheus metrics middleware for Dramatiq.

Provides metrics collection for notification job processing and push
delivery, including counters, histograms, and gauges.
"""

import logging
import time
from typing import TYPE_CHECKING, Any

import dramatiq
from dramatiq import Message, Middleware

if TYPE_CHECKING:
    from pushdispatch.infrastructure.notifications.types import BatchPushNotificationResult

logger = logging.getLogger(__name__)

# Prometheus imports (optional - graceful degradation if not installed)
try:
    from prometheus_client import REGISTRY, Counter, Gauge, Histogram

    PROMETHEUS_AVAILABLE = True
except ImportError:
    PROMETHEUS_AVAILABLE = False
    Counter = None  # type: ignore[assignment, misc]
    Gauge = None  # type: ignore[assignment, misc]
    Histogram = None  # type: ignore[assignment, misc]
    REGISTRY = None  # type: ignore[assignment]


class MetricsMiddleware(Middleware):
    """Middleware that collects Prometheus metrics for notification actors.

    Metrics Collected:
    - dramatiq_messages_total: Total messages by actor, queue, status
    - dramatiq_message_duration_seconds: Processing time histogram
    - dramatiq_messages_in_flight: Currently processing messages gauge
    - dramatiq_messages_failed_total: Failed messages counter
    - push_delivered_total: Tokens accepted by a provider, by platform
    - push_failed_total: Failed tokens by platform and error code
    - push_invalid_tokens_removed_total: Registry rows purged after dead-token reports

    Usage:
        from pushdispatch.infrastructure.background.middleware.metrics import MetricsMiddleware

        broker.add_middleware(MetricsMiddleware())

    Note:
        Requires prometheus_client. If not available, middleware operates as no-op.
    """

    START_TIME_KEY = "_metrics_start_time"

    def __init__(
        self,
        registry: Any = None,
        namespace: str = "pushdispatch",
    ) -> None:
        """Initialize metrics middleware.

        Args:
            registry: Prometheus registry (default: global REGISTRY).
            namespace: Metrics namespace prefix.
        """
        self._initialized = False

        if not PROMETHEUS_AVAILABLE:
            logger.warning(
                "Prometheus client not available. Metrics middleware will be no-op. "
                "Install with: pip install prometheus-client"
            )
            return

        self.registry = registry or REGISTRY
        self.namespace = namespace

        self.messages_total = Counter(
            f"{namespace}_dramatiq_messages_total",
            "Total Dramatiq messages processed",
            ["actor", "queue", "status"],
            registry=self.registry,
        )

        self.message_duration = Histogram(
            f"{namespace}_dramatiq_message_duration_seconds",
            "Dramatiq message processing duration",
            ["actor", "queue"],
            buckets=[0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
            registry=self.registry,
        )

        self.messages_in_flight = Gauge(
            f"{namespace}_dramatiq_messages_in_flight",
            "Dramatiq messages currently being processed",
            ["actor", "queue"],
            registry=self.registry,
        )

        self.messages_failed = Counter(
            f"{namespace}_dramatiq_messages_failed_total",
            "Total failed Dramatiq messages",
            ["actor", "queue", "exception_type"],
            registry=self.registry,
        )

        # Push delivery metrics
        self.push_delivered = Counter(
            f"{namespace}_push_delivered_total",
            "Push notifications accepted by the provider",
            ["platform"],
            registry=self.registry,
        )

        self.push_failed = Counter(
            f"{namespace}_push_failed_total",
            "Push notifications that failed",
            ["platform", "error_code"],
            registry=self.registry,
        )

        self.invalid_tokens_removed = Counter(
            f"{namespace}_push_invalid_tokens_removed_total",
            "Device registrations removed after the provider reported the token dead",
            registry=self.registry,
        )

        self._initialized = True
        logger.debug("Metrics middleware initialized with namespace: %s", namespace)

    def before_process_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
    ) -> None:
        """Record message start time and increment in-flight gauge.

        Args:
            broker: Dramatiq broker.
            message: Message being processed.
        """
        if not self._initialized:
            return

        message.options[self.START_TIME_KEY] = time.perf_counter()
        self.messages_in_flight.labels(
            actor=message.actor_name,
            queue=message.queue_name,
        ).inc()

    def after_process_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
        *,
        result: Any = None,
        exception: BaseException | None = None,
    ) -> None:
        """Record message completion metrics.

        Args:
            broker: Dramatiq broker.
            message: Message that was processed.
            result: Result of processing (if successful).
            exception: Exception raised (if failed).
        """
        if not self._initialized:
            return

        actor_name = message.actor_name
        queue_name = message.queue_name
        start_time = message.options.pop(self.START_TIME_KEY, None)

        self.messages_in_flight.labels(actor=actor_name, queue=queue_name).dec()

        if start_time is not None:
            self.message_duration.labels(
                actor=actor_name,
                queue=queue_name,
            ).observe(time.perf_counter() - start_time)

        if exception:
            status = "failed"
            self.messages_failed.labels(
                actor=actor_name,
                queue=queue_name,
                exception_type=type(exception).__name__,
            ).inc()
        else:
            status = "success"

        self.messages_total.labels(
            actor=actor_name,
            queue=queue_name,
            status=status,
        ).inc()

    def after_skip_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
    ) -> None:
        """Handle skipped messages.

        Args:
            broker: Dramatiq broker.
            message: Message that was skipped.
        """
        if not self._initialized:
            return

        # Decrement in-flight if we tracked it
        if self.START_TIME_KEY in message.options:
            message.options.pop(self.START_TIME_KEY, None)
            self.messages_in_flight.labels(
                actor=message.actor_name,
                queue=message.queue_name,
            ).dec()

        self.messages_total.labels(
            actor=message.actor_name,
            queue=message.queue_name,
            status="skipped",
        ).inc()

    def record_push_result(
        self,
        platform: str,
        result: "BatchPushNotificationResult",
    ) -> None:
        """Count delivered and failed tokens of one platform send.

        Args:
            platform: Platform the tokens were sent on.
            result: Router result for that platform.
        """
        if not self._initialized:
            return

        if result.delivered_to:
            self.push_delivered.labels(platform=platform).inc(result.delivered_to)

        for token_result in result.results:
            if not token_result.success:
                self.push_failed.labels(
                    platform=platform,
                    error_code=token_result.error_code or "unknown_error",
                ).inc()

    def record_tokens_removed(self, count: int) -> None:
        """Count registry rows purged after dead-token reports."""
        if not self._initialized or count <= 0:
            return
        self.invalid_tokens_removed.inc(count)


# Singleton instance for use in actors
_metrics_middleware: MetricsMiddleware | None = None


def get_metrics_middleware() -> MetricsMiddleware | None:
    """Get the metrics middleware instance.

    Returns:
        MetricsMiddleware instance or None if not set.
    """
    return _metrics_middleware


def set_metrics_middleware(middleware: MetricsMiddleware | None) -> None:
    """Set the global metrics middleware instance.

    Args:
        middleware: MetricsMiddleware instance to set.
    """
    global _metrics_middleware
    _metrics_middleware = middleware
