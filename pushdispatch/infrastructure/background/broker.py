# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dramatiq broker configuration for pushdispatch.

This module provides the notification job queues with:
- Redis broker for message persistence and durability
- Result backend keeping completed job summaries for a short while
- Dead-letter retention for jobs that exhausted their retries
- Heartbeat-based recovery of jobs held by a dead worker

Example:
    from pushdispatch.infrastructure.background.broker import setup_dramatiq, get_broker

    # Setup at application startup
    broker = setup_dramatiq()

    # Get broker for manual operations
    broker = get_broker()
"""

import logging
import os
from typing import Any

import dramatiq
import redis
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker
from dramatiq.common import dq_name, xq_name
from dramatiq.middleware import CurrentMessage
from dramatiq.results import Results
from dramatiq.results.backends.redis import RedisBackend

from pushdispatch.core.config import get_settings
from pushdispatch.infrastructure.background.middleware import (
    PROMETHEUS_AVAILABLE,
    MetricsMiddleware,
    set_metrics_middleware,
)
from pushdispatch.utils.logging import setup_logging

logger = logging.getLogger(__name__)


class Queues:
    """Queue name constants, one queue per notification type."""

    TIMETABLE = "notification-timetable"
    CUSTOM = "notification-custom"
    ANNOUNCEMENT = "notification-announcement"

    @classmethod
    def all(cls) -> list[str]:
        return [cls.TIMETABLE, cls.CUSTOM, cls.ANNOUNCEMENT]


class Priority:
    """Task priority levels (lower number = higher priority)."""

    HIGH = 1
    NORMAL = 2


def build_redis_client(redis_url: str, timeout: float) -> redis.Redis:
    """Create the broker's Redis client with bounded socket timeouts.

    Args:
        redis_url: Redis connection URL.
        timeout: Seconds to wait for connect and for each command.

    Returns:
        Redis client whose pool applies the timeouts to every connection.
    """
    return redis.Redis.from_url(
        redis_url,
        socket_connect_timeout=timeout,
        socket_timeout=timeout,
    )


class BrokerManager:
    """Manages Dramatiq broker lifecycle.

    Handles broker initialization, middleware setup, and shutdown.

    Attributes:
        _broker: The Dramatiq broker instance.
        _results_backend: The results backend instance.
        _initialized: Whether the broker has been initialized.
    """

    def __init__(self) -> None:
        """Initialize broker manager."""
        self._broker: dramatiq.Broker | None = None
        self._results_backend: RedisBackend | None = None
        self._initialized = False

    @property
    def broker(self) -> dramatiq.Broker:
        """Get the configured broker.

        Returns:
            The Dramatiq broker instance.

        Raises:
            RuntimeError: If broker not initialized.
        """
        if self._broker is None:
            raise RuntimeError("Broker not initialized. Call setup() first.")
        return self._broker

    @property
    def is_initialized(self) -> bool:
        """Check if broker is initialized."""
        return self._initialized

    def setup(self) -> dramatiq.Broker:
        """Setup and configure the Dramatiq broker.

        Returns:
            Configured broker instance.
        """
        if self._initialized:
            return self._broker  # type: ignore

        logger.info("Setting up Dramatiq broker...")

        # Check for test mode
        use_stub = os.getenv("DRAMATIQ_TEST_MODE", "false").lower() == "true"

        if use_stub:
            self._broker = StubBroker()
            self._broker.add_middleware(CurrentMessage())
            self._broker.emit_after("process_boot")
            logger.info("Using StubBroker for testing")
        else:
            settings = get_settings()
            setup_logging(settings)
            redis_url = settings.redis.url
            queue = settings.queue

            # Setup results backend
            self._results_backend = RedisBackend(url=redis_url)

            # RedisBroker ignores socket options when given a url, so the
            # client carrying the enqueue timeout is built here
            self._broker = RedisBroker(
                client=build_redis_client(redis_url, queue.enqueue_timeout),
                heartbeat_timeout=queue.heartbeat_timeout_ms,
                dead_message_ttl=queue.failed_ttl_seconds * 1000,
            )

            # Add middleware
            self._setup_middleware()

            logger.info("Redis broker initialized (url: %s)", redis_url.split("@")[-1])

        # Set as global broker
        dramatiq.set_broker(self._broker)
        self._initialized = True

        return self._broker

    def _setup_middleware(self) -> None:
        """Setup broker middleware.

        Adds the following middleware in order:
        1. CurrentMessage (actors read their retry count)
        2. Results middleware (completed job summaries)
        3. MetricsMiddleware (Prometheus metrics, optional)
        """
        if self._broker is None:
            return

        settings = get_settings()

        self._broker.add_middleware(CurrentMessage())

        if self._results_backend:
            self._broker.add_middleware(
                Results(
                    backend=self._results_backend,
                    store_results=True,
                    result_ttl=settings.queue.completed_ttl_seconds * 1000,
                )
            )

        # Add Prometheus metrics middleware (optional)
        if PROMETHEUS_AVAILABLE:
            metrics_middleware = MetricsMiddleware(namespace=settings.metrics_namespace)
            self._broker.add_middleware(metrics_middleware)
            set_metrics_middleware(metrics_middleware)
            logger.info("Prometheus metrics middleware enabled")

        logger.debug("Middleware configured")

    def shutdown(self) -> None:
        """Shutdown the broker."""
        if self._broker is not None:
            self._broker.close()
            self._broker = None
            self._initialized = False
            logger.info("Broker shutdown complete")

    def get_queue_stats(self) -> dict[str, Any]:
        """Get per-queue message counts.

        Returns:
            Queue statistics dictionary with pending, delayed and
            dead-lettered counts for every notification queue.
        """
        if not self._initialized or self._broker is None:
            return {"status": "not_initialized"}

        if isinstance(self._broker, RedisBroker):
            stats: dict[str, Any] = {"broker_type": "redis"}
            try:
                client = self._broker.client
                namespace = self._broker.namespace
                queues = {}
                for queue in Queues.all():
                    queues[queue] = {
                        "pending": client.llen(f"{namespace}:{queue}"),
                        "delayed": client.llen(f"{namespace}:{dq_name(queue)}"),
                        "dead": client.zcard(f"{namespace}:{xq_name(queue)}"),
                    }
                stats["queues"] = queues
                stats["status"] = "healthy"
            except Exception as e:
                stats["status"] = "error"
                stats["error"] = str(e)

            return stats

        if isinstance(self._broker, StubBroker):
            queues = {}
            for queue in Queues.all():
                pending = self._broker.queues.get(queue)
                delayed = self._broker.queues.get(dq_name(queue))
                queues[queue] = {
                    "pending": pending.qsize() if pending is not None else 0,
                    "delayed": delayed.qsize() if delayed is not None else 0,
                    "dead": len(self._broker.dead_letters_by_queue.get(queue, [])),
                }
            return {"broker_type": "stub", "status": "healthy", "queues": queues}

        return {"broker_type": type(self._broker).__name__, "status": "healthy"}


# Singleton instance
_broker_manager: BrokerManager | None = None


def get_broker_manager() -> BrokerManager:
    """Get the singleton broker manager.

    Returns:
        BrokerManager instance.
    """
    global _broker_manager
    if _broker_manager is None:
        _broker_manager = BrokerManager()
    return _broker_manager


def setup_dramatiq() -> dramatiq.Broker:
    """Setup Dramatiq with configuration from settings.

    This should be called once at application startup.

    Returns:
        Configured broker.
    """
    manager = get_broker_manager()
    return manager.setup()


def get_broker() -> dramatiq.Broker:
    """Get the current Dramatiq broker.

    Returns:
        Broker instance.

    Raises:
        RuntimeError: If broker not initialized.
    """
    return get_broker_manager().broker


def shutdown_dramatiq() -> None:
    """Shutdown the Dramatiq broker.

    Should be called at application shutdown.
    """
    global _broker_manager
    if _broker_manager is not None:
        _broker_manager.shutdown()
        _broker_manager = None
