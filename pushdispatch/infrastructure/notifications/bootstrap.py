# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Wiring of the dispatch stack from settings.

Every Dramatiq worker thread owns one DispatchStack: database engine,
provider clients (and their connection pools), router, delivery log
and worker. All of these are bound to the thread's event loop, so the
stack is cached per thread and dropped when the loop is replaced.
"""

import logging
import threading
from dataclasses import dataclass

from pushdispatch.core.config.settings import Settings, get_settings
from pushdispatch.infrastructure.database.connection import Database
from pushdispatch.infrastructure.notifications.delivery_log import DeliveryLog
from pushdispatch.infrastructure.notifications.providers.apns import APNsClient
from pushdispatch.infrastructure.notifications.providers.fcm import FCMClient
from pushdispatch.infrastructure.notifications.registry import DeviceRegistry
from pushdispatch.infrastructure.notifications.router import PushRouter
from pushdispatch.infrastructure.notifications.worker import DispatchWorker

logger = logging.getLogger(__name__)


@dataclass
class DispatchStack:
    """Components needed to process notification jobs."""

    database: Database
    registry: DeviceRegistry
    apns: APNsClient
    fcm: FCMClient
    router: PushRouter
    delivery_log: DeliveryLog
    worker: DispatchWorker

    async def close(self) -> None:
        """Release connection pools held by the stack."""
        await self.apns.close()
        await self.fcm.close()
        await self.database.close()


async def build_dispatch_stack(
    settings: Settings,
    create_tables: bool = True,
) -> DispatchStack:
    """Construct and initialize a dispatch stack.

    Args:
        settings: Application settings.
        create_tables: Create missing registry and log tables.

    Returns:
        Ready-to-use stack bound to the running event loop.

    Raises:
        DatabaseError: If the database cannot be initialized.
    """
    # Import here to avoid a cycle with the broker, which imports settings
    from pushdispatch.infrastructure.background.middleware import get_metrics_middleware

    database = Database(
        settings.db.url,
        pool_size=settings.db.pool_size,
        max_overflow=settings.db.max_overflow,
    )
    await database.init()
    if create_tables:
        await database.create_all()

    registry = DeviceRegistry(database)
    apns = APNsClient(settings.apns)
    fcm = FCMClient(settings.fcm)
    router = PushRouter(registry, apns=apns, fcm=fcm)
    delivery_log = DeliveryLog(database)
    worker = DispatchWorker(router, delivery_log, metrics=get_metrics_middleware())

    if not router.is_configured():
        logger.warning("No push provider is configured; every send will fail")

    return DispatchStack(
        database=database,
        registry=registry,
        apns=apns,
        fcm=fcm,
        router=router,
        delivery_log=delivery_log,
        worker=worker,
    )


# Thread-local storage for worker stacks
_thread_local = threading.local()


async def get_thread_dispatch_worker() -> DispatchWorker:
    """Get the dispatch worker for the current worker thread.

    Built on first use in each thread.

    Returns:
        DispatchWorker bound to this thread's event loop.
    """
    stack: DispatchStack | None = getattr(_thread_local, "stack", None)
    if stack is None:
        stack = await build_dispatch_stack(get_settings())
        _thread_local.stack = stack
        logger.debug(
            "Built dispatch stack for thread %s",
            threading.current_thread().name,
        )
    return stack.worker


def clear_thread_dispatch_worker() -> None:
    """Forget the current thread's stack.

    Called when the thread's event loop is replaced; the old stack's
    resources belong to the closed loop and cannot be reused.
    """
    if hasattr(_thread_local, "stack"):
        del _thread_local.stack
