# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests
- Integration tests
"""

import os

# Must be set before any module sets up the broker
os.environ["DRAMATIQ_TEST_MODE"] = "true"

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio

from pushdispatch.infrastructure.database.connection import Database
from pushdispatch.infrastructure.notifications.delivery_log import DeliveryLog
from pushdispatch.infrastructure.notifications.registry import DeviceRegistry
from pushdispatch.infrastructure.notifications.types import (
    NotificationJob,
    NotificationType,
    PushNotificationPayload,
    PushPriority,
)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncIterator[Database]:
    """Provide a SQLite database with all tables created.

    A file database is used so every session sees the same data.
    """
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'pushdispatch.db'}")
    await db.init()
    await db.create_all()
    yield db
    await db.close()


@pytest.fixture
def registry(database: Database) -> DeviceRegistry:
    """Provide a device registry backed by the test database."""
    return DeviceRegistry(database)


@pytest.fixture
def delivery_log(database: Database) -> DeliveryLog:
    """Provide a delivery log backed by the test database."""
    return DeliveryLog(database)


# =============================================================================
# Helper Fixtures
# =============================================================================


@pytest.fixture
def sample_payload() -> PushNotificationPayload:
    """Provide a sample notification payload."""
    return PushNotificationPayload(
        title="Timetable updated",
        body="Room 204 has moved to Room 310",
        data={"lesson_id": "L-42", "week": 7, "urgent": True},
        badge=3,
        priority=PushPriority.HIGH,
        collapse_key="timetable-dept-a",
    )


@pytest.fixture
def sample_job(sample_payload: PushNotificationPayload) -> NotificationJob:
    """Provide a sample Android notification job."""
    return NotificationJob(
        type=NotificationType.TIMETABLE,
        tokens=["android-token-1", "android-token-2", "android-token-3"],
        platform="android",
        payload=sample_payload,
        department_id="dept-a",
        metadata={"changed_by": "scheduler"},
    )


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
