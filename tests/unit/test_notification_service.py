# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the producer-side notification service."""

from unittest.mock import MagicMock

import pytest

from pushdispatch.infrastructure.notifications.errors import EnqueueError
from pushdispatch.infrastructure.notifications.service import NotificationService
from pushdispatch.infrastructure.notifications.types import NotificationType


@pytest.fixture
def mock_queue():
    """Create mock notification queue."""
    queue = MagicMock()
    queue.enqueue.return_value = "message-id"
    return queue


@pytest.fixture
def service(registry, mock_queue, delivery_log):
    """Create notification service with a real registry and log."""
    return NotificationService(registry, mock_queue, delivery_log)


async def seed(service: NotificationService) -> None:
    await service.register_device("user-1", "a1", "android", department_id="dept-a")
    await service.register_device("user-2", "i1", "ios", department_id="dept-a")
    await service.register_device("user-3", "a2", "android", department_id="dept-b")


class TestNotifyDepartments:
    """Tests for fan-out to departments."""

    @pytest.mark.asyncio
    async def test_one_job_per_platform(self, service, mock_queue, sample_payload) -> None:
        """Test a department with two platforms gets two jobs."""
        await seed(service)

        result = await service.notify_departments(
            "timetable", ["dept-a"], sample_payload, metadata={"source": "scheduler"}
        )

        assert result == {
            "total_devices": 2,
            "queued_jobs": 2,
            "platforms": {"android": 1, "ios": 1},
        }
        calls = {c.args[2]: c for c in mock_queue.enqueue.call_args_list}
        assert calls["android"].args[0] is NotificationType.TIMETABLE
        assert calls["android"].args[1] == ["a1"]
        assert calls["ios"].args[1] == ["i1"]
        assert calls["ios"].kwargs["department_id"] == "dept-a"
        assert calls["ios"].kwargs["metadata"] == {"source": "scheduler"}

    @pytest.mark.asyncio
    async def test_several_departments(self, service, mock_queue, sample_payload) -> None:
        """Test multi-department jobs carry no department id."""
        await seed(service)

        result = await service.notify_departments("custom", ["dept-a", "dept-b"], sample_payload)

        assert result["total_devices"] == 3
        assert result["platforms"] == {"android": 2, "ios": 1}
        for call in mock_queue.enqueue.call_args_list:
            assert call.kwargs["department_id"] is None

    @pytest.mark.asyncio
    async def test_all_departments(self, service, mock_queue, sample_payload) -> None:
        """Test "all" targets every registered device."""
        await seed(service)

        result = await service.notify_departments("announcement", "all", sample_payload)

        assert result["total_devices"] == 3
        assert mock_queue.enqueue.call_count == 2

    @pytest.mark.asyncio
    async def test_no_devices(self, service, mock_queue, sample_payload) -> None:
        """Test nothing is enqueued without devices."""
        result = await service.notify_departments("custom", ["dept-z"], sample_payload)

        assert result == {"total_devices": 0, "queued_jobs": 0, "platforms": {}}
        mock_queue.enqueue.assert_not_called()

    @pytest.mark.asyncio
    async def test_enqueue_error_propagates(self, service, mock_queue, sample_payload) -> None:
        """Test producers see broker failures."""
        await seed(service)
        mock_queue.enqueue.side_effect = EnqueueError("Could not enqueue")

        with pytest.raises(EnqueueError):
            await service.notify_departments("custom", ["dept-a"], sample_payload)


class TestReporting:
    """Tests for counts and statistics."""

    @pytest.mark.asyncio
    async def test_device_count(self, service) -> None:
        """Test device counts per platform."""
        await seed(service)

        count = await service.get_device_count(["dept-a"])

        assert count.to_dict() == {"ios": 1, "android": 1, "web": 0, "total": 2}

    @pytest.mark.asyncio
    async def test_statistics_and_recent_logs(self, service, delivery_log) -> None:
        """Test statistics and recent logs read the delivery log."""
        await delivery_log.append(
            type="custom",
            department_id="dept-a",
            total_devices=2,
            delivered_to=2,
            failed_count=0,
            invalid_tokens=0,
            duration_ms=40,
        )

        stats = await service.get_statistics(department_id="dept-a")
        logs = await service.get_recent_logs(limit=10)

        assert stats["total"] == 1
        assert stats["successful"] == 1
        assert len(logs) == 1
        assert logs[0]["type"] == "custom"
        assert logs[0]["success"] is True
