# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the push router."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from pushdispatch.core.config.settings import APNsSettings
from pushdispatch.infrastructure.notifications.providers.apns import APNsClient
from pushdispatch.infrastructure.notifications.router import (
    PushRouter,
    dedupe,
    group_by_platform,
)
from pushdispatch.infrastructure.notifications.types import (
    BatchPushNotificationResult,
    DeviceTarget,
    PushNotificationResult,
)


def ok_batch(tokens: list[str]) -> BatchPushNotificationResult:
    batch = BatchPushNotificationResult.empty()
    for token in tokens:
        batch.add(PushNotificationResult.ok(token))
    return batch


def make_client(configured: bool = True) -> MagicMock:
    client = MagicMock()
    client.is_configured.return_value = configured
    client.send_to_tokens = AsyncMock(side_effect=lambda tokens, payload: ok_batch(tokens))
    client.create_not_configured_result.side_effect = lambda tokens: (
        BatchPushNotificationResult.all_failed(tokens, "apns_not_configured", "not configured")
    )
    return client


@pytest.fixture
def mock_registry():
    """Create mock device registry."""
    registry = MagicMock()
    registry.list_by_user = AsyncMock(return_value=[])
    registry.list_by_department = AsyncMock(return_value=[])
    registry.list_all = AsyncMock(return_value=[])
    registry.remove = AsyncMock(return_value=0)
    return registry


class TestGrouping:
    """Tests for grouping helpers."""

    def test_group_by_platform(self) -> None:
        """Test tokens are partitioned with order preserved."""
        devices = [
            DeviceTarget("a1", "android"),
            DeviceTarget("i1", "ios"),
            DeviceTarget("a2", "android"),
        ]

        assert group_by_platform(devices) == {"android": ["a1", "a2"], "ios": ["i1"]}

    def test_dedupe_keeps_first(self) -> None:
        """Test repeated tokens are dropped."""
        devices = [DeviceTarget("t", "ios"), DeviceTarget("t", "android"), DeviceTarget("u", "ios")]

        assert dedupe(devices) == [DeviceTarget("t", "ios"), DeviceTarget("u", "ios")]


class TestPushRouterSend:
    """Tests for routing sends to provider clients."""

    @pytest.mark.asyncio
    async def test_platform_isolation(self, mock_registry, sample_payload) -> None:
        """Test iOS tokens only reach APNs and Android tokens only reach FCM."""
        apns, fcm = make_client(), make_client()
        router = PushRouter(mock_registry, apns=apns, fcm=fcm)
        devices = [
            DeviceTarget("i1", "ios"),
            DeviceTarget("a1", "android"),
            DeviceTarget("i2", "ios"),
            DeviceTarget("a2", "android"),
        ]

        result = await router.send_to_devices(devices, sample_payload)

        apns.send_to_tokens.assert_awaited_once_with(["i1", "i2"], sample_payload)
        fcm.send_to_tokens.assert_awaited_once_with(["a1", "a2"], sample_payload)
        assert result.total_devices == 4
        assert result.delivered_to == 4

    @pytest.mark.asyncio
    async def test_mixed_devices_with_apns_unconfigured(self, mock_registry, sample_payload) -> None:
        """Test 2 android + 1 ios with APNs unconfigured."""
        apns = APNsClient(APNsSettings())
        fcm = make_client()
        router = PushRouter(mock_registry, apns=apns, fcm=fcm)
        devices = [
            DeviceTarget("a1", "android"),
            DeviceTarget("i1", "ios"),
            DeviceTarget("a2", "android"),
        ]

        result = await router.send_to_devices(devices, sample_payload)

        assert result.total_devices == 3
        assert result.delivered_to == 2
        assert result.failed_count >= 1
        ios_result = next(r for r in result.results if r.token == "i1")
        assert ios_result.error is not None
        assert ios_result.error.code == "apns_not_configured"

    @pytest.mark.asyncio
    async def test_unconfigured_client_is_not_called(self, mock_registry, sample_payload) -> None:
        """Test an unconfigured client is skipped entirely."""
        apns, fcm = make_client(configured=False), make_client()
        router = PushRouter(mock_registry, apns=apns, fcm=fcm)

        result = await router.send_to_tokens(["i1", "i2"], "ios", sample_payload)

        apns.send_to_tokens.assert_not_awaited()
        assert result.failed_count == 2
        assert {r.error_code for r in result.results} == {"apns_not_configured"}

    @pytest.mark.asyncio
    async def test_unknown_platform(self, mock_registry, sample_payload) -> None:
        """Test web tokens fail with not_configured."""
        router = PushRouter(mock_registry, apns=make_client(), fcm=make_client())

        result = await router.send_to_tokens(["w1"], "web", sample_payload)

        assert result.failed_count == 1
        assert result.results[0].error_code == "not_configured"

    @pytest.mark.asyncio
    async def test_client_exception_becomes_send_error(self, mock_registry, sample_payload) -> None:
        """Test the router never raises for client failures."""
        fcm = make_client()
        fcm.send_to_tokens = AsyncMock(side_effect=RuntimeError("boom"))
        router = PushRouter(mock_registry, apns=make_client(), fcm=fcm)

        result = await router.send_to_tokens(["a1", "a2"], "android", sample_payload)

        assert result.failed_count == 2
        assert {r.error_code for r in result.results} == {"send_error"}

    @pytest.mark.asyncio
    async def test_empty_tokens(self, mock_registry, sample_payload) -> None:
        """Test no tokens means no client calls."""
        fcm = make_client()
        router = PushRouter(mock_registry, apns=make_client(), fcm=fcm)

        result = await router.send_to_tokens([], "android", sample_payload)

        assert result.total_devices == 0
        fcm.send_to_tokens.assert_not_awaited()

    def test_is_configured(self, mock_registry) -> None:
        """Test the router is configured if any client is."""
        assert PushRouter(mock_registry, make_client(False), make_client(True)).is_configured()
        assert not PushRouter(mock_registry, make_client(False), make_client(False)).is_configured()


class TestPushRouterTargets:
    """Tests for target resolution through the registry."""

    @pytest.mark.asyncio
    async def test_send_to_department(self, mock_registry, sample_payload) -> None:
        """Test department sends resolve devices from the registry."""
        mock_registry.list_by_department.return_value = [
            DeviceTarget("a1", "android"),
            DeviceTarget("i1", "ios"),
        ]
        apns, fcm = make_client(), make_client()
        router = PushRouter(mock_registry, apns=apns, fcm=fcm)

        result = await router.send_to_department("dept-a", sample_payload)

        mock_registry.list_by_department.assert_awaited_once_with(["dept-a"])
        assert result.delivered_to == 2

    @pytest.mark.asyncio
    async def test_send_to_users_dedupes(self, mock_registry, sample_payload) -> None:
        """Test duplicate tokens across users are sent once."""
        mock_registry.list_by_user.return_value = [
            DeviceTarget("shared", "android"),
            DeviceTarget("shared", "android"),
        ]
        fcm = make_client()
        router = PushRouter(mock_registry, apns=make_client(), fcm=fcm)

        result = await router.send_to_users(["u1", "u2"], sample_payload)

        fcm.send_to_tokens.assert_awaited_once_with(["shared"], sample_payload)
        assert result.total_devices == 1

    @pytest.mark.asyncio
    async def test_send_to_all_without_devices(self, mock_registry, sample_payload) -> None:
        """Test an empty registry yields an empty result."""
        router = PushRouter(mock_registry, apns=make_client(), fcm=make_client())

        result = await router.send_to_all(sample_payload)

        assert result.total_devices == 0


class TestCleanupInvalidTokens:
    """Tests for dead-token cleanup."""

    @pytest.mark.asyncio
    async def test_removes_tokens(self, mock_registry) -> None:
        """Test tokens are removed through the registry."""
        mock_registry.remove.return_value = 2
        router = PushRouter(mock_registry, apns=make_client(), fcm=make_client())

        removed = await router.cleanup_invalid_tokens(["x", "y"])

        assert removed == 2
        mock_registry.remove.assert_awaited_once_with(["x", "y"])

    @pytest.mark.asyncio
    async def test_registry_failure_is_swallowed(self, mock_registry) -> None:
        """Test cleanup never raises."""
        mock_registry.remove.side_effect = RuntimeError("db down")
        router = PushRouter(mock_registry, apns=make_client(), fcm=make_client())

        assert await router.cleanup_invalid_tokens(["x"]) == 0

    @pytest.mark.asyncio
    async def test_empty_list(self, mock_registry) -> None:
        """Test nothing happens without tokens."""
        router = PushRouter(mock_registry, apns=make_client(), fcm=make_client())

        assert await router.cleanup_invalid_tokens([]) == 0
        mock_registry.remove.assert_not_awaited()
