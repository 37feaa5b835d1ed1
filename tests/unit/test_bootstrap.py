# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for dispatch stack wiring."""

from unittest.mock import patch

import pytest

from pushdispatch.core.config.settings import DatabaseSettings, Settings
from pushdispatch.infrastructure.notifications import bootstrap
from pushdispatch.infrastructure.notifications.bootstrap import (
    build_dispatch_stack,
    clear_thread_dispatch_worker,
    get_thread_dispatch_worker,
)


@pytest.fixture
def sqlite_settings(tmp_path) -> Settings:
    """Create settings pointing at a SQLite database."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'stack.db'}"
    return Settings(db=DatabaseSettings(DATABASE_URL=url))  # type: ignore[call-arg]


class TestBuildDispatchStack:
    """Tests for build_dispatch_stack."""

    @pytest.mark.asyncio
    async def test_components_are_wired(self, sqlite_settings) -> None:
        """Test the worker uses the stack's router and delivery log."""
        stack = await build_dispatch_stack(sqlite_settings)
        try:
            assert stack.worker.router is stack.router
            assert stack.worker.delivery_log is stack.delivery_log
            assert stack.router.registry is stack.registry
            assert stack.router.clients == {"ios": stack.apns, "android": stack.fcm}
            assert stack.router.is_configured() is False
            assert await stack.database.check_connection() is True
            assert await stack.registry.list_all() == []
        finally:
            await stack.close()

        assert await stack.database.check_connection() is False


class TestThreadDispatchWorker:
    """Tests for the per-thread worker cache."""

    @pytest.mark.asyncio
    async def test_worker_is_cached_until_cleared(self, sqlite_settings) -> None:
        """Test the same worker is returned until the cache is cleared."""
        clear_thread_dispatch_worker()
        with patch.object(bootstrap, "get_settings", return_value=sqlite_settings):
            first = await get_thread_dispatch_worker()
            second = await get_thread_dispatch_worker()
            stack = bootstrap._thread_local.stack
            clear_thread_dispatch_worker()
            third = await get_thread_dispatch_worker()

        assert first is second
        assert third is not first
        await stack.close()
        await bootstrap._thread_local.stack.close()
        clear_thread_dispatch_worker()
