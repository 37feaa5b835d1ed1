# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the worker entry point."""

from unittest.mock import patch

from pushdispatch.core.config.settings import Settings, WorkerSettings
from pushdispatch.infrastructure.background import runner
from pushdispatch.infrastructure.background.broker import Queues


class TestWorkerEntryPoint:
    """Tests for sizing the Dramatiq workers from settings."""

    def test_build_worker_args(self) -> None:
        """Test processes, threads and queues come from settings."""
        settings = Settings(worker=WorkerSettings(processes=3, threads=8))

        args = runner.build_worker_args(settings)

        assert args[0] == "pushdispatch.infrastructure.background.tasks"
        assert args[args.index("--processes") + 1] == "3"
        assert args[args.index("--threads") + 1] == "8"
        assert args[args.index("--queues") + 1 :] == Queues.all()

    def test_main_runs_dramatiq_cli(self) -> None:
        """Test main hands the parsed arguments to the Dramatiq CLI."""
        settings = Settings(worker=WorkerSettings(processes=1, threads=2))

        with (
            patch.object(runner, "get_settings", return_value=settings),
            patch.object(runner, "dramatiq_main", return_value=0) as dramatiq_main,
        ):
            assert runner.main() == 0

        parsed = dramatiq_main.call_args.args[0]
        assert parsed.broker == runner.TASKS_MODULE
        assert parsed.processes == 1
        assert parsed.threads == 2
        assert parsed.queues == Queues.all()
