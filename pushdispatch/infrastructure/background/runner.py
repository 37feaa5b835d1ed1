# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Worker entry point for the notification queues.

Starts the Dramatiq CLI on the notification actors, sized from
WorkerSettings (WORKER_PROCESSES, WORKER_THREADS) and consuming the
three notification queues.

Usage:
    pushdispatch-worker
"""

import logging
import sys

from dramatiq.cli import main as dramatiq_main
from dramatiq.cli import make_argument_parser

from pushdispatch.core.config import get_settings
from pushdispatch.core.config.settings import Settings
from pushdispatch.infrastructure.background.broker import Queues

logger = logging.getLogger(__name__)

TASKS_MODULE = "pushdispatch.infrastructure.background.tasks"


def build_worker_args(settings: Settings) -> list[str]:
    """Build Dramatiq CLI arguments for the notification workers.

    Args:
        settings: Application settings.

    Returns:
        Argument list for the dramatiq command.
    """
    return [
        TASKS_MODULE,
        "--processes",
        str(settings.worker.processes),
        "--threads",
        str(settings.worker.threads),
        "--queues",
        *Queues.all(),
    ]


def main() -> int:
    """Run the notification workers until they are stopped."""
    settings = get_settings()
    args = build_worker_args(settings)
    logger.info(
        "Starting notification workers: %d processes x %d threads",
        settings.worker.processes,
        settings.worker.threads,
    )
    return dramatiq_main(make_argument_parser().parse_args(args))


if __name__ == "__main__":
    sys.exit(main())
