# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dispatch worker: processes one notification job end to end.

For each job the worker:
1. Groups the job's tokens by platform
2. Sends each group through the push router
3. Removes tokens the providers reported as dead
4. Appends one record to the delivery log

Exceptions propagate so the job queue can retry the job. A job where no
token was delivered and every failure is transient (provider overload,
transport errors) raises TransientDeliveryError for the same reason. The
failure record is only written on the final attempt, so a job that
eventually succeeds or exhausts its retries leaves exactly one log record.
"""

import logging
from typing import TYPE_CHECKING, Any

from pushdispatch.infrastructure.notifications.delivery_log import DeliveryLog
from pushdispatch.infrastructure.notifications.errors import (
    TransientDeliveryError,
    is_transient_code,
)
from pushdispatch.infrastructure.notifications.router import PushRouter
from pushdispatch.infrastructure.notifications.types import NotificationJob
from pushdispatch.utils.datetime import elapsed_ms, monotonic_ms

if TYPE_CHECKING:
    from pushdispatch.infrastructure.background.middleware.metrics import MetricsMiddleware

logger = logging.getLogger(__name__)


class DispatchWorker:
    """Processes notification jobs.

    Attributes:
        router: Push router used for sending and token cleanup.
        delivery_log: Where job outcomes are recorded.
        metrics: Optional Prometheus middleware for push counters.
    """

    def __init__(
        self,
        router: PushRouter,
        delivery_log: DeliveryLog,
        metrics: "MetricsMiddleware | None" = None,
    ) -> None:
        self.router = router
        self.delivery_log = delivery_log
        self.metrics = metrics

    def _group_tokens_by_platform(self, job: NotificationJob) -> dict[str, list[str]]:
        # Producers enqueue one platform per job
        if not job.tokens:
            return {}
        return {job.platform: list(job.tokens)}

    async def process(self, job: NotificationJob, final_attempt: bool = True) -> dict[str, Any]:
        """Process one job.

        Args:
            job: The job to process.
            final_attempt: Whether the queue will not retry this job again.

        Returns:
            Summary of the outcome.

        Raises:
            TransientDeliveryError: If nothing was delivered, every failure was
                transient and the queue will retry the job.
            Exception: Any error that aborted sending, so the queue retries.
        """
        start = monotonic_ms()
        queue_type = job.type.value
        logger.info("Processing %s notification: %d tokens", queue_type, len(job.tokens))

        delivered_to = 0
        failed_count = 0
        invalid_tokens: list[str] = []
        failure_codes: list[str | None] = []

        try:
            for platform, tokens in self._group_tokens_by_platform(job).items():
                result = await self.router.send_to_tokens(tokens, platform, job.payload)
                delivered_to += result.delivered_to
                failed_count += result.failed_count
                invalid_tokens.extend(result.invalid_tokens)
                failure_codes.extend(r.error_code for r in result.results if not r.success)

                if self.metrics is not None:
                    self.metrics.record_push_result(platform, result)

                logger.debug(
                    "[%s] Delivered: %d, Failed: %d",
                    platform,
                    result.delivered_to,
                    result.failed_count,
                )
        except Exception as e:
            await self._cleanup(invalid_tokens)
            duration = elapsed_ms(start)
            logger.error(
                "[%s] Failed to process notification job (final_attempt=%s): %s",
                queue_type,
                final_attempt,
                str(e),
                exc_info=True,
            )
            if final_attempt:
                await self._log_failure(job, duration, e, len(invalid_tokens))
            raise

        await self._cleanup(invalid_tokens)

        if not final_attempt and self._should_retry(delivered_to, failure_codes):
            codes = sorted({code for code in failure_codes if code})
            logger.warning(
                "[%s] No token delivered, retrying job (%s)", queue_type, ", ".join(codes)
            )
            raise TransientDeliveryError(
                f"All {failed_count} tokens failed with transient errors", codes
            )

        duration = elapsed_ms(start)
        await self.delivery_log.append(
            type=job.type,
            department_id=job.department_id,
            total_devices=len(job.tokens),
            delivered_to=delivered_to,
            failed_count=failed_count,
            invalid_tokens=len(invalid_tokens),
            duration_ms=duration,
            error=None,
            metadata=job.metadata,
        )

        logger.info(
            "[%s] Notification processed: %d delivered, %d failed (%dms)",
            queue_type,
            delivered_to,
            failed_count,
            duration,
        )
        return {
            "type": queue_type,
            "total_devices": len(job.tokens),
            "delivered_to": delivered_to,
            "failed_count": failed_count,
            "invalid_tokens": len(invalid_tokens),
            "duration_ms": duration,
        }

    def _should_retry(self, delivered_to: int, failure_codes: list[str | None]) -> bool:
        # A partial delivery is never retried so no device gets the push twice
        if delivered_to > 0 or not failure_codes:
            return False
        return all(is_transient_code(code) for code in failure_codes)

    async def _cleanup(self, invalid_tokens: list[str]) -> None:
        if not invalid_tokens:
            return
        removed = await self.router.cleanup_invalid_tokens(invalid_tokens)
        if self.metrics is not None:
            self.metrics.record_tokens_removed(removed)

    async def _log_failure(
        self,
        job: NotificationJob,
        duration: int,
        error: Exception,
        invalid_count: int,
    ) -> None:
        try:
            await self.delivery_log.append(
                type=job.type,
                department_id=job.department_id,
                total_devices=len(job.tokens),
                delivered_to=0,
                failed_count=len(job.tokens),
                invalid_tokens=invalid_count,
                duration_ms=duration,
                error=str(error) or type(error).__name__,
                metadata=job.metadata,
            )
        except Exception as log_error:
            # The job error is what gets re-raised
            logger.error("Failed to record job failure: %s", str(log_error))
