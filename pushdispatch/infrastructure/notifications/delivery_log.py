# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Delivery log: append-only audit trail of processed notification jobs.

One record is written per job, after it completes or terminally fails.
Records are never updated. Read helpers aggregate the log for reporting.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import case, func, select

from pushdispatch.infrastructure.database.connection import Database
from pushdispatch.infrastructure.database.models.notification_log import NotificationLog
from pushdispatch.infrastructure.notifications.types import NotificationType
from pushdispatch.utils.datetime import ensure_utc

logger = logging.getLogger(__name__)


class DeliveryLog:
    """Writes and queries notification_logs records.

    Attributes:
        database: Database providing sessions.
    """

    def __init__(self, database: Database) -> None:
        self.database = database

    async def append(
        self,
        type: NotificationType | str,
        department_id: str | None,
        total_devices: int,
        delivered_to: int,
        failed_count: int,
        invalid_tokens: int,
        duration_ms: int,
        error: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> NotificationLog:
        """Append one job outcome.

        success is derived as failed_count == 0.

        Args:
            type: Job category.
            department_id: Targeted department, if any.
            total_devices: Tokens in the job.
            delivered_to: Tokens the providers accepted.
            failed_count: Tokens that failed.
            invalid_tokens: Number of tokens purged from the registry.
            duration_ms: Processing time.
            error: Job-level error message for terminal failures.
            metadata: Producer metadata.

        Returns:
            The persisted record.

        Raises:
            DatabaseError: If the write fails.
        """
        record = NotificationLog(
            type=type.value if isinstance(type, NotificationType) else type,
            department_id=department_id,
            total_devices=total_devices,
            delivered_to=delivered_to,
            failed_count=failed_count,
            invalid_tokens=invalid_tokens,
            duration_ms=duration_ms,
            success=failed_count == 0,
            error=error,
            metadata_=metadata,
        )

        try:
            async with self.database.session() as session:
                session.add(record)
                await session.flush()
        except Exception:
            logger.error("Failed to write delivery log record", exc_info=True)
            raise

        return record

    async def get_statistics(
        self,
        department_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, int]:
        """Aggregate delivery outcomes.

        Args:
            department_id: Restrict to one department.
            start: Inclusive lower bound on created_at.
            end: Inclusive upper bound on created_at.

        Returns:
            total, successful, failed, total_devices, delivered_to and
            average_duration_ms (rounded).
        """
        stmt = select(
            func.count(NotificationLog.id),
            func.coalesce(func.sum(case((NotificationLog.success.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(NotificationLog.total_devices), 0),
            func.coalesce(func.sum(NotificationLog.delivered_to), 0),
            func.avg(NotificationLog.duration_ms),
        )
        stmt = _apply_filters(stmt, department_id, start, end)

        async with self.database.session() as session:
            result = await session.execute(stmt)
            total, successful, total_devices, delivered_to, avg_duration = result.one()

        total = int(total or 0)
        successful = int(successful or 0)
        return {
            "total": total,
            "successful": successful,
            "failed": total - successful,
            "total_devices": int(total_devices or 0),
            "delivered_to": int(delivered_to or 0),
            "average_duration_ms": round(float(avg_duration)) if avg_duration is not None else 0,
        }

    async def get_recent(
        self,
        limit: int = 50,
        department_id: str | None = None,
    ) -> list[NotificationLog]:
        """Most recent records first.

        Args:
            limit: Maximum records.
            department_id: Restrict to one department.

        Returns:
            Records ordered by created_at descending.
        """
        stmt = select(NotificationLog)
        stmt = _apply_filters(stmt, department_id, None, None)
        stmt = stmt.order_by(NotificationLog.created_at.desc()).limit(limit)

        async with self.database.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())


def _apply_filters(stmt, department_id, start, end):
    if department_id:
        stmt = stmt.where(NotificationLog.department_id == department_id)
    if start is not None:
        stmt = stmt.where(NotificationLog.created_at >= ensure_utc(start))
    if end is not None:
        stmt = stmt.where(NotificationLog.created_at <= ensure_utc(end))
    return stmt
