# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""NotificationLog model - append-only audit record of dispatched jobs."""

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pushdispatch.infrastructure.database.models.base import (
    Base,
    JSONType,
    UUIDPrimaryKeyMixin,
)
from pushdispatch.utils.datetime import utc_now


class NotificationLog(UUIDPrimaryKeyMixin, Base):
    """Outcome of one notification job.

    Rows are written once per job and never updated or deleted by the
    dispatch pipeline.
    """

    __tablename__ = "notification_logs"
    __table_args__ = (
        Index("ix_notification_logs_department_created", "department_id", "created_at"),
        Index("ix_notification_logs_type_created", "type", "created_at"),
    )

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    department_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    total_devices: Mapped[int] = mapped_column(Integer, nullable=False)
    delivered_to: Mapped[int] = mapped_column(Integer, nullable=False)
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False)
    invalid_tokens: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "type": self.type,
            "department_id": self.department_id,
            "total_devices": self.total_devices,
            "delivered_to": self.delivered_to,
            "failed_count": self.failed_count,
            "invalid_tokens": self.invalid_tokens,
            "duration_ms": self.duration_ms,
            "success": self.success,
            "error": self.error,
            "metadata": self.metadata_,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
