# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Device model - push tokens registered by users."""

from datetime import datetime

from sqlalchemy import DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pushdispatch.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)
from pushdispatch.utils.datetime import utc_now


class Device(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Registered device for push notifications.

    Identity is the (user_id, token) pair. The same token may appear for
    several users (shared devices); senders deduplicate by token.

    Attributes:
        user_id: Owning user.
        token: APNs device token or FCM registration token.
        platform: ios, android or web.
        department_id: Department the user belongs to, for targeting.
        last_active_at: Last registration of this (user, token) pair.
    """

    __tablename__ = "devices"
    __table_args__ = (
        UniqueConstraint("user_id", "token", name="uq_devices_user_token"),
        Index("ix_devices_token", "token"),
        Index("ix_devices_department_id", "department_id"),
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    token: Mapped[str] = mapped_column(String(512), nullable=False)
    platform: Mapped[str | None] = mapped_column(String(16), nullable=True)
    department_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_active_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Device user={self.user_id} platform={self.platform}>"
