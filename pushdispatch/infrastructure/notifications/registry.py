# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Device registry: which push tokens belong to which users and departments.

This module provides:
- DeviceRepository: SQL queries against the devices table, bound to one session
- DeviceRegistry: session-managing facade used by the router, worker and producers

Listings are deduplicated by token (first registration wins) because one
physical device may be registered by several users.

Example:
    >>> registry = DeviceRegistry(database)
    >>> await registry.register("user-1", token, "ios", department_id="dept-a")
    >>> devices = await registry.list_by_department(["dept-a"])
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Literal, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from pushdispatch.infrastructure.database.connection import Database
from pushdispatch.infrastructure.database.models.base import new_uuid
from pushdispatch.infrastructure.database.models.device import Device
from pushdispatch.infrastructure.notifications.types import (
    DeviceTarget,
    NotificationPlatform,
)
from pushdispatch.utils.datetime import utc_now

logger = logging.getLogger(__name__)

# Rows registered before platform tracking existed are Android devices
DEFAULT_PLATFORM = NotificationPlatform.ANDROID.value


@dataclass
class DeviceCount:
    """Registered devices per platform."""

    ios: int = 0
    android: int = 0
    web: int = 0

    @property
    def total(self) -> int:
        return self.ios + self.android + self.web

    def to_dict(self) -> dict[str, int]:
        return {
            "ios": self.ios,
            "android": self.android,
            "web": self.web,
            "total": self.total,
        }


def _dialect_insert(db: AsyncSession):
    """INSERT construct with ON CONFLICT support for the session's backend."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(Device)
    if dialect == "sqlite":
        return sqlite.insert(Device)
    raise NotImplementedError(f"Device upsert is not supported on {dialect}")


def dedupe_by_token(devices: Iterable[Device]) -> list[DeviceTarget]:
    """Collapse devices sharing a token, keeping the first occurrence.

    Args:
        devices: Device rows in registration order.

    Returns:
        One DeviceTarget per distinct token, order preserved.
    """
    seen: set[str] = set()
    targets: list[DeviceTarget] = []
    for device in devices:
        if device.token in seen:
            continue
        seen.add(device.token)
        targets.append(
            DeviceTarget(token=device.token, platform=device.platform or DEFAULT_PLATFORM)
        )
    return targets


class DeviceRepository:
    """Queries against the devices table.

    Attributes:
        _db: Async database session; the caller owns the transaction.
    """

    def __init__(self, db: AsyncSession) -> None:
        """Initialize the repository.

        Args:
            db: Async database session.
        """
        self._db = db

    async def upsert(
        self,
        user_id: str,
        token: str,
        platform: str,
        department_id: str | None = None,
    ) -> Device:
        """Insert a device, or refresh it if (user_id, token) exists.

        Runs as a single INSERT ... ON CONFLICT DO UPDATE so concurrent
        registrations of the same pair converge on one row.

        Args:
            user_id: Owning user.
            token: Push token.
            platform: ios, android or web.
            department_id: Department for targeting.

        Returns:
            The inserted or updated device.
        """
        now = utc_now()
        stmt = _dialect_insert(self._db).values(
            id=new_uuid(),
            user_id=user_id,
            token=token,
            platform=platform,
            department_id=department_id,
            last_active_at=now,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "token"],
            set_={
                "platform": stmt.excluded.platform,
                "department_id": stmt.excluded.department_id,
                "last_active_at": stmt.excluded.last_active_at,
                "updated_at": stmt.excluded.updated_at,
            },
        ).returning(Device)

        result = await self._db.scalars(stmt, execution_options={"populate_existing": True})
        return result.one()

    async def find_by_department(self, department_ids: Sequence[str]) -> list[Device]:
        stmt = (
            select(Device)
            .where(Device.department_id.in_(list(department_ids)))
            .order_by(Device.created_at.asc(), Device.id.asc())
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def find_by_user(self, user_ids: Sequence[str]) -> list[Device]:
        stmt = (
            select(Device)
            .where(Device.user_id.in_(list(user_ids)))
            .order_by(Device.created_at.asc(), Device.id.asc())
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def find_all(self) -> list[Device]:
        stmt = select(Device).order_by(Device.created_at.asc(), Device.id.asc())
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def delete_by_token(self, tokens: Sequence[str]) -> int:
        """Delete every registration of the given tokens.

        Returns:
            Number of rows deleted.
        """
        stmt = delete(Device).where(Device.token.in_(list(tokens)))
        result = await self._db.execute(stmt)
        return result.rowcount or 0

    async def delete_by_department(self, department_id: str) -> int:
        stmt = delete(Device).where(Device.department_id == department_id)
        result = await self._db.execute(stmt)
        return result.rowcount or 0

    async def count_by_platform(self, department_ids: Sequence[str] | None = None) -> DeviceCount:
        """Count devices grouped by platform.

        Args:
            department_ids: Restrict to these departments; None counts all.

        Returns:
            Per-platform counts.
        """
        stmt = select(Device.platform, func.count()).group_by(Device.platform)
        if department_ids is not None:
            stmt = stmt.where(Device.department_id.in_(list(department_ids)))

        result = await self._db.execute(stmt)
        count = DeviceCount()
        for platform, n in result.all():
            platform = platform or DEFAULT_PLATFORM
            if platform == NotificationPlatform.IOS.value:
                count.ios += n
            elif platform == NotificationPlatform.WEB.value:
                count.web += n
            else:
                count.android += n
        return count


class DeviceRegistry:
    """Device registry operations, one session per call.

    Attributes:
        database: Database providing sessions.
    """

    def __init__(self, database: Database) -> None:
        self.database = database

    async def register(
        self,
        user_id: str,
        token: str,
        platform: str,
        department_id: str | None = None,
    ) -> DeviceTarget:
        """Register or refresh a device.

        Registering the same (user_id, token) twice leaves one row.

        Args:
            user_id: Owning user.
            token: Push token.
            platform: ios, android or web.
            department_id: Department for targeting.

        Returns:
            The registered device.

        Raises:
            ValueError: If token is empty or platform is unknown.
            DatabaseError: If the write fails.
        """
        if not token:
            raise ValueError("Device token must not be empty")
        platform = NotificationPlatform(platform).value

        async with self.database.session() as session:
            device = await DeviceRepository(session).upsert(
                user_id, token, platform, department_id
            )
            target = DeviceTarget(token=device.token, platform=platform)

        logger.debug("Device registered for user %s (%s)", user_id, platform)
        return target

    async def list_by_department(self, department_ids: Sequence[str]) -> list[DeviceTarget]:
        if not department_ids:
            return []
        async with self.database.session() as session:
            devices = await DeviceRepository(session).find_by_department(department_ids)
        return dedupe_by_token(devices)

    async def list_by_user(self, user_ids: Sequence[str]) -> list[DeviceTarget]:
        if not user_ids:
            return []
        async with self.database.session() as session:
            devices = await DeviceRepository(session).find_by_user(user_ids)
        return dedupe_by_token(devices)

    async def list_all(self) -> list[DeviceTarget]:
        async with self.database.session() as session:
            devices = await DeviceRepository(session).find_all()
        return dedupe_by_token(devices)

    async def remove(self, tokens: Sequence[str]) -> int:
        """Delete every registration of the given tokens.

        Args:
            tokens: Tokens to delete.

        Returns:
            Number of rows removed; 0 for an empty list.
        """
        if not tokens:
            return 0
        async with self.database.session() as session:
            removed = await DeviceRepository(session).delete_by_token(tokens)
        logger.info("Removed %d device registrations for %d tokens", removed, len(tokens))
        return removed

    async def remove_by_department(self, department_id: str) -> int:
        """Delete every device of a department being deleted.

        Returns:
            Number of rows removed.
        """
        async with self.database.session() as session:
            removed = await DeviceRepository(session).delete_by_department(department_id)
        logger.info("Removed %d devices of department %s", removed, department_id)
        return removed

    async def count_devices(
        self,
        department_ids: Sequence[str] | Literal["all"],
    ) -> DeviceCount:
        """Count registered devices per platform.

        Args:
            department_ids: Departments to count, or "all".

        Returns:
            Per-platform counts.
        """
        if department_ids != "all" and not department_ids:
            return DeviceCount()
        async with self.database.session() as session:
            return await DeviceRepository(session).count_by_platform(
                None if department_ids == "all" else department_ids
            )
