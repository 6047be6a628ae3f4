"""Repository for user notifications. Every query is filtered by user_id as well as tenant."""

from __future__ import annotations

from datetime import datetime

import asyncpg

from cms.db import tenant_conn
from cms.repos.sql import Conditions
from primitives.catalog.records import Notification, NotificationPreferences, NotificationType
from primitives.catalog.store import NotificationStore, Page


def _row_to_notification(row: asyncpg.Record) -> Notification:
    return Notification(
        id=row["id"],
        user_id=row["user_id"],
        type=row["type"],
        title=row["title"],
        message=row["message"],
        data=row["data"],
        action_url=row["action_url"],
        image_url=row["image_url"],
        read_at=row["read_at"],
        created_at=row["created_at"],
    )


class NotificationRepo(NotificationStore):
    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id

    async def list(
        self,
        user_id: str,
        *,
        type: NotificationType | None = None,
        unread_only: bool = False,
        page: Page = Page(),
    ) -> tuple[list[Notification], int]:
        cond = Conditions()
        cond.add("user_id = {}", user_id)
        if type is not None:
            cond.add("type = {}", type.value)
        if unread_only:
            cond.clauses.append("read_at IS NULL")
        where = cond.where()

        async with tenant_conn(self.tenant_id) as conn:
            total = await conn.fetchval(f"SELECT count(*) FROM notifications {where}", *cond.values)  # nosec B608
            rows = await conn.fetch(
                f"SELECT * FROM notifications {where} ORDER BY created_at DESC, id {cond.page(page)}",  # nosec B608
                *cond.values,
            )
            return [_row_to_notification(r) for r in rows], total

    async def count_unread(self, user_id: str) -> int:
        async with tenant_conn(self.tenant_id) as conn:
            return await conn.fetchval(
                "SELECT count(*) FROM notifications WHERE user_id = $1 AND read_at IS NULL",
                user_id,
            )

    async def get(self, user_id: str, notification_id: str) -> Notification | None:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow(
                "SELECT * FROM notifications WHERE id = $1 AND user_id = $2",
                notification_id,
                user_id,
            )
            return _row_to_notification(row) if row else None

    async def mark_read(self, user_id: str, notification_id: str, at: datetime) -> None:
        async with tenant_conn(self.tenant_id) as conn:
            await conn.execute(
                "UPDATE notifications SET read_at = $3 WHERE id = $1 AND user_id = $2 AND read_at IS NULL",
                notification_id,
                user_id,
                at,
            )

    async def mark_all_read(self, user_id: str, at: datetime, *, type: NotificationType | None = None) -> int:
        async with tenant_conn(self.tenant_id) as conn:
            result = await conn.execute(
                """
                UPDATE notifications SET read_at = $2
                WHERE user_id = $1 AND read_at IS NULL AND ($3::text IS NULL OR type = $3)
                """,
                user_id,
                at,
                type.value if type else None,
            )
            # Result format: "UPDATE N"
            return int(result.split()[-1])

    async def delete(self, user_id: str, notification_id: str) -> bool:
        async with tenant_conn(self.tenant_id) as conn:
            result = await conn.execute(
                "DELETE FROM notifications WHERE id = $1 AND user_id = $2",
                notification_id,
                user_id,
            )
            return result == "DELETE 1"

    async def create(self, notification: Notification) -> Notification:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO notifications (
                    id, tenant_id, user_id, type, title, message, data, action_url, image_url, read_at, created_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                RETURNING *
                """,
                notification.id,
                self.tenant_id,
                notification.user_id,
                notification.type.value,
                notification.title,
                notification.message,
                notification.data,
                notification.action_url,
                notification.image_url,
                notification.read_at,
                notification.created_at,
            )
            return _row_to_notification(row)

    async def get_preferences(self, user_id: str) -> NotificationPreferences | None:
        async with tenant_conn(self.tenant_id) as conn:
            stored = await conn.fetchval(
                "SELECT preferences FROM notification_preferences WHERE user_id = $1",
                user_id,
            )
            return NotificationPreferences(**stored) if stored is not None else None

    async def save_preferences(self, user_id: str, preferences: NotificationPreferences) -> NotificationPreferences:
        async with tenant_conn(self.tenant_id) as conn:
            stored = await conn.fetchval(
                """
                INSERT INTO notification_preferences (tenant_id, user_id, preferences, updated_at)
                VALUES ($1, $2, $3, now())
                ON CONFLICT (tenant_id, user_id)
                DO UPDATE SET preferences = EXCLUDED.preferences, updated_at = now()
                RETURNING preferences
                """,
                self.tenant_id,
                user_id,
                preferences.model_dump(),
            )
            return NotificationPreferences(**stored)
