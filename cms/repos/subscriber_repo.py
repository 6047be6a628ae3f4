"""Repository for email subscribers."""

from __future__ import annotations

import asyncpg

from cms.db import tenant_conn
from primitives.catalog.records import Subscriber
from primitives.catalog.store import SubscriberStore

# Every column the handlers may change; written in full by update()
_FIELDS = [
    "email",
    "first_name",
    "last_name",
    "status",
    "lists",
    "preferences",
    "source",
    "confirmation_token",
    "subscribed_at",
    "unsubscribed_at",
    "unsubscribe_reason",
]


def _row_to_subscriber(row: asyncpg.Record) -> Subscriber:
    """Convert a database row to a Subscriber record."""
    return Subscriber(
        id=row["id"],
        email=row["email"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        status=row["status"],
        lists=row["lists"],
        preferences=row["preferences"],
        source=row["source"],
        confirmation_token=row["confirmation_token"],
        subscribed_at=row["subscribed_at"],
        unsubscribed_at=row["unsubscribed_at"],
        unsubscribe_reason=row["unsubscribe_reason"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _values(subscriber: Subscriber) -> list:
    data = subscriber.model_dump(include=set(_FIELDS))
    data["status"] = subscriber.status.value
    return [data[f] for f in _FIELDS]


class SubscriberRepo(SubscriberStore):
    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id

    async def get_by_email(self, email: str) -> Subscriber | None:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow("SELECT * FROM subscribers WHERE email = $1", email)
            return _row_to_subscriber(row) if row else None

    async def get_by_token(self, token: str) -> Subscriber | None:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow("SELECT * FROM subscribers WHERE confirmation_token = $1", token)
            return _row_to_subscriber(row) if row else None

    async def create(self, subscriber: Subscriber) -> Subscriber:
        columns = ", ".join(_FIELDS)
        placeholders = ", ".join(f"${i + 3}" for i in range(len(_FIELDS)))
        async with tenant_conn(self.tenant_id) as conn:
            # S608/B608: column list is the fixed _FIELDS constant
            row = await conn.fetchrow(
                f"""
                INSERT INTO subscribers (id, tenant_id, {columns})
                VALUES ($1, $2, {placeholders})
                RETURNING *
                """,  # nosec B608
                subscriber.id,
                self.tenant_id,
                *_values(subscriber),
            )
            return _row_to_subscriber(row)

    async def update(self, subscriber: Subscriber) -> Subscriber:
        set_clause = ", ".join(f"{f} = ${i + 2}" for i, f in enumerate(_FIELDS))
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE subscribers
                SET {set_clause}, updated_at = now()
                WHERE id = $1
                RETURNING *
                """,  # nosec B608
                subscriber.id,
                *_values(subscriber),
            )
            if row is None:
                raise LookupError(f"subscriber {subscriber.id} does not exist")
            return _row_to_subscriber(row)
