"""Repository for user-defined primitives. System-wide: accessed via system_conn only."""

from __future__ import annotations

import asyncpg

from cms.db import system_conn
from cms.models.primitive import StoredPrimitive


def _row_to_primitive(row: asyncpg.Record) -> StoredPrimitive:
    """Convert a database row to a StoredPrimitive model."""
    return StoredPrimitive(
        name=row["name"],
        category=row["category"],
        description=row["description"],
        input_schema=row["input_schema"],
        handler=row["handler"],
        timeout_ms=row["timeout_ms"],
        tags=row["tags"],
        icon=row["icon"],
        enabled=row["enabled"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PrimitiveRepo:
    """All stored-primitive database operations."""

    async def list_enabled(self) -> list[StoredPrimitive]:
        """
        List enabled stored primitives.

        Returns:
            StoredPrimitive rows ordered by name
        """
        async with system_conn() as conn:
            rows = await conn.fetch("SELECT * FROM primitives WHERE enabled ORDER BY name")
            return [_row_to_primitive(r) for r in rows]

    async def get(self, name: str) -> StoredPrimitive | None:
        async with system_conn() as conn:
            row = await conn.fetchrow("SELECT * FROM primitives WHERE name = $1", name)
            return _row_to_primitive(row) if row else None

    async def upsert(self, primitive: StoredPrimitive) -> StoredPrimitive:
        """
        Insert a primitive, or overwrite the row with the same name.

        Args:
            primitive: StoredPrimitive to save

        Returns:
            The saved row
        """
        async with system_conn() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO primitives (
                    name, category, description, input_schema, handler, timeout_ms, tags, icon, enabled
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                ON CONFLICT (name) DO UPDATE SET
                    category = EXCLUDED.category,
                    description = EXCLUDED.description,
                    input_schema = EXCLUDED.input_schema,
                    handler = EXCLUDED.handler,
                    timeout_ms = EXCLUDED.timeout_ms,
                    tags = EXCLUDED.tags,
                    icon = EXCLUDED.icon,
                    enabled = EXCLUDED.enabled,
                    updated_at = now()
                RETURNING *
                """,
                primitive.name,
                primitive.category,
                primitive.description,
                primitive.input_schema,
                primitive.handler,
                primitive.timeout_ms,
                primitive.tags,
                primitive.icon,
                primitive.enabled,
            )
            return _row_to_primitive(row)

    async def delete(self, name: str) -> bool:
        async with system_conn() as conn:
            result = await conn.execute("DELETE FROM primitives WHERE name = $1", name)
            return result == "DELETE 1"
