"""Repository for the primitive execution audit trail. Append-only."""

from __future__ import annotations

import asyncpg

from cms.db import tenant_conn
from cms.models.primitive import ExecutionRecord


def _row_to_execution(row: asyncpg.Record) -> ExecutionRecord:
    return ExecutionRecord(
        id=row["id"],
        tenant_id=row["tenant_id"],
        primitive_name=row["primitive_name"],
        user_id=row["user_id"],
        agent_id=row["agent_id"],
        input=row["input"],
        success=row["success"],
        error_kind=row["error_kind"],
        message=row["message"],
        duration_ms=row["duration_ms"],
        created_at=row["created_at"],
    )


class ExecutionRepo:
    async def record(self, execution: ExecutionRecord) -> None:
        async with tenant_conn(execution.tenant_id) as conn:
            await conn.execute(
                """
                INSERT INTO primitive_executions (
                    id, tenant_id, primitive_name, user_id, agent_id, input,
                    success, error_kind, message, duration_ms, created_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                """,
                execution.id,
                execution.tenant_id,
                execution.primitive_name,
                execution.user_id,
                execution.agent_id,
                execution.input,
                execution.success,
                execution.error_kind,
                execution.message,
                execution.duration_ms,
                execution.created_at,
            )

    async def list_recent(self, tenant_id: str, primitive_name: str | None = None, limit: int = 50) -> list[ExecutionRecord]:
        """
        Most recent executions for a tenant, newest first.

        Args:
            tenant_id: Tenant to read
            primitive_name: Only this primitive, if given
            limit: Maximum rows

        Returns:
            List of ExecutionRecord
        """
        async with tenant_conn(tenant_id) as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM primitive_executions
                WHERE ($1::text IS NULL OR primitive_name = $1)
                ORDER BY created_at DESC
                LIMIT $2
                """,
                primitive_name,
                limit,
            )
            return [_row_to_execution(r) for r in rows]

    async def stats(self, tenant_id: str, primitive_name: str) -> dict:
        """
        Aggregate over every recorded execution of one primitive for a tenant.

        Returns:
            total, successes, errors, avgDurationMs (0 when nothing ran) and
            lastRunAt (None when nothing ran)
        """
        async with tenant_conn(tenant_id) as conn:
            row = await conn.fetchrow(
                """
                SELECT
                    count(*) AS total,
                    count(*) FILTER (WHERE success) AS successes,
                    coalesce(round(avg(duration_ms)), 0)::int AS avg_duration_ms,
                    max(created_at) AS last_run_at
                FROM primitive_executions
                WHERE primitive_name = $1
                """,
                primitive_name,
            )
        return {
            "total": row["total"],
            "successes": row["successes"],
            "errors": row["total"] - row["successes"],
            "avgDurationMs": row["avg_duration_ms"],
            "lastRunAt": row["last_run_at"].isoformat() if row["last_run_at"] else None,
        }
