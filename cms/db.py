"""
Database connection pool and RLS-scoped connection managers.

All database access goes through tenant_conn() or system_conn().
Never use pool.acquire() directly outside this module.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager

import asyncpg

from cms.config import settings

pool: asyncpg.Pool | None = None


async def init_pool() -> None:
    """
    Initialize the connection pool.
    Called once at application startup.
    """
    global pool
    pool = await asyncpg.create_pool(
        dsn=settings.DATABASE_URL,
        min_size=settings.DB_POOL_MIN_SIZE,
        max_size=settings.DB_POOL_MAX_SIZE,
        command_timeout=60,
        init=_init_connection,
    )


async def close_pool() -> None:
    """
    Close the connection pool.
    Called at application shutdown.
    """
    global pool
    if pool is not None:
        await pool.close()
        pool = None


async def _init_connection(conn: asyncpg.Connection) -> None:
    """
    Initialize each new connection.
    JSON and JSONB columns decode to Python dicts/lists.
    """
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )
    await conn.set_type_codec(
        "json",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


@asynccontextmanager
async def tenant_conn(tenant_id: str):
    """
    Acquire a database connection scoped to one tenant via RLS.

    Every query through this connection can only see/modify rows
    belonging to this tenant. Enforced by Postgres RLS policies.

    Usage:
        async with tenant_conn(tenant_id) as conn:
            row = await conn.fetchrow("SELECT * FROM discounts WHERE id = $1", discount_id)

    Args:
        tenant_id: ID of the tenant to scope the connection to

    Yields:
        asyncpg.Connection with RLS context set
    """
    if pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")
    if not tenant_id:
        raise ValueError("tenant_id is required for a tenant-scoped connection")

    async with pool.acquire() as conn:
        async with conn.transaction():
            # All policies reference current_setting('app.tenant_id')
            await conn.execute(
                "SELECT set_config('app.tenant_id', $1, true)",
                str(tenant_id),
            )
            yield conn


@asynccontextmanager
async def system_conn():
    """
    Acquire a database connection without tenant scoping.

    For system operations only:
    - Migrations (alembic)
    - Loading stored primitives into the process registry
    - Test fixtures that seed or clean up several tenants

    Yields:
        asyncpg.Connection without RLS scoping
    """
    if pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")

    async with pool.acquire() as conn:
        async with conn.transaction():
            # Empty app.tenant_id bypasses the tenant policies. LOCAL (true) scopes it to this transaction.
            await conn.execute("SELECT set_config('app.tenant_id', '', true)")
            yield conn
