"""
Tests for the Postgres repos and tenant scoping.

NOTE: These tests require a running PostgreSQL database with the DATABASE_URL environment variable set.
Run `alembic upgrade head` before running these tests. The database role must not be a superuser,
or row-level security is bypassed.
"""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
import pytest_asyncio

from cms import db
from cms.models.primitive import ExecutionRecord, StoredPrimitive
from cms.repos import ExecutionRepo, PrimitiveRepo
from cms.repos.sql import escape_like
from cms.store import PostgresStore
from primitives.catalog import build_registry
from primitives.catalog.records import (
    AnalyticsEvent,
    Discount,
    DiscountType,
    MediaFolder,
    Notification,
    NotificationPreferences,
    NotificationType,
    OrderStatus,
)
from primitives.kernel.dispatcher import Dispatcher
from primitives.kernel.types import CallerContext, HandlerContext

pytestmark = pytest.mark.skipif(not os.environ.get("DATABASE_URL"), reason="DATABASE_URL not set")

TENANT_TABLES = [
    "discounts",
    "orders",
    "notifications",
    "notification_preferences",
    "media",
    "media_folders",
    "analytics_events",
    "primitive_executions",
]


@pytest_asyncio.fixture
async def pool():
    await db.init_pool()
    yield db.pool
    await db.close_pool()


@pytest_asyncio.fixture
async def tenant_id(pool):
    """A fresh tenant; its rows are removed afterwards."""
    tid = f"test-{uuid4().hex[:12]}"
    yield tid
    async with db.system_conn() as conn:
        for table in TENANT_TABLES:
            await conn.execute(f"DELETE FROM {table} WHERE tenant_id = $1", tid)  # nosec B608


@pytest_asyncio.fixture
async def other_tenant_id(pool):
    tid = f"test-{uuid4().hex[:12]}"
    yield tid
    async with db.system_conn() as conn:
        for table in TENANT_TABLES:
            await conn.execute(f"DELETE FROM {table} WHERE tenant_id = $1", tid)  # nosec B608


async def test_tenant_conn_sets_rls_context(tenant_id):
    async with db.tenant_conn(tenant_id) as conn:
        assert await conn.fetchval("SELECT current_setting('app.tenant_id', true)") == tenant_id


async def test_tenant_conn_requires_tenant(pool):
    with pytest.raises(ValueError):
        async with db.tenant_conn(""):
            pass


async def test_discount_round_trip(tenant_id):
    repo = PostgresStore(tenant_id).discounts
    created = await repo.create(Discount(code="SAVE10", type=DiscountType.PERCENTAGE, value=10))

    found = await repo.get_by_code("SAVE10")

    assert found is not None
    assert found.id == created.id
    assert found.type == DiscountType.PERCENTAGE
    assert await repo.count_customer_usages(created.id, email="a@b.com") == 0


async def test_tenant_cannot_read_other_tenant_rows(tenant_id, other_tenant_id):
    await PostgresStore(tenant_id).discounts.create(Discount(code="MINE", type=DiscountType.FIXED, value=500))

    assert await PostgresStore(other_tenant_id).discounts.get_by_code("MINE") is None


async def test_notifications(tenant_id):
    repo = PostgresStore(tenant_id).notifications
    n = await repo.create(
        Notification(user_id="u1", type=NotificationType.SHIPPING, title="Shipped", message="Your order shipped")
    )

    assert await repo.count_unread("u1") == 1
    assert await repo.mark_all_read("u1", n.created_at) == 1
    assert await repo.count_unread("u1") == 0
    assert await repo.delete("u1", n.id) is True
    assert await repo.delete("u1", n.id) is False


async def test_notification_preferences_upsert(tenant_id):
    repo = PostgresStore(tenant_id).notifications
    assert await repo.get_preferences("u1") is None

    await repo.save_preferences("u1", NotificationPreferences(promotions=False))
    saved = await repo.save_preferences("u1", NotificationPreferences(promotions=False, push_notifications=True))

    assert saved.push_notifications is True
    assert (await repo.get_preferences("u1")).promotions is False


async def _insert_order(tenant_id: str, order_id: str, email: str, total: int) -> None:
    async with db.system_conn() as conn:
        await conn.execute(
            """
            INSERT INTO orders (id, tenant_id, order_number, email, status, total, items)
            VALUES ($1, $2, $1, $3, 'PENDING', $4, $5)
            """,
            order_id,
            tenant_id,
            email,
            total,
            [{"id": "i1", "product_id": "p1", "title": "Tee", "quantity": 2, "price": 1000, "total": 2000}],
        )


async def test_order_list_and_status_notes(tenant_id):
    await _insert_order(tenant_id, f"o-{uuid4().hex[:8]}", "ann@example.com", 2_000)
    await _insert_order(tenant_id, f"o-{uuid4().hex[:8]}", "a_n@example.com", 5_000)
    repo = PostgresStore(tenant_id).orders

    orders, total = await repo.list(email="a_n", sort_by="total", sort_order="desc")
    assert total == 1
    assert orders[0].email == "a_n@example.com"
    assert orders[0].items[0].quantity == 2

    await repo.update_status(orders[0].id, OrderStatus.PROCESSING, note="first")
    updated = await repo.update_status(orders[0].id, OrderStatus.SHIPPED, note="second")
    assert updated.status == OrderStatus.SHIPPED
    assert updated.internal_notes == "first\nsecond"


async def test_media_folders(tenant_id):
    repo = PostgresStore(tenant_id).media
    root = await repo.create_folder(MediaFolder(name="Products", path="/Products"))
    await repo.create_folder(MediaFolder(name="Shoes", path="/Products/Shoes", parent_id=root.id))

    assert [f.name for f in await repo.list_folders()] == ["Products"]
    assert (await repo.find_folder("Shoes", root.id)) is not None
    assert await repo.find_folder("Shoes", None) is None
    assert await repo.folders_with_children([root.id]) == {root.id}


async def test_analytics_summary(tenant_id):
    repo = PostgresStore(tenant_id).analytics
    now = datetime.now(UTC)
    for session in ("s1", "s1", "s2"):
        await repo.create(AnalyticsEvent(event="page_view", url="/", session_id=session))
    await repo.create(AnalyticsEvent(event="purchase", properties={"total": 4_500}))

    summary = await repo.summarize(now - timedelta(minutes=5), now + timedelta(minutes=5))

    assert summary.page_views == 3
    assert summary.unique_visitors == 2
    assert summary.purchases == 1
    assert summary.revenue == 4_500
    assert summary.top_pages == [("/", 3)]


async def test_dispatch_through_postgres_store(tenant_id):
    await PostgresStore(tenant_id).discounts.create(Discount(code="SAVE10", type=DiscountType.PERCENTAGE, value=10))
    dispatcher = Dispatcher(build_registry())
    ctx = HandlerContext(store=PostgresStore(tenant_id), caller=CallerContext(tenant_id=tenant_id))

    result = await dispatcher.invoke("discount.validate", {"code": "save10", "orderTotal": 5_000}, ctx)

    assert result.success is True
    assert result.data["discountAmount"] == 500
    await dispatcher.aclose()


async def test_execution_log(tenant_id, other_tenant_id):
    repo = ExecutionRepo()
    await repo.record(
        ExecutionRecord(id=f"exec_{uuid4().hex[:16]}", tenant_id=tenant_id, primitive_name="order.get", success=True)
    )

    assert len(await repo.list_recent(tenant_id, "order.get")) == 1
    assert await repo.list_recent(other_tenant_id) == []


async def test_execution_stats(tenant_id):
    repo = ExecutionRepo()
    for success, duration in ((True, 10), (True, 30), (False, 20)):
        await repo.record(
            ExecutionRecord(
                id=f"exec_{uuid4().hex[:16]}",
                tenant_id=tenant_id,
                primitive_name="order.get",
                success=success,
                duration_ms=duration,
            )
        )

    stats = await repo.stats(tenant_id, "order.get")

    assert (stats["total"], stats["successes"], stats["errors"]) == (3, 2, 1)
    assert stats["avgDurationMs"] == 20
    assert stats["lastRunAt"] is not None
    assert (await repo.stats(tenant_id, "order.list"))["lastRunAt"] is None


@pytest.mark.parametrize(
    ("value", "matches"),
    [("50%_off.jpg", True), ("50 percent off.jpg", False), ("500xoff.jpg", False)],
)
async def test_escaped_like_is_literal(pool, value, matches):
    async with db.system_conn() as conn:
        assert await conn.fetchval("SELECT $1::text ILIKE $2::text", value, f"%{escape_like('50%_off')}%") is matches


async def test_stored_primitive_upsert(pool):
    repo = PrimitiveRepo()
    name = f"test.p{uuid4().hex[:8]}"
    try:
        await repo.upsert(
            StoredPrimitive(
                name=name,
                category="test",
                input_schema={"type": "object"},
                handler="primitives.catalog.order:get_order",
                tags=["x"],
            )
        )
        updated = await repo.upsert(
            StoredPrimitive(
                name=name,
                category="test",
                description="changed",
                input_schema={"type": "object"},
                handler="primitives.catalog.order:get_order",
            )
        )

        assert updated.description == "changed"
        assert updated.tags == []
        assert name in [p.name for p in await repo.list_enabled()]
    finally:
        assert await repo.delete(name) is True
