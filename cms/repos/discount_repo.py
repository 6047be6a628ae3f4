"""Repository for discount codes and their usage history."""

from __future__ import annotations

from datetime import datetime

import asyncpg

from cms.db import tenant_conn
from cms.repos.sql import Conditions
from primitives.catalog.records import Discount, DiscountType, DiscountUsage
from primitives.catalog.store import DiscountStore, Page


def _row_to_discount(row: asyncpg.Record) -> Discount:
    """Convert a database row to a Discount record."""
    return Discount(
        id=row["id"],
        code=row["code"],
        description=row["description"],
        type=row["type"],
        value=row["value"],
        apply_to=row["apply_to"],
        product_ids=row["product_ids"],
        category_ids=row["category_ids"],
        min_order_value=row["min_order_value"],
        max_discount=row["max_discount"],
        usage_limit=row["usage_limit"],
        usage_count=row["usage_count"],
        per_customer=row["per_customer"],
        first_order_only=row["first_order_only"],
        enabled=row["enabled"],
        starts_at=row["starts_at"],
        expires_at=row["expires_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_usage(row: asyncpg.Record) -> DiscountUsage:
    return DiscountUsage(
        id=row["id"],
        discount_id=row["discount_id"],
        order_id=row["order_id"],
        user_id=row["user_id"],
        email=row["email"],
        discount_amount=row["discount_amount"],
        created_at=row["created_at"],
    )


class DiscountRepo(DiscountStore):
    """All discount-related database operations for one tenant."""

    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id

    async def get(self, discount_id: str) -> Discount | None:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow("SELECT * FROM discounts WHERE id = $1", discount_id)
            return _row_to_discount(row) if row else None

    async def get_by_code(self, code: str) -> Discount | None:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow("SELECT * FROM discounts WHERE code = $1", code)
            return _row_to_discount(row) if row else None

    async def list(
        self,
        *,
        enabled: bool | None = None,
        type: DiscountType | None = None,
        active_at: datetime | None = None,
        page: Page = Page(),
    ) -> tuple[list[Discount], int]:
        """
        List discounts, newest first.

        Args:
            enabled: Only enabled (True) or disabled (False) codes
            type: Only PERCENTAGE or FIXED codes
            active_at: Only codes that are live at this instant
            page: Page window

        Returns:
            (discounts on this page, total matching)
        """
        cond = Conditions()
        if enabled is not None:
            cond.add("enabled = {}", enabled)
        if type is not None:
            cond.add("type = {}", type.value)
        if active_at is not None:
            cond.add(
                "enabled AND starts_at <= {0} AND (expires_at IS NULL OR expires_at > {0})"
                " AND (usage_limit IS NULL OR usage_count < usage_limit)",
                active_at,
            )
        where = cond.where()

        async with tenant_conn(self.tenant_id) as conn:
            total = await conn.fetchval(f"SELECT count(*) FROM discounts {where}", *cond.values)  # nosec B608
            rows = await conn.fetch(
                f"SELECT * FROM discounts {where} ORDER BY created_at DESC, id {cond.page(page)}",  # nosec B608
                *cond.values,
            )
            return [_row_to_discount(r) for r in rows], total

    async def create(self, discount: Discount) -> Discount:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO discounts (
                    id, tenant_id, code, description, type, value, apply_to, product_ids, category_ids,
                    min_order_value, max_discount, usage_limit, usage_count, per_customer,
                    first_order_only, enabled, starts_at, expires_at, created_at, updated_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17, $18, $19, $20)
                RETURNING *
                """,
                discount.id,
                self.tenant_id,
                discount.code,
                discount.description,
                discount.type.value,
                discount.value,
                discount.apply_to.value,
                discount.product_ids,
                discount.category_ids,
                discount.min_order_value,
                discount.max_discount,
                discount.usage_limit,
                discount.usage_count,
                discount.per_customer,
                discount.first_order_only,
                discount.enabled,
                discount.starts_at,
                discount.expires_at,
                discount.created_at,
                discount.updated_at,
            )
            return _row_to_discount(row)

    async def count_customer_usages(
        self,
        discount_id: str,
        *,
        customer_id: str | None = None,
        email: str | None = None,
    ) -> int:
        if not customer_id and not email:
            return 0
        async with tenant_conn(self.tenant_id) as conn:
            return await conn.fetchval(
                """
                SELECT count(*) FROM discount_usages
                WHERE discount_id = $1
                  AND (($2::text IS NOT NULL AND user_id = $2) OR ($3::text IS NOT NULL AND email = $3))
                """,
                discount_id,
                customer_id,
                email,
            )

    async def list_usages(self, discount_id: str, limit: int = 50) -> list[DiscountUsage]:
        async with tenant_conn(self.tenant_id) as conn:
            rows = await conn.fetch(
                "SELECT * FROM discount_usages WHERE discount_id = $1 ORDER BY created_at DESC LIMIT $2",
                discount_id,
                limit,
            )
            return [_row_to_usage(r) for r in rows]

