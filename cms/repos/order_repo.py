"""Repository for orders and carts. Both carry the totals a discount rewrites."""

from __future__ import annotations

from datetime import datetime

import asyncpg

from cms.db import tenant_conn
from cms.repos.sql import Conditions, escape_like, order_by
from primitives.catalog.records import Cart, Order, OrderItem, OrderStatus
from primitives.catalog.store import CartStore, OrderStore, Page


def _row_to_order(row: asyncpg.Record) -> Order:
    """Convert a database row to an Order record."""
    return Order(
        id=row["id"],
        order_number=row["order_number"],
        customer_id=row["customer_id"],
        email=row["email"],
        status=row["status"],
        items=[OrderItem(**i) for i in row["items"]],
        subtotal=row["subtotal"],
        shipping_total=row["shipping_total"],
        tax_total=row["tax_total"],
        discount_total=row["discount_total"],
        total=row["total"],
        discount_code_id=row["discount_code_id"],
        discount_code=row["discount_code"],
        internal_notes=row["internal_notes"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_cart(row: asyncpg.Record) -> Cart:
    return Cart(
        id=row["id"],
        customer_id=row["customer_id"],
        subtotal=row["subtotal"],
        shipping_total=row["shipping_total"],
        tax_total=row["tax_total"],
        discount_total=row["discount_total"],
        total=row["total"],
        discount_code_id=row["discount_code_id"],
        discount_code=row["discount_code"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


_SET_DISCOUNT = """
    UPDATE {table}
    SET discount_code_id = $2, discount_code = $3, discount_total = $4, total = $5, updated_at = now()
    WHERE id = $1
    RETURNING *
"""


class OrderRepo(OrderStore):
    """Order reads, status changes and the discount write used by discount.apply/remove."""

    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id

    async def get(self, record_id: str) -> Order | None:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow("SELECT * FROM orders WHERE id = $1", record_id)
            return _row_to_order(row) if row else None

    async def set_discount(
        self,
        record_id: str,
        *,
        discount_id: str | None,
        code: str | None,
        discount_total: int,
        total: int,
    ) -> Order | None:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow(
                _SET_DISCOUNT.format(table="orders"),
                record_id,
                discount_id,
                code,
                discount_total,
                total,
            )
            return _row_to_order(row) if row else None

    async def count_for_customer(
        self,
        *,
        customer_id: str | None = None,
        email: str | None = None,
        exclude_statuses: tuple[OrderStatus, ...] = (OrderStatus.CANCELLED,),
    ) -> int:
        """
        Count a customer's orders, matching on customer id OR email.

        Args:
            customer_id: Customer ID, if known
            email: Normalised email, if known
            exclude_statuses: Statuses that do not count as an order

        Returns:
            Number of matching orders (0 when neither key is given)
        """
        if not customer_id and not email:
            return 0
        async with tenant_conn(self.tenant_id) as conn:
            return await conn.fetchval(
                """
                SELECT count(*) FROM orders
                WHERE (($1::text IS NOT NULL AND customer_id = $1) OR ($2::text IS NOT NULL AND email = $2))
                  AND NOT (status = ANY($3::text[]))
                """,
                customer_id,
                email,
                [s.value for s in exclude_statuses],
            )


    async def list(
        self,
        *,
        customer_id: str | None = None,
        email: str | None = None,
        status: OrderStatus | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
        page: Page = Page(),
    ) -> tuple[list[Order], int]:
        cond = Conditions()
        if customer_id is not None:
            cond.add("customer_id = {}", customer_id)
        if email:
            cond.add("email ILIKE {}", f"%{escape_like(email)}%")
        if status is not None:
            cond.add("status = {}", status.value)
        if created_from is not None:
            cond.add("created_at >= {}", created_from)
        if created_to is not None:
            cond.add("created_at <= {}", created_to)
        where = cond.where()

        async with tenant_conn(self.tenant_id) as conn:
            total = await conn.fetchval(f"SELECT count(*) FROM orders {where}", *cond.values)  # nosec B608
            rows = await conn.fetch(
                f"SELECT * FROM orders {where} {order_by(sort_by, sort_order)} {cond.page(page)}",  # nosec B608
                *cond.values,
            )
            return [_row_to_order(r) for r in rows], total

    async def update_status(self, order_id: str, status: OrderStatus, *, note: str | None = None) -> Order | None:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow(
                """
                UPDATE orders
                SET status = $2,
                    internal_notes = CASE
                        WHEN $3::text IS NULL THEN internal_notes
                        WHEN internal_notes IS NULL OR internal_notes = '' THEN $3
                        ELSE internal_notes || E'\\n' || $3
                    END,
                    updated_at = now()
                WHERE id = $1
                RETURNING *
                """,
                order_id,
                status.value,
                note,
            )
            return _row_to_order(row) if row else None


class CartRepo(CartStore):
    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id

    async def get(self, record_id: str) -> Cart | None:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow("SELECT * FROM carts WHERE id = $1", record_id)
            return _row_to_cart(row) if row else None

    async def set_discount(
        self,
        record_id: str,
        *,
        discount_id: str | None,
        code: str | None,
        discount_total: int,
        total: int,
    ) -> Cart | None:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow(
                _SET_DISCOUNT.format(table="carts"),
                record_id,
                discount_id,
                code,
                discount_total,
                total,
            )
            return _row_to_cart(row) if row else None
