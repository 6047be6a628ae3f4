"""Repository for products, their variants and categories. Soft-deleted rows are never returned."""

from __future__ import annotations

from collections.abc import Sequence

import asyncpg

from cms.db import tenant_conn
from cms.repos.sql import Conditions, escape_like, order_by
from primitives.catalog.records import Product, ProductCategory, ProductStatus, ProductVariant
from primitives.catalog.store import Page, ProductStore


def _row_to_product(row: asyncpg.Record) -> Product:
    """Convert a database row to a Product record."""
    return Product(
        id=row["id"],
        name=row["name"],
        slug=row["slug"],
        description=row["description"],
        short_description=row["short_description"],
        base_price=row["base_price"],
        compare_at_price=row["compare_at_price"],
        status=row["status"],
        featured=row["featured"],
        category_id=row["category_id"],
        image_url=row["image_url"],
        deleted_at=row["deleted_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_variant(row: asyncpg.Record) -> ProductVariant:
    return ProductVariant(
        id=row["id"],
        product_id=row["product_id"],
        name=row["name"],
        sku=row["sku"],
        price=row["price"],
        compare_at_price=row["compare_at_price"],
        stock=row["stock"],
        low_stock_threshold=row["low_stock_threshold"],
        options=row["options"],
        position=row["position"],
        deleted_at=row["deleted_at"],
    )


def _row_to_category(row: asyncpg.Record) -> ProductCategory:
    return ProductCategory(
        id=row["id"],
        name=row["name"],
        slug=row["slug"],
        description=row["description"],
        image=row["image"],
        parent_id=row["parent_id"],
        position=row["position"],
    )


def _price_range(cond: Conditions, min_price: int | None, max_price: int | None) -> None:
    if min_price is not None:
        cond.add("base_price >= {}", min_price)
    if max_price is not None:
        cond.add("base_price <= {}", max_price)


class ProductRepo(ProductStore):
    """Catalog queries for one tenant. Stock adjustment is the only write."""

    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id

    async def get(self, product_id: str) -> Product | None:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow("SELECT * FROM products WHERE id = $1 AND deleted_at IS NULL", product_id)
            return _row_to_product(row) if row else None

    async def get_by_slug(self, slug: str) -> Product | None:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow("SELECT * FROM products WHERE slug = $1 AND deleted_at IS NULL", slug)
            return _row_to_product(row) if row else None

    async def list(
        self,
        *,
        category_id: str | None = None,
        category_ids: Sequence[str] | None = None,
        status: ProductStatus | None = None,
        featured: bool | None = None,
        min_price: int | None = None,
        max_price: int | None = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
        page: Page = Page(),
    ) -> tuple[list[Product], int]:
        cond = Conditions()
        cond.clauses.append("deleted_at IS NULL")
        if category_id is not None:
            cond.add("category_id = {}", category_id)
        if category_ids is not None:
            cond.add("category_id = ANY({}::text[])", list(category_ids))
        if status is not None:
            cond.add("status = {}", status.value)
        if featured is not None:
            cond.add("featured = {}", featured)
        _price_range(cond, min_price, max_price)
        where = cond.where()

        async with tenant_conn(self.tenant_id) as conn:
            total = await conn.fetchval(f"SELECT count(*) FROM products {where}", *cond.values)  # nosec B608
            rows = await conn.fetch(
                f"SELECT * FROM products {where} {order_by(sort_by, sort_order)} {cond.page(page)}",  # nosec B608
                *cond.values,
            )
            return [_row_to_product(r) for r in rows], total

    async def search(
        self,
        query: str,
        *,
        category_id: str | None = None,
        min_price: int | None = None,
        max_price: int | None = None,
        page: Page = Page(),
    ) -> tuple[list[Product], int]:
        """
        Case-insensitive substring search over name and description.

        Args:
            query: Text to look for; LIKE wildcards in it are matched literally
            category_id: Restrict to one category
            min_price: Lower bound on base price, in cents
            max_price: Upper bound on base price, in cents
            page: Page window

        Returns:
            (active products on this page ordered by name, total matching)
        """
        pattern = f"%{escape_like(query)}%"
        cond = Conditions()
        cond.clauses.append("deleted_at IS NULL")
        cond.add("status = {}", ProductStatus.ACTIVE.value)
        cond.add("(name ILIKE {0} OR description ILIKE {0})", pattern)
        if category_id is not None:
            cond.add("category_id = {}", category_id)
        _price_range(cond, min_price, max_price)
        where = cond.where()

        async with tenant_conn(self.tenant_id) as conn:
            total = await conn.fetchval(f"SELECT count(*) FROM products {where}", *cond.values)  # nosec B608
            rows = await conn.fetch(
                f"SELECT * FROM products {where} ORDER BY name, id {cond.page(page)}",  # nosec B608
                *cond.values,
            )
            return [_row_to_product(r) for r in rows], total

    async def list_variants(self, product_id: str, *, min_stock: int | None = None) -> list[ProductVariant]:
        async with tenant_conn(self.tenant_id) as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM product_variants
                WHERE product_id = $1 AND deleted_at IS NULL
                  AND ($2::int IS NULL OR stock >= $2)
                ORDER BY position, id
                """,
                product_id,
                min_stock,
            )
            return [_row_to_variant(r) for r in rows]

    async def get_variant(self, product_id: str, variant_id: str) -> ProductVariant | None:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow(
                "SELECT * FROM product_variants WHERE id = $1 AND product_id = $2 AND deleted_at IS NULL",
                variant_id,
                product_id,
            )
            return _row_to_variant(row) if row else None

    async def adjust_stock(self, variant_id: str, delta: int) -> bool:
        async with tenant_conn(self.tenant_id) as conn:
            status = await conn.execute(
                "UPDATE product_variants SET stock = stock + $2 WHERE id = $1 AND deleted_at IS NULL",
                variant_id,
                delta,
            )
            return status != "UPDATE 0"

    async def list_categories(self, parent_id: str | None = None) -> list[ProductCategory]:
        async with tenant_conn(self.tenant_id) as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM product_categories
                WHERE parent_id IS NOT DISTINCT FROM $1
                ORDER BY position, name, id
                """,
                parent_id,
            )
            return [_row_to_category(r) for r in rows]

    async def get_category(self, category_id: str) -> ProductCategory | None:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow("SELECT * FROM product_categories WHERE id = $1", category_id)
            return _row_to_category(row) if row else None

    async def get_category_by_slug(self, slug: str) -> ProductCategory | None:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow("SELECT * FROM product_categories WHERE slug = $1", slug)
            return _row_to_category(row) if row else None

    async def count_active(self, category_ids: Sequence[str]) -> dict[str, int]:
        if not category_ids:
            return {}
        async with tenant_conn(self.tenant_id) as conn:
            rows = await conn.fetch(
                """
                SELECT category_id, count(*) AS products FROM products
                WHERE category_id = ANY($1::text[]) AND status = $2 AND deleted_at IS NULL
                GROUP BY category_id
                """,
                list(category_ids),
                ProductStatus.ACTIVE.value,
            )
            return {r["category_id"]: r["products"] for r in rows}
