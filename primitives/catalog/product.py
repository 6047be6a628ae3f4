"""
Catalog: Product Primitives

Read-side catalog queries plus the stock check used by add-to-cart flows.

checkStock is deliberately asymmetric. With a variant id it answers for that
one variant exactly. With only a product id it returns every variant that
can cover the quantity, because the caller needs to know which ones.

Category reads look one level down only: getCategories returns a level with
its direct children, and getByCategory includes direct subcategories.
"""

from __future__ import annotations

from typing import Any

from primitives.catalog.common import PAGE_PROPERTIES, SORT_ORDER, page_from
from primitives.catalog.store import Page
from primitives.catalog.records import Product, ProductCategory, ProductStatus, ProductVariant, iso
from primitives.kernel.errors import NotFoundError, ValidationError
from primitives.kernel.types import CategoryDefaults, HandlerContext, PrimitiveDefinition

CATEGORY = "product"
DEFAULTS = CategoryDefaults(timeout_ms=5_000)

LOW_STOCK_THRESHOLD = 5
NOT_AVAILABLE = "Product is not available"
INSUFFICIENT_STOCK = "Insufficient stock"
NO_VARIANTS_IN_STOCK = "No variants with sufficient stock"


def is_low_stock(variant: ProductVariant) -> bool:
    threshold = variant.low_stock_threshold or LOW_STOCK_THRESHOLD
    return 0 < variant.stock <= threshold


def product_summary(product: Product) -> dict[str, Any]:
    return {
        "id": product.id,
        "name": product.name,
        "slug": product.slug,
        "description": product.short_description or (product.description or "")[:200] or None,
        "price": product.base_price,
        "compareAtPrice": product.compare_at_price,
        "featured": product.featured,
        "status": product.status.value,
        "categoryId": product.category_id,
        "image": product.image_url,
    }


def variant_info(variant: ProductVariant) -> dict[str, Any]:
    return {
        "id": variant.id,
        "name": variant.name,
        "sku": variant.sku,
        "price": variant.price,
        "compareAtPrice": variant.compare_at_price,
        "stock": variant.stock,
        "lowStockThreshold": variant.low_stock_threshold,
        "inStock": variant.stock > 0,
        "lowStock": is_low_stock(variant),
        "options": dict(variant.options),
    }


async def _find_product(ctx: HandlerContext, product_id: str | None, slug: str | None) -> Product:
    if product_id:
        product = await ctx.store.products.get(product_id)
    elif slug:
        product = await ctx.store.products.get_by_slug(slug)
    else:
        raise ValidationError(["Either productId or slug is required"])
    if product is None:
        raise NotFoundError("Product not found")
    return product


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def list_products(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    page = page_from(args)
    products, total = await ctx.store.products.list(
        category_id=args.get("categoryId"),
        status=ProductStatus(args["status"]) if args.get("status") else None,
        featured=args.get("featured"),
        min_price=args.get("minPrice"),
        max_price=args.get("maxPrice"),
        sort_by=args["sortBy"],
        sort_order=args["sortOrder"],
        page=page,
    )

    items = []
    for p in products:
        item = product_summary(p)
        if args["includeVariants"]:
            variants = await ctx.store.products.list_variants(p.id)
            item["variants"] = [variant_info(v) for v in variants]
            item["variantCount"] = len(variants)
        items.append(item)

    return {"products": items, "pagination": page.meta(total)}


async def get_product(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    product = await _find_product(ctx, args.get("productId"), args.get("slug"))
    variants = await ctx.store.products.list_variants(product.id)
    return {
        "product": {
            **product_summary(product),
            "description": product.description,
            "shortDescription": product.short_description,
            "createdAt": iso(product.created_at),
            "updatedAt": iso(product.updated_at),
            "variants": [variant_info(v) for v in variants],
        }
    }


async def search_products(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    page = page_from(args)
    query = args["query"].strip()
    products, total = await ctx.store.products.search(
        query,
        category_id=args.get("categoryId"),
        min_price=args.get("minPrice"),
        max_price=args.get("maxPrice"),
        page=page,
    )
    return {
        "query": query,
        "products": [product_summary(p) for p in products],
        "pagination": page.meta(total),
    }


async def get_variants(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    product = await _find_product(ctx, args.get("productId"), args.get("slug"))
    variants = await ctx.store.products.list_variants(product.id, min_stock=1 if args["inStockOnly"] else None)

    option_types: list[str] = []
    for v in variants:
        for key in v.options:
            if key not in option_types:
                option_types.append(key)

    return {
        "product": {"id": product.id, "name": product.name, "slug": product.slug, "basePrice": product.base_price},
        "variants": [variant_info(v) for v in variants],
        "optionTypes": option_types,
        "totalVariants": len(variants),
        "inStockCount": sum(1 for v in variants if v.stock > 0),
    }


async def check_stock(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    product_id = args["productId"]
    variant_id = args.get("variantId")
    quantity = args["quantity"]

    if variant_id:
        return await _check_variant(ctx, product_id, variant_id, quantity)

    product = await ctx.store.products.get(product_id)
    if product is None:
        raise NotFoundError("Product not found")

    if product.status != ProductStatus.ACTIVE:
        return {
            "available": False,
            "reason": NOT_AVAILABLE,
            "message": NOT_AVAILABLE,
            "productId": product_id,
            "requestedQuantity": quantity,
            "availableVariants": [],
        }

    variants = await ctx.store.products.list_variants(product_id, min_stock=quantity)
    available = len(variants) > 0
    return {
        "available": available,
        "reason": None if available else NO_VARIANTS_IN_STOCK,
        "message": f"{len(variants)} variant(s) can cover {quantity}" if available else NO_VARIANTS_IN_STOCK,
        "productId": product_id,
        "productName": product.name,
        "requestedQuantity": quantity,
        "availableVariants": [
            {"id": v.id, "name": v.name, "sku": v.sku, "stock": v.stock, "price": v.price} for v in variants
        ],
        "totalAvailableVariants": len(variants),
    }


async def _check_variant(ctx: HandlerContext, product_id: str, variant_id: str, quantity: int) -> dict[str, Any]:
    product = await ctx.store.products.get(product_id)
    variant = await ctx.store.products.get_variant(product_id, variant_id)
    if product is None or variant is None:
        raise NotFoundError("Variant not found")

    if product.status != ProductStatus.ACTIVE:
        return {
            "available": False,
            "reason": NOT_AVAILABLE,
            "message": NOT_AVAILABLE,
            "productId": product_id,
            "variantId": variant_id,
            "requestedQuantity": quantity,
        }

    available = variant.stock >= quantity
    return {
        "available": available,
        "reason": None if available else INSUFFICIENT_STOCK,
        "message": f"{variant.name} is in stock" if available else INSUFFICIENT_STOCK,
        "productId": product_id,
        "variantId": variant_id,
        "variantName": variant.name,
        "sku": variant.sku,
        "requestedQuantity": quantity,
        "currentStock": variant.stock,
        "lowStock": is_low_stock(variant),
    }


async def get_featured(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    products, _ = await ctx.store.products.list(
        category_id=args.get("categoryId"),
        status=ProductStatus.ACTIVE,
        featured=True,
        sort_by="updatedAt",
        sort_order="desc",
        page=Page(page=1, limit=args["limit"]),
    )
    return {
        "products": [product_summary(p) for p in products],
        "total": len(products),
        "message": f"{len(products)} featured product(s)",
    }


def category_info(category: ProductCategory, counts: dict[str, int] | None) -> dict[str, Any]:
    info = {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "image": category.image,
    }
    if counts is not None:
        info["productCount"] = counts.get(category.id, 0)
    return info


async def get_categories(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    store = ctx.store.products
    categories = await store.list_categories(args.get("parentId"))

    children: dict[str, list[ProductCategory]] = {}
    if args["includeChildren"]:
        for c in categories:
            children[c.id] = await store.list_categories(c.id)

    # activeOnly needs the counts even when the caller doesn't want them back
    counts = None
    if args["includeProductCount"] or args["activeOnly"]:
        ids = [c.id for c in categories] + [ch.id for group in children.values() for ch in group]
        counts = await store.count_active(ids) if ids else {}

    result = []
    for c in categories:
        if args["activeOnly"] and not (
            counts.get(c.id) or any(counts.get(ch.id) for ch in children.get(c.id, []))
        ):
            continue
        shown = counts if args["includeProductCount"] else None
        result.append(
            {
                **category_info(c, shown),
                "children": [category_info(ch, shown) for ch in children.get(c.id, [])],
            }
        )

    noun = "category" if len(result) == 1 else "categories"
    return {"categories": result, "total": len(result), "message": f"{len(result)} {noun}"}


async def get_by_category(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    store = ctx.store.products
    if args.get("categoryId"):
        category = await store.get_category(args["categoryId"])
    elif args.get("categorySlug"):
        category = await store.get_category_by_slug(args["categorySlug"])
    else:
        raise ValidationError(["Either categoryId or categorySlug is required"])
    if category is None:
        raise NotFoundError("Category not found")

    category_ids = [category.id]
    if args["includeSubcategories"]:
        category_ids += [c.id for c in await store.list_categories(category.id)]

    page = page_from(args)
    products, total = await store.list(
        category_ids=category_ids,
        status=ProductStatus.ACTIVE,
        sort_by=args["sortBy"],
        sort_order=args["sortOrder"],
        page=page,
    )
    return {
        "category": {
            "id": category.id,
            "name": category.name,
            "slug": category.slug,
            "description": category.description,
        },
        "products": [product_summary(p) for p in products],
        "pagination": page.meta(total),
        "message": f"{total} product(s) in {category.name}",
    }


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------

_PRICE = {"type": "integer", "minimum": 0}
_PRODUCT_REF = {
    "productId": {"type": "string", "description": "Product ID"},
    "slug": {"type": "string", "description": "Product slug (alternative to productId)"},
}

PRODUCT_PRIMITIVES: list[PrimitiveDefinition] = [
    PrimitiveDefinition(
        name="product.list",
        category=CATEGORY,
        description="List products with pagination, filtering and sorting.",
        tags=frozenset({"product", "catalog", "list", "storefront"}),
        icon="Package",
        timeout_ms=10_000,
        built_in=True,
        handler=list_products,
        input_schema={
            "type": "object",
            "properties": {
                **PAGE_PROPERTIES,
                "categoryId": {"type": "string"},
                "status": {"type": "string", "enum": ["ACTIVE", "DRAFT", "ARCHIVED"]},
                "featured": {"type": "boolean"},
                "minPrice": {**_PRICE, "description": "Minimum price in cents"},
                "maxPrice": {**_PRICE, "description": "Maximum price in cents"},
                "sortBy": {"type": "string", "enum": ["name", "price", "createdAt", "updatedAt"], "default": "createdAt"},
                "sortOrder": SORT_ORDER,
                "includeVariants": {"type": "boolean", "default": False},
            },
        },
    ),
    PrimitiveDefinition(
        name="product.get",
        category=CATEGORY,
        description="Get one product with its variants, by ID or slug.",
        tags=frozenset({"product", "catalog", "detail", "storefront"}),
        icon="PackageSearch",
        built_in=True,
        handler=get_product,
        input_schema={"type": "object", "properties": dict(_PRODUCT_REF)},
    ),
    PrimitiveDefinition(
        name="product.search",
        category=CATEGORY,
        description="Search active products by name or description.",
        tags=frozenset({"product", "search", "catalog", "storefront"}),
        icon="Search",
        timeout_ms=10_000,
        built_in=True,
        handler=search_products,
        input_schema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "minLength": 2},
                "page": PAGE_PROPERTIES["page"],
                "limit": {**PAGE_PROPERTIES["limit"], "maximum": 50},
                "categoryId": {"type": "string"},
                "minPrice": _PRICE,
                "maxPrice": _PRICE,
            },
            "required": ["query"],
        },
    ),
    PrimitiveDefinition(
        name="product.getVariants",
        category=CATEGORY,
        description="Get all variants of a product with price, stock and option types.",
        tags=frozenset({"product", "variants", "catalog", "storefront"}),
        icon="Layers",
        built_in=True,
        handler=get_variants,
        input_schema={
            "type": "object",
            "properties": {
                **_PRODUCT_REF,
                "inStockOnly": {"type": "boolean", "default": False},
            },
        },
    ),
    PrimitiveDefinition(
        name="product.checkStock",
        category=CATEGORY,
        description=(
            "Check stock for a quantity. With variantId, checks that variant exactly; "
            "with only productId, lists every variant that has enough stock."
        ),
        tags=frozenset({"product", "stock", "inventory", "storefront"}),
        icon="Package2",
        timeout_ms=3_000,
        built_in=True,
        handler=check_stock,
        input_schema={
            "type": "object",
            "properties": {
                "productId": {"type": "string"},
                "variantId": {"type": "string"},
                "quantity": {"type": "integer", "minimum": 1, "default": 1},
            },
            "required": ["productId"],
        },
    ),
    PrimitiveDefinition(
        name="product.getFeatured",
        category=CATEGORY,
        description="Get featured products for the homepage or promotional displays.",
        tags=frozenset({"product", "featured", "homepage", "storefront"}),
        icon="Star",
        built_in=True,
        handler=get_featured,
        input_schema={
            "type": "object",
            "properties": {
                "limit": {"type": "integer", "minimum": 1, "maximum": 24, "default": 8},
                "categoryId": {"type": "string"},
            },
        },
    ),
    PrimitiveDefinition(
        name="product.getCategories",
        category=CATEGORY,
        description="Get product categories, one level at a time, with their children and product counts.",
        tags=frozenset({"product", "category", "catalog", "navigation"}),
        icon="FolderOpen",
        built_in=True,
        handler=get_categories,
        input_schema={
            "type": "object",
            "properties": {
                "parentId": {"type": "string", "description": "Parent category (root categories when omitted)"},
                "includeProductCount": {"type": "boolean", "default": True},
                "includeChildren": {"type": "boolean", "default": True},
                "activeOnly": {"type": "boolean", "default": False, "description": "Only categories with active products"},
            },
        },
    ),
    PrimitiveDefinition(
        name="product.getByCategory",
        category=CATEGORY,
        description="List active products in a category, optionally including its direct subcategories.",
        tags=frozenset({"product", "category", "catalog", "storefront"}),
        icon="FolderTree",
        timeout_ms=10_000,
        built_in=True,
        handler=get_by_category,
        input_schema={
            "type": "object",
            "properties": {
                "categoryId": {"type": "string"},
                "categorySlug": {"type": "string"},
                "includeSubcategories": {"type": "boolean", "default": True},
                **PAGE_PROPERTIES,
                "sortBy": {"type": "string", "enum": ["name", "price", "createdAt", "featured"], "default": "createdAt"},
                "sortOrder": SORT_ORDER,
            },
        },
    ),
]
