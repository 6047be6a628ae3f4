"""
Catalog: Discount Primitives

Validation, application and management of discount codes.

A discount's lifecycle state (not-yet-active, active, exhausted, expired,
disabled) is derived from enabled / starts_at / expires_at / usage counters
and the current time on every call. Nothing stores it.

apply and remove never accumulate deltas: they recompute the target's total
from its current subtotal, shipping and tax, so retrying either one is safe.
Neither touches usage counters.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from primitives.catalog.common import (
    PAGE_PROPERTIES,
    format_money,
    page_from,
    parse_datetime,
)
from primitives.catalog.records import (
    ApplyTo,
    Discount,
    DiscountType,
    iso,
    now_utc,
)
from primitives.catalog.store import CheckoutStore
from primitives.kernel.errors import DomainRuleViolation, NotFoundError, ValidationError
from primitives.kernel.types import CategoryDefaults, HandlerContext, PrimitiveDefinition

CATEGORY = "discount"
DEFAULTS = CategoryDefaults(timeout_ms=10_000)


class DiscountState(str, Enum):
    NOT_YET_ACTIVE = "not-yet-active"
    ACTIVE = "active"
    EXHAUSTED = "exhausted"
    EXPIRED = "expired"
    DISABLED = "disabled"


STATE_MESSAGES = {
    DiscountState.DISABLED: "This discount code is no longer active",
    DiscountState.NOT_YET_ACTIVE: "This discount code is not yet active",
    DiscountState.EXPIRED: "This discount code has expired",
    DiscountState.EXHAUSTED: "This discount code has reached its usage limit",
}

INVALID_CODE = "Invalid discount code"
PER_CUSTOMER_LIMIT = "You have already used this discount code the maximum number of times"
FIRST_ORDER_ONLY = "This discount code is only valid for first orders"
NOT_APPLICABLE = "This discount does not apply to items in your cart"


# ---------------------------------------------------------------------------
# Pure rules
# ---------------------------------------------------------------------------


def discount_state(discount: Discount, now: datetime) -> DiscountState:
    """Checked in the same order validate walks them."""
    if not discount.enabled:
        return DiscountState.DISABLED
    if discount.starts_at > now:
        return DiscountState.NOT_YET_ACTIVE
    if discount.expires_at is not None and discount.expires_at < now:
        return DiscountState.EXPIRED
    if discount.usage_limit is not None and discount.usage_count >= discount.usage_limit:
        return DiscountState.EXHAUSTED
    return DiscountState.ACTIVE


def compute_discount(discount: Discount, subtotal: int) -> int:
    """Amount off `subtotal` in cents: percentage floored and capped, fixed capped at subtotal."""
    if subtotal <= 0:
        return 0
    if discount.type == DiscountType.PERCENTAGE:
        amount = subtotal * discount.value // 100
        if discount.max_discount is not None:
            amount = min(amount, discount.max_discount)
        return amount
    return min(discount.value, subtotal)


def min_order_message(discount: Discount) -> str:
    return f"Minimum order of {format_money(discount.min_order_value)} required"


def _applies_to(discount: Discount, product_ids: list[str], category_ids: list[str]) -> bool:
    if discount.apply_to == ApplyTo.PRODUCT and discount.product_ids:
        return bool(set(product_ids) & set(discount.product_ids))
    if discount.apply_to == ApplyTo.CATEGORY and discount.category_ids:
        return bool(set(category_ids) & set(discount.category_ids))
    return True


def discount_summary(discount: Discount) -> dict[str, Any]:
    return {
        "id": discount.id,
        "code": discount.code,
        "type": discount.type.value,
        "value": discount.value,
        "description": discount.description,
        "minOrderValue": discount.min_order_value,
        "maxDiscount": discount.max_discount,
        "expiresAt": iso(discount.expires_at),
    }


def discount_details(discount: Discount, now: datetime) -> dict[str, Any]:
    state = discount_state(discount, now)
    return {
        **discount_summary(discount),
        "applyTo": discount.apply_to.value,
        "productIds": list(discount.product_ids),
        "categoryIds": list(discount.category_ids),
        "usageLimit": discount.usage_limit,
        "usageCount": discount.usage_count,
        "perCustomer": discount.per_customer,
        "firstOrderOnly": discount.first_order_only,
        "enabled": discount.enabled,
        "startsAt": iso(discount.starts_at),
        "state": state.value,
        "isActive": state == DiscountState.ACTIVE,
    }


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def validate_discount(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    """
    Walk the eligibility checks in order and stop at the first failure.

    Cheap checks on the record come first; the per-customer and first-order
    checks need extra queries and only run when a customer is identified.
    An ineligible code is a successful call with valid=false.
    """
    store = ctx.store
    code = args["code"].strip().upper()
    customer_id = args.get("customerId")
    email = args.get("email", "").strip().lower() or None
    order_total = args.get("orderTotal")

    discount = await store.discounts.get_by_code(code)
    if discount is None:
        return _invalid(INVALID_CODE)

    state = discount_state(discount, now_utc())
    if state != DiscountState.ACTIVE:
        return _invalid(STATE_MESSAGES[state])

    if discount.per_customer is not None and (customer_id or email):
        used = await store.discounts.count_customer_usages(discount.id, customer_id=customer_id, email=email)
        if used >= discount.per_customer:
            return _invalid(PER_CUSTOMER_LIMIT)

    if discount.first_order_only and (customer_id or email):
        previous = await store.orders.count_for_customer(customer_id=customer_id, email=email)
        if previous > 0:
            return _invalid(FIRST_ORDER_ONLY)

    if discount.min_order_value is not None and order_total is not None and order_total < discount.min_order_value:
        return _invalid(min_order_message(discount))

    if not _applies_to(discount, args.get("productIds", []), args.get("categoryIds", [])):
        return _invalid(NOT_APPLICABLE)

    amount = compute_discount(discount, order_total) if order_total else 0
    savings = format_money(amount) if amount > 0 else None
    return {
        "valid": True,
        "discount": discount_summary(discount),
        "discountAmount": amount,
        "savings": savings,
        "message": f"{discount.code} is valid" + (f": you save {savings}" if savings else ""),
    }


def _invalid(error: str) -> dict[str, Any]:
    return {"valid": False, "error": error, "message": error}


def _target(ctx: HandlerContext, args: dict[str, Any]) -> tuple[str, CheckoutStore, str]:
    if args.get("orderId"):
        return "order", ctx.store.orders, args["orderId"]
    if args.get("cartId"):
        return "cart", ctx.store.carts, args["cartId"]
    raise ValidationError(["Either orderId or cartId is required"])


async def apply_discount(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    kind, checkouts, record_id = _target(ctx, args)
    code = args["code"].strip().upper()

    discount = await ctx.store.discounts.get_by_code(code)
    if discount is None:
        raise NotFoundError(INVALID_CODE)

    state = discount_state(discount, now_utc())
    if state != DiscountState.ACTIVE:
        raise DomainRuleViolation(STATE_MESSAGES[state])

    record = await checkouts.get(record_id)
    if record is None:
        raise NotFoundError(f"{kind.capitalize()} not found")

    if discount.min_order_value is not None and record.subtotal < discount.min_order_value:
        raise DomainRuleViolation(min_order_message(discount))

    amount = compute_discount(discount, record.subtotal)
    total = record.undiscounted_total() - amount

    updated = await checkouts.set_discount(
        record_id,
        discount_id=discount.id,
        code=discount.code,
        discount_total=amount,
        total=total,
    )
    if updated is None:
        raise NotFoundError(f"{kind.capitalize()} not found")

    return {
        "applied": kind,
        f"{kind}Id": updated.id,
        "code": discount.code,
        "discountAmount": amount,
        "newTotal": updated.total,
        "message": f"Applied {discount.code} ({format_money(amount)} off). New total: {format_money(updated.total)}",
    }


async def remove_discount(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    kind, checkouts, record_id = _target(ctx, args)

    record = await checkouts.get(record_id)
    if record is None:
        raise NotFoundError(f"{kind.capitalize()} not found")

    updated = await checkouts.set_discount(
        record_id,
        discount_id=None,
        code=None,
        discount_total=0,
        total=record.undiscounted_total(),
    )
    if updated is None:
        raise NotFoundError(f"{kind.capitalize()} not found")

    return {
        "removed": kind,
        f"{kind}Id": updated.id,
        "newTotal": updated.total,
        "message": f"Discount removed. New total: {format_money(updated.total)}",
    }


async def get_discount(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    if args.get("id"):
        discount = await ctx.store.discounts.get(args["id"])
    elif args.get("code"):
        discount = await ctx.store.discounts.get_by_code(args["code"].strip().upper())
    else:
        raise ValidationError(["Either id or code is required"])

    if discount is None:
        raise NotFoundError("Discount not found")

    details = discount_details(discount, now_utc())
    if args.get("includeUsages"):
        usages = await ctx.store.discounts.list_usages(discount.id)
        details["usages"] = [
            {
                "orderId": u.order_id,
                "email": u.email,
                "discountAmount": u.discount_amount,
                "createdAt": iso(u.created_at),
            }
            for u in usages
        ]
    return {"discount": details}


async def list_discounts(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    page = page_from(args)
    now = now_utc()
    discounts, total = await ctx.store.discounts.list(
        enabled=args.get("enabled"),
        type=DiscountType(args["type"]) if args.get("type") else None,
        active_at=now if args.get("active") else None,
        page=page,
    )
    return {
        "discounts": [discount_details(d, now) for d in discounts],
        "pagination": page.meta(total),
    }


async def create_discount(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    code = args["code"].strip().upper()
    discount_type = DiscountType(args["type"])

    problems = []
    if discount_type == DiscountType.PERCENTAGE and args["value"] > 100:
        problems.append("value: percentage discounts cannot exceed 100")
    starts_at = parse_datetime(args["startsAt"], "startsAt") if args.get("startsAt") else now_utc()
    expires_at = parse_datetime(args["expiresAt"], "expiresAt") if args.get("expiresAt") else None
    if expires_at is not None and expires_at <= starts_at:
        problems.append("expiresAt: must be after startsAt")
    if problems:
        raise ValidationError(problems)

    if await ctx.store.discounts.get_by_code(code) is not None:
        raise DomainRuleViolation(f"Discount code {code} already exists")

    discount = await ctx.store.discounts.create(
        Discount(
            code=code,
            description=args.get("description"),
            type=discount_type,
            value=args["value"],
            apply_to=ApplyTo(args["applyTo"]),
            product_ids=args.get("productIds", []),
            category_ids=args.get("categoryIds", []),
            min_order_value=args.get("minOrderValue"),
            max_discount=args.get("maxDiscount"),
            usage_limit=args.get("usageLimit"),
            per_customer=args.get("perCustomer"),
            first_order_only=args["firstOrderOnly"],
            enabled=args["enabled"],
            starts_at=starts_at,
            expires_at=expires_at,
        )
    )
    return {
        "discount": discount_details(discount, now_utc()),
        "message": f"Discount code {discount.code} created",
    }


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------

_CODE = {"type": "string", "minLength": 1, "description": "Discount code (case-insensitive)"}
_ORDER_OR_CART = {
    "orderId": {"type": "string", "description": "Order to update"},
    "cartId": {"type": "string", "description": "Cart to update (alternative to orderId)"},
}
_ID_LIST = {"type": "array", "items": {"type": "string"}}
_CENTS = {"type": "integer", "minimum": 0}

DISCOUNT_PRIMITIVES: list[PrimitiveDefinition] = [
    PrimitiveDefinition(
        name="discount.validate",
        category=CATEGORY,
        description="Validate a discount code and check eligibility for an order.",
        tags=frozenset({"discount", "coupon", "validate", "e-commerce"}),
        icon="Percent",
        built_in=True,
        handler=validate_discount,
        input_schema={
            "type": "object",
            "properties": {
                "code": _CODE,
                "orderTotal": {**_CENTS, "description": "Order subtotal in cents (for minimum order checks)"},
                "productIds": {**_ID_LIST, "description": "Product IDs in the order"},
                "categoryIds": {**_ID_LIST, "description": "Category IDs of products in the order"},
                "customerId": {"type": "string", "description": "Customer ID (per-customer and first-order checks)"},
                "email": {"type": "string", "description": "Customer email (per-customer and first-order checks)"},
            },
            "required": ["code"],
        },
    ),
    PrimitiveDefinition(
        name="discount.apply",
        category=CATEGORY,
        description=(
            "Apply a discount code to an order or cart. The discount is recomputed from the "
            "current subtotal, so applying the same code twice gives the same total."
        ),
        tags=frozenset({"discount", "coupon", "apply", "e-commerce"}),
        icon="Tag",
        built_in=True,
        handler=apply_discount,
        input_schema={
            "type": "object",
            "properties": {"code": _CODE, **_ORDER_OR_CART},
            "required": ["code"],
        },
    ),
    PrimitiveDefinition(
        name="discount.remove",
        category=CATEGORY,
        description="Remove any discount from an order or cart and recompute its total.",
        tags=frozenset({"discount", "coupon", "remove", "e-commerce"}),
        icon="X",
        built_in=True,
        handler=remove_discount,
        input_schema={"type": "object", "properties": dict(_ORDER_OR_CART)},
    ),
    PrimitiveDefinition(
        name="discount.get",
        category=CATEGORY,
        description="Get a discount code by ID or code, with its current state.",
        tags=frozenset({"discount", "coupon", "get", "e-commerce"}),
        icon="Info",
        timeout_ms=5_000,
        built_in=True,
        handler=get_discount,
        input_schema={
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": "Discount ID"},
                "code": {"type": "string", "description": "Discount code (alternative to id)"},
                "includeUsages": {"type": "boolean", "description": "Include recent usage history", "default": False},
            },
        },
    ),
    PrimitiveDefinition(
        name="discount.list",
        category=CATEGORY,
        description="List discount codes with filtering and pagination.",
        tags=frozenset({"discount", "coupon", "list", "e-commerce"}),
        icon="List",
        built_in=True,
        handler=list_discounts,
        input_schema={
            "type": "object",
            "properties": {
                "enabled": {"type": "boolean", "description": "Filter by enabled flag"},
                "type": {"type": "string", "enum": ["PERCENTAGE", "FIXED"], "description": "Filter by type"},
                "active": {"type": "boolean", "description": "Only discounts usable right now"},
                **PAGE_PROPERTIES,
            },
        },
    ),
    PrimitiveDefinition(
        name="discount.create",
        category=CATEGORY,
        description="Create a new discount code.",
        tags=frozenset({"discount", "coupon", "create", "e-commerce"}),
        icon="Plus",
        built_in=True,
        handler=create_discount,
        input_schema={
            "type": "object",
            "properties": {
                "code": {"type": "string", "minLength": 2, "maxLength": 50, "pattern": "^[A-Za-z0-9_-]+$"},
                "description": {"type": "string"},
                "type": {"type": "string", "enum": ["PERCENTAGE", "FIXED"]},
                "value": {"type": "integer", "minimum": 1, "description": "Percent, or cents for FIXED"},
                "applyTo": {"type": "string", "enum": ["ALL", "PRODUCT", "CATEGORY"], "default": "ALL"},
                "productIds": _ID_LIST,
                "categoryIds": _ID_LIST,
                "minOrderValue": {**_CENTS, "description": "Minimum order value in cents"},
                "maxDiscount": {**_CENTS, "description": "Cap in cents for percentage discounts"},
                "usageLimit": {"type": "integer", "minimum": 1},
                "perCustomer": {"type": "integer", "minimum": 1},
                "firstOrderOnly": {"type": "boolean", "default": False},
                "startsAt": {"type": "string", "description": "Start date (ISO 8601)"},
                "expiresAt": {"type": "string", "description": "Expiry date (ISO 8601)"},
                "enabled": {"type": "boolean", "default": True},
            },
            "required": ["code", "type", "value"],
        },
    ),
]
