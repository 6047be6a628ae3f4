"""
Catalog: Order Primitives

Reads plus the fulfilment status changes. Every status change appends one
timestamped line to the order's internal notes in the same write that sets
the status, so the notes always explain the current state.

order.cancel sets the status before restoring stock. If it stops between the
two, the order is cancelled with its stock still held, and a retry answers
"already cancelled" instead of restoring the same units twice.
"""

from __future__ import annotations

import logging
from typing import Any

from primitives.catalog.common import PAGE_PROPERTIES, SORT_ORDER, format_money, page_from, parse_datetime
from primitives.catalog.records import Notification, NotificationType, Order, OrderItem, OrderStatus, iso, now_utc
from primitives.kernel.errors import DomainRuleViolation, NotFoundError
from primitives.kernel.types import CategoryDefaults, HandlerContext, PrimitiveDefinition

logger = logging.getLogger(__name__)

CATEGORY = "order"
DEFAULTS = CategoryDefaults(timeout_ms=10_000)

NOT_FOUND = "Order not found"
ALREADY_CANCELLED = "Order is already cancelled"
CANCEL_DELIVERED = "Cannot cancel a delivered order. Use refund instead."

STATUSES = [s.value for s in OrderStatus]


def order_label(order: Order) -> str:
    return order.order_number or order.id


def status_note(text: str) -> str:
    return f"[{now_utc().isoformat()}] {text}"


def item_info(item: OrderItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "productId": item.product_id,
        "variantId": item.variant_id,
        "title": item.title,
        "quantity": item.quantity,
        "price": item.price,
        "total": item.total,
    }


def order_summary(order: Order) -> dict[str, Any]:
    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "status": order.status.value,
        "customerId": order.customer_id,
        "email": order.email,
        "total": order.total,
        "itemCount": sum(i.quantity for i in order.items),
        "createdAt": iso(order.created_at),
    }


async def _load(ctx: HandlerContext, order_id: str) -> Order:
    order = await ctx.store.orders.get(order_id)
    if order is None:
        raise NotFoundError(NOT_FOUND)
    return order


async def _notify_customer(ctx: HandlerContext, order: Order, title: str, message: str) -> bool:
    """In-app notification for the order's customer. Guest orders have nobody to notify."""
    if not order.customer_id:
        return False
    shipping = order.status in (OrderStatus.SHIPPED, OrderStatus.DELIVERED)
    try:
        await ctx.store.notifications.create(
            Notification(
                user_id=order.customer_id,
                type=NotificationType.SHIPPING if shipping else NotificationType.ORDER,
                title=title,
                message=message,
                data={"orderId": order.id, "status": order.status.value},
            )
        )
    except Exception:
        # The status change is already saved; report the missed notification instead of failing it
        logger.warning("order: could not notify customer of order %s", order.id, exc_info=True)
        return False
    return True


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def get_order(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    order = await _load(ctx, args["orderId"])

    return {
        "order": {
            "id": order.id,
            "orderNumber": order.order_number,
            "status": order.status.value,
            "customerId": order.customer_id,
            "email": order.email,
            "items": [item_info(i) for i in order.items],
            "subtotal": order.subtotal,
            "shippingTotal": order.shipping_total,
            "taxTotal": order.tax_total,
            "discountTotal": order.discount_total,
            "total": order.total,
            "discountCode": order.discount_code,
            "createdAt": iso(order.created_at),
            "updatedAt": iso(order.updated_at),
        },
        "message": f"Order {order_label(order)} is {order.status.value.lower()}, total {format_money(order.total)}",
    }


async def list_orders(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    page = page_from(args)
    orders, total = await ctx.store.orders.list(
        customer_id=args.get("customerId"),
        email=args.get("email"),
        status=OrderStatus(args["status"]) if args.get("status") else None,
        created_from=parse_datetime(args["dateFrom"], "dateFrom") if args.get("dateFrom") else None,
        created_to=parse_datetime(args["dateTo"], "dateTo") if args.get("dateTo") else None,
        sort_by=args["sortBy"],
        sort_order=args["sortOrder"],
        page=page,
    )
    return {
        "orders": [order_summary(o) for o in orders],
        "pagination": page.meta(total),
        "message": f"{total} order(s)",
    }


async def update_status(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    order = await _load(ctx, args["orderId"])
    status = OrderStatus(args["status"])
    notes = args.get("internalNotes")

    updated = await ctx.store.orders.update_status(
        order.id,
        status,
        note=status_note(f"Status: {status.value} - {notes}") if notes else None,
    )
    if updated is None:
        raise NotFoundError(NOT_FOUND)

    notified = False
    if args["notifyCustomer"] and status != order.status:
        notified = await _notify_customer(
            ctx,
            updated,
            f"Order {order_label(updated)} is {status.value.lower()}",
            f"Your order {order_label(updated)} is now {status.value.lower()}.",
        )

    return {
        "order": {
            "id": updated.id,
            "orderNumber": updated.order_number,
            "previousStatus": order.status.value,
            "newStatus": updated.status.value,
        },
        "customerNotified": notified,
        "message": f"Order {order_label(updated)} moved from {order.status.value} to {updated.status.value}",
    }


async def cancel_order(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    order = await _load(ctx, args["orderId"])
    if order.status == OrderStatus.CANCELLED:
        raise DomainRuleViolation(ALREADY_CANCELLED)
    if order.status == OrderStatus.DELIVERED:
        raise DomainRuleViolation(CANCEL_DELIVERED)

    reason = args["reason"]
    updated = await ctx.store.orders.update_status(
        order.id,
        OrderStatus.CANCELLED,
        note=status_note(f"CANCELLED: {reason}"),
    )
    if updated is None:
        raise NotFoundError(NOT_FOUND)

    restored = 0
    if args["restoreInventory"]:
        for item in order.items:
            # Stock is tracked per variant only
            if item.variant_id and await ctx.store.products.adjust_stock(item.variant_id, item.quantity):
                restored += item.quantity

    notified = False
    if args["notifyCustomer"]:
        notified = await _notify_customer(
            ctx,
            updated,
            f"Order {order_label(updated)} was cancelled",
            f"Your order {order_label(updated)} was cancelled: {reason}",
        )

    return {
        "order": {
            "id": updated.id,
            "orderNumber": updated.order_number,
            "status": updated.status.value,
            "reason": reason,
            "inventoryRestored": args["restoreInventory"],
            "unitsRestored": restored,
        },
        "customerNotified": notified,
        "message": f"Order {order_label(updated)} cancelled",
    }


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------

_ORDER_ID = {"type": "string", "minLength": 1, "description": "Order ID"}

ORDER_PRIMITIVES: list[PrimitiveDefinition] = [
    PrimitiveDefinition(
        name="order.get",
        category=CATEGORY,
        description="Get an order's status, items, totals and applied discount code.",
        tags=frozenset({"order", "e-commerce"}),
        icon="Receipt",
        built_in=True,
        handler=get_order,
        input_schema={
            "type": "object",
            "properties": {"orderId": {"type": "string", "description": "Order ID"}},
            "required": ["orderId"],
        },
    ),
    PrimitiveDefinition(
        name="order.list",
        category=CATEGORY,
        description="List orders with filtering, pagination and sorting.",
        tags=frozenset({"order", "list", "search", "e-commerce"}),
        icon="List",
        timeout_ms=15_000,
        built_in=True,
        handler=list_orders,
        input_schema={
            "type": "object",
            "properties": {
                "customerId": {"type": "string"},
                "email": {"type": "string", "description": "Matches any part of the customer email"},
                "status": {"type": "string", "enum": STATUSES},
                "dateFrom": {"type": "string", "description": "Orders created at or after (ISO 8601)"},
                "dateTo": {"type": "string", "description": "Orders created at or before (ISO 8601)"},
                **PAGE_PROPERTIES,
                "sortBy": {
                    "type": "string",
                    "enum": ["createdAt", "updatedAt", "total", "orderNumber"],
                    "default": "createdAt",
                },
                "sortOrder": SORT_ORDER,
            },
        },
    ),
    PrimitiveDefinition(
        name="order.updateStatus",
        category=CATEGORY,
        description="Change an order's status, with optional internal notes and a customer notification.",
        tags=frozenset({"order", "status", "update", "e-commerce"}),
        icon="RefreshCw",
        timeout_ms=15_000,
        built_in=True,
        handler=update_status,
        input_schema={
            "type": "object",
            "properties": {
                "orderId": _ORDER_ID,
                "status": {"type": "string", "enum": STATUSES},
                "internalNotes": {"type": "string", "description": "Why the status changed"},
                "notifyCustomer": {"type": "boolean", "default": True},
            },
            "required": ["orderId", "status"],
        },
    ),
    PrimitiveDefinition(
        name="order.cancel",
        category=CATEGORY,
        description="Cancel an order that has not been delivered, optionally returning its items to stock.",
        tags=frozenset({"order", "cancel", "e-commerce"}),
        icon="XCircle",
        timeout_ms=30_000,
        built_in=True,
        handler=cancel_order,
        input_schema={
            "type": "object",
            "properties": {
                "orderId": _ORDER_ID,
                "reason": {"type": "string", "minLength": 1},
                "restoreInventory": {"type": "boolean", "default": True},
                "notifyCustomer": {"type": "boolean", "default": True},
            },
            "required": ["orderId", "reason"],
        },
    ),
]
