"""
Catalog: Analytics Primitives

Storefront event tracking and the summary numbers built from it. Every event
is one append-only row; the track* primitives are fixed shapes of
analytics.trackEvent for the events the storefront reports most.

Money is integer cents here as everywhere else, so a purchase's `total`
property sums directly into revenue.

Reporting periods end now, except "yesterday", which is the whole previous
UTC day. "today" starts at UTC midnight.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from primitives.catalog.common import parse_datetime
from primitives.catalog.records import AnalyticsEvent, iso, now_utc
from primitives.catalog.store import Page
from primitives.kernel.errors import ValidationError
from primitives.kernel.types import CategoryDefaults, HandlerContext, PrimitiveDefinition

logger = logging.getLogger(__name__)

CATEGORY = "analytics"
DEFAULTS = CategoryDefaults(timeout_ms=3_000)

PERIODS = ["today", "yesterday", "7d", "30d", "90d", "custom"]
METRICS = ["pageViews", "uniqueVisitors", "purchases", "revenue", "topPages", "topEvents"]
DEFAULT_METRICS = ["pageViews", "uniqueVisitors", "purchases", "revenue"]

_DAYS = {"7d": 7, "30d": 30, "90d": 90}


def period_range(period: str, start_date: str | None = None, end_date: str | None = None) -> tuple[datetime, datetime]:
    now = now_utc()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "today":
        return midnight, now
    if period == "yesterday":
        # Half-open: the store bounds are inclusive, so stop one microsecond short of midnight
        return midnight - timedelta(days=1), midnight - timedelta(microseconds=1)
    if period == "custom":
        if not start_date:
            raise ValidationError(["startDate is required for a custom period"])
        start = parse_datetime(start_date, "startDate")
        end = parse_datetime(end_date, "endDate") if end_date else now
        if end < start:
            raise ValidationError(["endDate must not be before startDate"])
        return start, end
    return now - timedelta(days=_DAYS[period]), now


def event_info(event: AnalyticsEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "event": event.event,
        "category": event.category,
        "properties": dict(event.properties),
        "url": event.url,
        "userId": event.user_id,
        "sessionId": event.session_id,
        "timestamp": iso(event.timestamp),
    }


async def _record(ctx: HandlerContext, event: AnalyticsEvent) -> dict[str, Any]:
    saved = await ctx.store.analytics.create(event)
    logger.debug("analytics: %s recorded as %s", saved.event, saved.id)
    return {"eventId": saved.id, "event": saved.event, "timestamp": iso(saved.timestamp)}


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def track_event(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    properties = dict(args.get("properties") or {})
    recorded = await _record(
        ctx,
        AnalyticsEvent(
            event=args["event"],
            category=args["category"],
            properties=properties,
            url=properties.get("url"),
            referrer=properties.get("referrer"),
            user_agent=properties.get("userAgent"),
            user_id=args.get("userId"),
            session_id=args.get("sessionId"),
        ),
    )
    return {**recorded, "message": f"Tracked {args['event']}"}


async def track_page_view(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    recorded = await _record(
        ctx,
        AnalyticsEvent(
            event="page_view",
            category="navigation",
            properties={"title": args.get("title")},
            url=args["url"],
            referrer=args.get("referrer"),
            user_id=args.get("userId"),
            session_id=args.get("sessionId"),
        ),
    )
    return {**recorded, "message": f"Tracked page view of {args['url']}"}


async def track_purchase(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    items = args.get("items") or []
    recorded = await _record(
        ctx,
        AnalyticsEvent(
            event="purchase",
            category="ecommerce",
            properties={
                "orderId": args["orderId"],
                "total": args["total"],
                "currency": args["currency"],
                "itemCount": sum(i.get("quantity", 1) for i in items),
                "items": items,
            },
            user_id=args.get("userId"),
            session_id=args.get("sessionId"),
        ),
    )
    return {**recorded, "message": f"Tracked purchase for order {args['orderId']}"}


async def track_add_to_cart(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    price = args.get("price")
    quantity = args["quantity"]
    recorded = await _record(
        ctx,
        AnalyticsEvent(
            event="add_to_cart",
            category="ecommerce",
            properties={
                "productId": args["productId"],
                "variantId": args.get("variantId"),
                "productName": args.get("productName"),
                "price": price,
                "quantity": quantity,
                "currency": args["currency"],
                "value": price * quantity if price is not None else None,
            },
            user_id=args.get("userId"),
            session_id=args.get("sessionId"),
        ),
    )
    return {**recorded, "message": f"Tracked add to cart of {args['productId']}"}


async def get_events(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    events, total = await ctx.store.analytics.list(
        event=args.get("event"),
        category=args.get("category"),
        user_id=args.get("userId"),
        start=parse_datetime(args["startDate"], "startDate") if args.get("startDate") else None,
        end=parse_datetime(args["endDate"], "endDate") if args.get("endDate") else None,
        page=Page(page=1, limit=args["limit"]),
    )
    return {
        "events": [event_info(e) for e in events],
        "total": total,
        "message": f"{len(events)} of {total} event(s)",
    }


async def get_stats(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    """Only the requested metrics appear in `stats`."""
    start, end = period_range(args["period"], args.get("startDate"), args.get("endDate"))
    metrics = args["metrics"]
    summary = await ctx.store.analytics.summarize(start, end)

    available = {
        "pageViews": summary.page_views,
        "uniqueVisitors": summary.unique_visitors,
        "purchases": summary.purchases,
        "revenue": summary.revenue,
        "topPages": [{"url": url, "views": views} for url, views in summary.top_pages],
        "topEvents": [{"event": event, "count": count} for event, count in summary.top_events],
    }
    return {
        "period": args["period"],
        "startDate": iso(start),
        "endDate": iso(end),
        "stats": {m: available[m] for m in metrics},
        "message": f"{summary.page_views} page view(s), {summary.purchases} purchase(s)",
    }


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------

_VISITOR = {
    "userId": {"type": "string"},
    "sessionId": {"type": "string", "description": "Browser session; distinct sessions count as visitors"},
}
_CURRENCY = {"type": "string", "minLength": 3, "maxLength": 3, "default": "USD"}

ANALYTICS_PRIMITIVES: list[PrimitiveDefinition] = [
    PrimitiveDefinition(
        name="analytics.trackEvent",
        category=CATEGORY,
        description="Record a custom storefront event with free-form properties.",
        tags=frozenset({"analytics", "tracking", "event"}),
        icon="Activity",
        built_in=True,
        handler=track_event,
        input_schema={
            "type": "object",
            "properties": {
                "event": {"type": "string", "minLength": 1, "maxLength": 100},
                "category": {"type": "string", "default": "custom"},
                "properties": {"type": "object", "description": "url, referrer and userAgent are also stored as columns"},
                **_VISITOR,
            },
            "required": ["event"],
        },
    ),
    PrimitiveDefinition(
        name="analytics.trackPageView",
        category=CATEGORY,
        description="Record a page view.",
        tags=frozenset({"analytics", "tracking", "pageview"}),
        icon="Eye",
        built_in=True,
        handler=track_page_view,
        input_schema={
            "type": "object",
            "properties": {
                "url": {"type": "string", "minLength": 1},
                "title": {"type": "string"},
                "referrer": {"type": "string"},
                **_VISITOR,
            },
            "required": ["url"],
        },
    ),
    PrimitiveDefinition(
        name="analytics.trackPurchase",
        category=CATEGORY,
        description="Record a completed purchase. The total counts toward revenue.",
        tags=frozenset({"analytics", "tracking", "purchase", "e-commerce"}),
        icon="ShoppingBag",
        built_in=True,
        handler=track_purchase,
        input_schema={
            "type": "object",
            "properties": {
                "orderId": {"type": "string", "minLength": 1},
                "total": {"type": "integer", "minimum": 0, "description": "Order total in cents"},
                "currency": _CURRENCY,
                "items": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "productId": {"type": "string"},
                            "quantity": {"type": "integer", "minimum": 1},
                            "price": {"type": "integer", "minimum": 0},
                        },
                    },
                },
                **_VISITOR,
            },
            "required": ["orderId", "total"],
        },
    ),
    PrimitiveDefinition(
        name="analytics.trackAddToCart",
        category=CATEGORY,
        description="Record a product added to a cart.",
        tags=frozenset({"analytics", "tracking", "cart", "e-commerce"}),
        icon="ShoppingCart",
        built_in=True,
        handler=track_add_to_cart,
        input_schema={
            "type": "object",
            "properties": {
                "productId": {"type": "string", "minLength": 1},
                "variantId": {"type": "string"},
                "productName": {"type": "string"},
                "price": {"type": "integer", "minimum": 0, "description": "Unit price in cents"},
                "quantity": {"type": "integer", "minimum": 1, "default": 1},
                "currency": _CURRENCY,
                **_VISITOR,
            },
            "required": ["productId"],
        },
    ),
    PrimitiveDefinition(
        name="analytics.getEvents",
        category=CATEGORY,
        description="List recorded events, newest first.",
        tags=frozenset({"analytics", "events", "list"}),
        icon="List",
        timeout_ms=10_000,
        built_in=True,
        handler=get_events,
        input_schema={
            "type": "object",
            "properties": {
                "event": {"type": "string"},
                "category": {"type": "string"},
                "userId": {"type": "string"},
                "startDate": {"type": "string", "description": "ISO 8601, inclusive"},
                "endDate": {"type": "string", "description": "ISO 8601, inclusive"},
                "limit": {"type": "integer", "minimum": 1, "maximum": 200, "default": 50},
            },
        },
    ),
    PrimitiveDefinition(
        name="analytics.getStats",
        category=CATEGORY,
        description="Page views, visitors, purchases and revenue for a period.",
        tags=frozenset({"analytics", "stats", "report"}),
        icon="BarChart",
        timeout_ms=15_000,
        built_in=True,
        handler=get_stats,
        input_schema={
            "type": "object",
            "properties": {
                "period": {"type": "string", "enum": PERIODS, "default": "7d"},
                "startDate": {"type": "string", "description": "Required when period is custom"},
                "endDate": {"type": "string", "description": "Defaults to now"},
                "metrics": {
                    "type": "array",
                    "items": {"type": "string", "enum": METRICS},
                    "minItems": 1,
                    "default": DEFAULT_METRICS,
                },
            },
        },
    ),
]
