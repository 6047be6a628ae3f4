"""Catalog: Notification Primitives. A notification is only visible to its userId."""

from __future__ import annotations

from typing import Any

from primitives.catalog.common import PAGE_PROPERTIES, page_from
from primitives.catalog.records import Notification, NotificationPreferences, NotificationType, iso, now_utc
from primitives.kernel.errors import NotFoundError
from primitives.kernel.types import CategoryDefaults, HandlerContext, PrimitiveDefinition

CATEGORY = "notification"
DEFAULTS = CategoryDefaults(timeout_ms=5_000)

NOT_FOUND = "Notification not found"

# argument name → NotificationPreferences field
PREFERENCE_FIELDS = {
    "orderUpdates": "order_updates",
    "shippingUpdates": "shipping_updates",
    "promotions": "promotions",
    "priceDrops": "price_drops",
    "backInStock": "back_in_stock",
    "reviewReminders": "review_reminders",
    "emailNotifications": "email_notifications",
    "pushNotifications": "push_notifications",
}


def notification_info(n: Notification) -> dict[str, Any]:
    return {
        "id": n.id,
        "type": n.type.value,
        "title": n.title,
        "message": n.message,
        "data": dict(n.data),
        "actionUrl": n.action_url,
        "imageUrl": n.image_url,
        "read": n.read_at is not None,
        "readAt": iso(n.read_at),
        "createdAt": iso(n.created_at),
    }


def _type(args: dict[str, Any]) -> NotificationType | None:
    return NotificationType(args["type"]) if args.get("type") else None


async def list_notifications(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    store = ctx.store.notifications
    page = page_from(args)
    user_id = args["userId"]

    items, total = await store.list(user_id, type=_type(args), unread_only=args["unreadOnly"], page=page)
    unread = await store.count_unread(user_id)
    return {
        "notifications": [notification_info(n) for n in items],
        "unreadCount": unread,
        "pagination": page.meta(total),
        "message": f"{total} notification(s), {unread} unread",
    }


async def get_unread_count(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    count = await ctx.store.notifications.count_unread(args["userId"])
    return {"userId": args["userId"], "unreadCount": count, "message": f"{count} unread notification(s)"}


async def mark_read(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    store = ctx.store.notifications
    user_id, notification_id = args["userId"], args["notificationId"]

    notification = await store.get(user_id, notification_id)
    if notification is None:
        raise NotFoundError(NOT_FOUND)
    if notification.read_at is not None:
        return {"id": notification_id, "alreadyRead": True, "message": "Notification was already read"}

    await store.mark_read(user_id, notification_id, now_utc())
    return {"id": notification_id, "alreadyRead": False, "message": "Notification marked as read"}


async def mark_all_read(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    notification_type = _type(args)
    count = await ctx.store.notifications.mark_all_read(args["userId"], now_utc(), type=notification_type)
    return {
        "markedAsRead": count,
        "userId": args["userId"],
        "type": notification_type.value if notification_type else "all",
        "message": f"Marked {count} notification(s) as read",
    }


async def delete_notification(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    deleted = await ctx.store.notifications.delete(args["userId"], args["notificationId"])
    if not deleted:
        raise NotFoundError(NOT_FOUND)
    return {"deleted": True, "notificationId": args["notificationId"], "message": "Notification deleted"}


async def create_notification(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    notification = await ctx.store.notifications.create(
        Notification(
            user_id=args["userId"],
            type=NotificationType(args["type"]),
            title=args["title"],
            message=args["message"],
            data=args.get("data", {}),
            action_url=args.get("actionUrl"),
            image_url=args.get("imageUrl"),
        )
    )
    return {
        "notification": notification_info(notification),
        "message": f"Notification '{notification.title}' created",
    }


def preferences_info(preferences: NotificationPreferences) -> dict[str, bool]:
    return {key: getattr(preferences, field) for key, field in PREFERENCE_FIELDS.items()}


async def get_preferences(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    saved = await ctx.store.notifications.get_preferences(args["userId"])
    return {
        "userId": args["userId"],
        "preferences": preferences_info(saved or NotificationPreferences()),
        "isDefault": saved is None,
    }


async def update_preferences(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    """Merge: only the flags passed change; everything else keeps its saved (or default) value."""
    store = ctx.store.notifications
    user_id = args["userId"]
    current = await store.get_preferences(user_id) or NotificationPreferences()
    changes = {field: args[key] for key, field in PREFERENCE_FIELDS.items() if key in args}

    saved = await store.save_preferences(user_id, current.model_copy(update=changes))
    return {
        "userId": user_id,
        "preferences": preferences_info(saved),
        "updated": sorted(key for key in PREFERENCE_FIELDS if key in args),
        "message": "Notification preferences updated" if changes else "Nothing to update",
    }


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------

_USER = {"type": "string", "minLength": 1, "description": "Recipient user ID"}
_NOTIFICATION = {"type": "string", "minLength": 1, "description": "Notification ID"}
_TYPE = {"type": "string", "enum": [t.value for t in NotificationType]}

NOTIFICATION_PRIMITIVES: list[PrimitiveDefinition] = [
    PrimitiveDefinition(
        name="notification.list",
        category=CATEGORY,
        description="List a user's notifications, newest first.",
        tags=frozenset({"notification", "user", "alerts"}),
        icon="Bell",
        built_in=True,
        handler=list_notifications,
        input_schema={
            "type": "object",
            "properties": {
                "userId": _USER,
                "type": _TYPE,
                "unreadOnly": {"type": "boolean", "default": False},
                **PAGE_PROPERTIES,
            },
            "required": ["userId"],
        },
    ),
    PrimitiveDefinition(
        name="notification.getUnreadCount",
        category=CATEGORY,
        description="Count a user's unread notifications.",
        tags=frozenset({"notification", "count", "badge"}),
        icon="Hash",
        timeout_ms=2_000,
        built_in=True,
        handler=get_unread_count,
        input_schema={"type": "object", "properties": {"userId": _USER}, "required": ["userId"]},
    ),
    PrimitiveDefinition(
        name="notification.markRead",
        category=CATEGORY,
        description="Mark one notification as read.",
        tags=frozenset({"notification", "read", "update"}),
        icon="CheckCircle",
        timeout_ms=3_000,
        built_in=True,
        handler=mark_read,
        input_schema={
            "type": "object",
            "properties": {"notificationId": _NOTIFICATION, "userId": _USER},
            "required": ["notificationId", "userId"],
        },
    ),
    PrimitiveDefinition(
        name="notification.markAllRead",
        category=CATEGORY,
        description="Mark all of a user's notifications as read, optionally only one type.",
        tags=frozenset({"notification", "read", "bulk"}),
        icon="CheckCheck",
        built_in=True,
        handler=mark_all_read,
        input_schema={
            "type": "object",
            "properties": {"userId": _USER, "type": _TYPE},
            "required": ["userId"],
        },
    ),
    PrimitiveDefinition(
        name="notification.delete",
        category=CATEGORY,
        description="Delete one of a user's notifications.",
        tags=frozenset({"notification", "delete"}),
        icon="Trash2",
        timeout_ms=3_000,
        built_in=True,
        handler=delete_notification,
        input_schema={
            "type": "object",
            "properties": {"notificationId": _NOTIFICATION, "userId": _USER},
            "required": ["notificationId", "userId"],
        },
    ),
    PrimitiveDefinition(
        name="notification.create",
        category=CATEGORY,
        description="Create a notification for a user.",
        tags=frozenset({"notification", "create", "admin"}),
        icon="BellPlus",
        built_in=True,
        handler=create_notification,
        input_schema={
            "type": "object",
            "properties": {
                "userId": _USER,
                "type": _TYPE,
                "title": {"type": "string", "minLength": 1, "maxLength": 200},
                "message": {"type": "string", "minLength": 1, "maxLength": 1000},
                "actionUrl": {"type": "string"},
                "imageUrl": {"type": "string"},
                "data": {"type": "object"},
            },
            "required": ["userId", "type", "title", "message"],
        },
    ),
    PrimitiveDefinition(
        name="notification.getPreferences",
        category=CATEGORY,
        description="Get a user's notification preferences, defaults included.",
        tags=frozenset({"notification", "preferences", "settings"}),
        icon="Settings",
        timeout_ms=3_000,
        built_in=True,
        handler=get_preferences,
        input_schema={"type": "object", "properties": {"userId": _USER}, "required": ["userId"]},
    ),
    PrimitiveDefinition(
        name="notification.updatePreferences",
        category=CATEGORY,
        description="Turn individual notification kinds and channels on or off for a user.",
        tags=frozenset({"notification", "preferences", "settings", "update"}),
        icon="SlidersHorizontal",
        built_in=True,
        handler=update_preferences,
        input_schema={
            "type": "object",
            "properties": {"userId": _USER, **{key: {"type": "boolean"} for key in PREFERENCE_FIELDS}},
            "required": ["userId"],
        },
    ),
]
