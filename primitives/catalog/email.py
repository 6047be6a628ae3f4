"""
Catalog: Email Primitives

Outbound sends plus the subscriber lifecycle:

    (new) ──subscribe──▶ PENDING ──confirm──▶ SUBSCRIBED
      │                     ▲                     │
      └──subscribe (no opt-in)───────────────────▶│
                            │                     │ unsubscribe (all lists)
                            └──subscribe── UNSUBSCRIBED ◀┘

Unsubscribing from some lists only shrinks the list set. The subscriber
becomes UNSUBSCRIBED only when no list is left.

Template sends fill {{merge.tags}} in the subject and bodies from `data`. A dotted
tag walks nested objects; a tag with no value renders empty. Values are
HTML-escaped in the HTML body only.

Double opt-in writes the PENDING record (with its token) before sending the
confirmation. If the send never happens, subscribing again re-sends it with
a fresh token.
"""

from __future__ import annotations

import html
import logging
import re
import secrets
from typing import Any

from primitives.catalog.common import normalize_email
from primitives.catalog.records import Subscriber, SubscriberStatus, iso, now_utc
from primitives.catalog.store import EmailMessage
from primitives.kernel.errors import DomainRuleViolation, NotFoundError, PrimitiveError, ValidationError
from primitives.kernel.types import CategoryDefaults, HandlerContext, PrimitiveDefinition

logger = logging.getLogger(__name__)

CATEGORY = "email"
DEFAULTS = CategoryDefaults(timeout_ms=30_000)

DEFAULT_LISTS = ["newsletter"]
FREQUENCIES = ["instant", "daily", "weekly", "monthly"]

MERGE_TAG = re.compile(r"\{\{\s*([\w.]+)\s*\}\}")


def new_confirmation_token() -> str:
    return secrets.token_hex(32)


def confirmation_link(site_url: str, token: str) -> str:
    return f"{site_url.rstrip('/')}/email/confirm?token={token}"


def subscriber_info(subscriber: Subscriber) -> dict[str, Any]:
    return {
        "id": subscriber.id,
        "email": subscriber.email,
        "firstName": subscriber.first_name,
        "lastName": subscriber.last_name,
        "status": subscriber.status.value,
        "lists": list(subscriber.lists),
        "preferences": dict(subscriber.preferences),
        "source": subscriber.source,
        "subscribedAt": iso(subscriber.subscribed_at),
        "unsubscribedAt": iso(subscriber.unsubscribed_at),
    }


def merge_value(data: dict[str, Any], path: str) -> str:
    value: Any = data
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return ""
        value = value[part]
    return "" if value is None else str(value)


def render_merge_tags(template: str, data: dict[str, Any], *, escape: bool = False) -> str:
    def replace(match: re.Match) -> str:
        value = merge_value(data, match.group(1))
        return html.escape(value) if escape else value

    return MERGE_TAG.sub(replace, template)


def format_address(email: str, name: str | None) -> str:
    return f"{name} <{email}>" if name else email


def _require_mailer(ctx: HandlerContext):
    if ctx.mailer is None:
        raise RuntimeError("no email sender is configured")
    return ctx.mailer


async def _send_confirmation(ctx: HandlerContext, subscriber: Subscriber) -> bool:
    link = confirmation_link(ctx.site_url, subscriber.confirmation_token)
    greeting = f"Hi {subscriber.first_name}," if subscriber.first_name else "Hi,"
    result = await _require_mailer(ctx).send(
        EmailMessage(
            to=subscriber.email,
            to_name=subscriber.first_name,
            subject="Please confirm your subscription",
            html=(
                f"<p>{greeting}</p>"
                "<p>Please confirm your subscription by clicking the link below.</p>"
                f'<p><a href="{link}">Confirm subscription</a></p>'
                "<p>If you didn't sign up, you can ignore this email.</p>"
            ),
            text=f"{greeting}\n\nConfirm your subscription: {link}\n\nIf you didn't sign up, ignore this email.",
        )
    )
    if not result.success:
        logger.warning("email: confirmation to subscriber %s failed: %s", subscriber.id, result.error)
    return result.success


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def send_email(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    """One send per recipient. Partial delivery is reported as a failure with per-recipient results."""
    if not args.get("html") and not args.get("text"):
        raise ValidationError(["Either html or text is required"])
    mailer = _require_mailer(ctx)

    recipients = [(normalize_email(r["email"], "to.email"), r.get("name")) for r in args["to"]]
    reply_to = normalize_email(args["replyTo"], "replyTo") if args.get("replyTo") else None

    results = []
    for address, name in recipients:
        sent = await mailer.send(
            EmailMessage(
                to=address,
                to_name=name,
                subject=args["subject"],
                html=args.get("html"),
                text=args.get("text"),
                reply_to=reply_to,
            )
        )
        results.append(
            {"email": address, "success": sent.success, "messageId": sent.message_id, "error": sent.error}
        )

    failed = [r["email"] for r in results if not r["success"]]
    data = {"sent": len(results) - len(failed), "failed": len(failed), "results": results}
    if failed:
        raise PrimitiveError(
            f"{len(failed)} of {len(results)} emails could not be sent ({', '.join(failed)}).",
            data=data,
        )
    return {**data, "message": f"Sent {len(results)} email(s)"}


async def send_template(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    template = await ctx.store.email_templates.get(args["templateId"])
    if template is None:
        raise NotFoundError("Email template not found")
    if not template.is_active:
        raise DomainRuleViolation("Email template is not active")
    mailer = _require_mailer(ctx)

    data = args.get("data") or {}
    to = normalize_email(args["to"]["email"], "to.email")
    sender = args.get("from")
    sent = await mailer.send(
        EmailMessage(
            to=to,
            to_name=args["to"].get("name"),
            subject=render_merge_tags(template.subject, data),
            html=render_merge_tags(template.html_content, data, escape=True) if template.html_content else None,
            text=render_merge_tags(template.text_content, data) if template.text_content else None,
            from_address=(
                format_address(normalize_email(sender["email"], "from.email"), sender.get("name")) if sender else None
            ),
        )
    )

    result = {"email": to, "messageId": sent.message_id, "template": template.name}
    if not sent.success:
        raise PrimitiveError(f"The {template.name} email to {to} could not be sent.", data={**result, "error": sent.error})
    return {**result, "message": f"Sent {template.name} to {to}"}


async def subscribe(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    email = normalize_email(args["email"])
    double_opt_in = args["requireDoubleOptIn"]
    lists = args.get("lists") or list(DEFAULT_LISTS)
    if double_opt_in:
        _require_mailer(ctx)

    store = ctx.store.subscribers
    now = now_utc()
    existing = await store.get_by_email(email)

    if existing is not None and existing.status == SubscriberStatus.SUBSCRIBED:
        return {
            "alreadySubscribed": True,
            "requiresConfirmation": False,
            "subscriber": subscriber_info(existing),
            "message": "Already subscribed",
        }

    status = SubscriberStatus.PENDING if double_opt_in else SubscriberStatus.SUBSCRIBED
    token = new_confirmation_token() if double_opt_in else None

    if existing is None:
        subscriber = await store.create(
            Subscriber(
                email=email,
                first_name=args.get("firstName"),
                last_name=args.get("lastName"),
                status=status,
                lists=lists,
                source=args.get("source") or "api",
                confirmation_token=token,
                subscribed_at=None if double_opt_in else now,
            )
        )
    else:
        # PENDING or UNSUBSCRIBED: start over with the requested lists
        subscriber = await store.update(
            existing.model_copy(
                update={
                    "status": status,
                    "first_name": args.get("firstName") or existing.first_name,
                    "last_name": args.get("lastName") or existing.last_name,
                    "lists": lists,
                    "source": args.get("source") or existing.source,
                    "confirmation_token": token,
                    "subscribed_at": None if double_opt_in else now,
                    "unsubscribed_at": None,
                    "unsubscribe_reason": None,
                }
            )
        )

    if double_opt_in:
        sent = await _send_confirmation(ctx, subscriber)
        return {
            "alreadySubscribed": False,
            "requiresConfirmation": True,
            "confirmationSent": sent,
            "subscriber": subscriber_info(subscriber),
            "message": (
                "Confirmation email sent"
                if sent
                else "Subscription saved, but the confirmation email could not be sent. Please try again later."
            ),
        }

    return {
        "alreadySubscribed": False,
        "requiresConfirmation": False,
        "subscriber": subscriber_info(subscriber),
        "message": "Subscribed successfully",
    }


async def confirm(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    store = ctx.store.subscribers
    subscriber = await store.get_by_token(args["token"])
    if subscriber is None:
        raise NotFoundError("Invalid or expired confirmation link")

    if subscriber.status == SubscriberStatus.SUBSCRIBED:
        return {"alreadyConfirmed": True, "subscriber": subscriber_info(subscriber), "message": "Already confirmed"}

    confirmed = await store.update(
        subscriber.model_copy(
            update={
                "status": SubscriberStatus.SUBSCRIBED,
                "confirmation_token": None,
                "subscribed_at": now_utc(),
                "unsubscribed_at": None,
            }
        )
    )
    return {"alreadyConfirmed": False, "subscriber": subscriber_info(confirmed), "message": "Subscription confirmed"}


async def unsubscribe(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    store = ctx.store.subscribers
    email = normalize_email(args["email"])
    subscriber = await store.get_by_email(email)
    if subscriber is None:
        raise NotFoundError("This email address is not on any list")

    leaving = args.get("lists") or []
    if leaving:
        remaining = [name for name in subscriber.lists if name not in leaving]
        if remaining:
            updated = await store.update(subscriber.model_copy(update={"lists": remaining}))
            return {
                "fullyUnsubscribed": False,
                "subscriber": subscriber_info(updated),
                "message": f"Unsubscribed from {', '.join(leaving)}",
            }

    if subscriber.status == SubscriberStatus.UNSUBSCRIBED:
        return {"fullyUnsubscribed": True, "subscriber": subscriber_info(subscriber), "message": "Already unsubscribed"}

    updated = await store.update(
        subscriber.model_copy(
            update={
                "status": SubscriberStatus.UNSUBSCRIBED,
                "lists": [],
                "unsubscribed_at": now_utc(),
                "unsubscribe_reason": args.get("reason"),
                "confirmation_token": None,
            }
        )
    )
    return {"fullyUnsubscribed": True, "subscriber": subscriber_info(updated), "message": "Unsubscribed successfully"}


async def update_preferences(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    store = ctx.store.subscribers
    subscriber = await store.get_by_email(normalize_email(args["email"]))
    if subscriber is None:
        raise NotFoundError("Subscriber not found")

    changes: dict[str, Any] = {}
    if "lists" in args:
        changes["lists"] = list(args["lists"])
    if "frequency" in args:
        changes["preferences"] = {**subscriber.preferences, "frequency": args["frequency"]}
    if "firstName" in args:
        changes["first_name"] = args["firstName"]
    if "lastName" in args:
        changes["last_name"] = args["lastName"]

    if not changes:
        return {"subscriber": subscriber_info(subscriber), "message": "Nothing to update"}

    updated = await store.update(subscriber.model_copy(update=changes))
    return {"subscriber": subscriber_info(updated), "message": "Preferences updated"}


async def get_subscription_status(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    email = normalize_email(args["email"])
    subscriber = await ctx.store.subscribers.get_by_email(email)
    if subscriber is None:
        return {"subscribed": False, "status": "NOT_FOUND", "message": f"{email} is not subscribed"}
    return {
        "subscribed": subscriber.status == SubscriberStatus.SUBSCRIBED,
        "status": subscriber.status.value,
        "subscriber": subscriber_info(subscriber),
        "message": f"{email} is {subscriber.status.value.lower()}",
    }


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------

_EMAIL = {"type": "string", "minLength": 3, "description": "Email address"}
_LISTS = {"type": "array", "items": {"type": "string", "minLength": 1}}

EMAIL_PRIMITIVES: list[PrimitiveDefinition] = [
    PrimitiveDefinition(
        name="email.send",
        category=CATEGORY,
        description="Send an email to one or more recipients.",
        tags=frozenset({"email", "send", "notification"}),
        icon="Mail",
        built_in=True,
        handler=send_email,
        input_schema={
            "type": "object",
            "properties": {
                "to": {
                    "type": "array",
                    "minItems": 1,
                    "items": {
                        "type": "object",
                        "properties": {"email": _EMAIL, "name": {"type": "string"}},
                        "required": ["email"],
                    },
                },
                "subject": {"type": "string", "minLength": 1},
                "html": {"type": "string"},
                "text": {"type": "string"},
                "replyTo": {"type": "string", "description": "Reply-to address"},
            },
            "required": ["to", "subject"],
        },
    ),
    PrimitiveDefinition(
        name="email.sendTemplate",
        category=CATEGORY,
        description="Send a saved email template to one recipient, filling its merge tags from data.",
        tags=frozenset({"email", "template", "merge-tags"}),
        icon="FileText",
        built_in=True,
        handler=send_template,
        input_schema={
            "type": "object",
            "properties": {
                "templateId": {"type": "string", "minLength": 1},
                "to": {
                    "type": "object",
                    "properties": {"email": _EMAIL, "name": {"type": "string"}},
                    "required": ["email"],
                },
                "data": {"type": "object", "description": "Merge tag values, e.g. {\"firstName\": \"Ann\"}"},
                "from": {
                    "type": "object",
                    "properties": {"email": _EMAIL, "name": {"type": "string"}},
                    "required": ["email"],
                },
            },
            "required": ["templateId", "to"],
        },
    ),
    PrimitiveDefinition(
        name="email.subscribe",
        category=CATEGORY,
        description="Subscribe an email address to mailing lists, with optional double opt-in.",
        tags=frozenset({"email", "subscribe", "newsletter"}),
        icon="UserPlus",
        timeout_ms=15_000,
        built_in=True,
        handler=subscribe,
        input_schema={
            "type": "object",
            "properties": {
                "email": _EMAIL,
                "firstName": {"type": "string"},
                "lastName": {"type": "string"},
                "lists": {**_LISTS, "description": "Lists to join (default: newsletter)"},
                "source": {"type": "string", "description": "Where the signup came from"},
                "requireDoubleOptIn": {"type": "boolean", "default": True},
            },
            "required": ["email"],
        },
    ),
    PrimitiveDefinition(
        name="email.confirm",
        category=CATEGORY,
        description="Confirm a pending subscription with the token from the confirmation email.",
        tags=frozenset({"email", "subscribe", "confirm"}),
        icon="MailCheck",
        timeout_ms=10_000,
        built_in=True,
        handler=confirm,
        input_schema={
            "type": "object",
            "properties": {"token": {"type": "string", "minLength": 1}},
            "required": ["token"],
        },
    ),
    PrimitiveDefinition(
        name="email.unsubscribe",
        category=CATEGORY,
        description="Unsubscribe from some lists, or from everything when no lists are given.",
        tags=frozenset({"email", "unsubscribe"}),
        icon="UserMinus",
        timeout_ms=10_000,
        built_in=True,
        handler=unsubscribe,
        input_schema={
            "type": "object",
            "properties": {
                "email": _EMAIL,
                "reason": {"type": "string"},
                "lists": {**_LISTS, "description": "Lists to leave (default: all)"},
            },
            "required": ["email"],
        },
    ),
    PrimitiveDefinition(
        name="email.updatePreferences",
        category=CATEGORY,
        description="Update a subscriber's lists, frequency or name.",
        tags=frozenset({"email", "preferences", "settings"}),
        icon="Settings",
        timeout_ms=10_000,
        built_in=True,
        handler=update_preferences,
        input_schema={
            "type": "object",
            "properties": {
                "email": _EMAIL,
                "lists": _LISTS,
                "frequency": {"type": "string", "enum": FREQUENCIES},
                "firstName": {"type": "string"},
                "lastName": {"type": "string"},
            },
            "required": ["email"],
        },
    ),
    PrimitiveDefinition(
        name="email.getSubscriptionStatus",
        category=CATEGORY,
        description="Get the subscription status of an email address.",
        tags=frozenset({"email", "status", "subscription"}),
        icon="Info",
        timeout_ms=5_000,
        built_in=True,
        handler=get_subscription_status,
        input_schema={
            "type": "object",
            "properties": {"email": _EMAIL},
            "required": ["email"],
        },
    ),
]
