"""
Catalog: Store Interfaces

The persistence collaborator the catalog handlers depend on. Every handler
receives a Store bound to one tenant through HandlerContext.store; the
handlers never hold records between calls.

Implement with Postgres for production (cms.store.PostgresStore), or
in-memory for tests and local runs (primitives.catalog.memory.MemoryStore).
Each method is its own unit of consistency: a handler that needs several
writes issues them in an order that leaves valid data if it stops early.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from primitives.catalog.records import (
    AnalyticsEvent,
    Cart,
    Checkout,
    Discount,
    DiscountType,
    DiscountUsage,
    EmailTemplate,
    Media,
    MediaFolder,
    Notification,
    NotificationPreferences,
    NotificationType,
    Order,
    OrderStatus,
    Product,
    ProductCategory,
    ProductStatus,
    ProductVariant,
    Subscriber,
)

# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Page:
    """1-based page math shared by every list primitive."""

    page: int = 1
    limit: int = 20

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def meta(self, total: int) -> dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": total,
            "totalPages": math.ceil(total / self.limit) if self.limit else 0,
            "hasNext": self.page * self.limit < total,
            "hasPrev": self.page > 1,
        }


# ---------------------------------------------------------------------------
# Media kinds
# ---------------------------------------------------------------------------

DOCUMENT_MIME_PREFIXES = (
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats",
    "text/",
)


def media_kind(mime_type: str) -> str:
    """image | video | audio | document | other"""
    for kind in ("image", "video", "audio"):
        if mime_type.startswith(f"{kind}/"):
            return kind
    if mime_type.startswith(DOCUMENT_MIME_PREFIXES):
        return "document"
    return "other"


# ---------------------------------------------------------------------------
# Entity stores
# ---------------------------------------------------------------------------


class DiscountStore:
    async def get(self, discount_id: str) -> Discount | None:
        raise NotImplementedError

    async def get_by_code(self, code: str) -> Discount | None:
        """Look up by code. Callers pass the code upper-cased."""
        raise NotImplementedError

    async def list(
        self,
        *,
        enabled: bool | None = None,
        type: DiscountType | None = None,
        active_at: datetime | None = None,
        page: Page = Page(),
    ) -> tuple[list[Discount], int]:
        """Newest first. `active_at` keeps only discounts in the active state at that instant."""
        raise NotImplementedError

    async def create(self, discount: Discount) -> Discount:
        raise NotImplementedError

    async def count_customer_usages(
        self,
        discount_id: str,
        *,
        customer_id: str | None = None,
        email: str | None = None,
    ) -> int:
        """Usages of a discount matching the customer id OR the email."""
        raise NotImplementedError

    async def list_usages(self, discount_id: str, limit: int = 50) -> list[DiscountUsage]:
        raise NotImplementedError


class CheckoutStore:
    """Orders and carts: both carry totals a discount can rewrite."""

    async def get(self, record_id: str) -> Checkout | None:
        raise NotImplementedError

    async def set_discount(
        self,
        record_id: str,
        *,
        discount_id: str | None,
        code: str | None,
        discount_total: int,
        total: int,
    ) -> Checkout | None:
        """Overwrite the discount fields and total in one write. Returns None if missing."""
        raise NotImplementedError


class OrderStore(CheckoutStore):
    async def get(self, record_id: str) -> Order | None:
        raise NotImplementedError

    async def count_for_customer(
        self,
        *,
        customer_id: str | None = None,
        email: str | None = None,
        exclude_statuses: tuple[OrderStatus, ...] = (OrderStatus.CANCELLED,),
    ) -> int:
        """Orders placed by the customer id OR the email, ignoring the given statuses."""
        raise NotImplementedError

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
        """`email` is a case-insensitive substring match; the date bounds are inclusive."""
        raise NotImplementedError

    async def update_status(self, order_id: str, status: OrderStatus, *, note: str | None = None) -> Order | None:
        """Set the status and append `note` as a new line of internal_notes, in one write."""
        raise NotImplementedError


class CartStore(CheckoutStore):
    async def get(self, record_id: str) -> Cart | None:
        raise NotImplementedError


class ProductStore:
    async def get(self, product_id: str) -> Product | None:
        """Non-deleted product by id."""
        raise NotImplementedError

    async def get_by_slug(self, slug: str) -> Product | None:
        raise NotImplementedError

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
        """Non-deleted products. sort_by "featured" puts featured products first, newest first within each group."""
        raise NotImplementedError

    async def search(
        self,
        query: str,
        *,
        category_id: str | None = None,
        min_price: int | None = None,
        max_price: int | None = None,
        page: Page = Page(),
    ) -> tuple[list[Product], int]:
        """Active products whose name or description contains `query` (case-insensitive)."""
        raise NotImplementedError

    async def list_variants(self, product_id: str, *, min_stock: int | None = None) -> list[ProductVariant]:
        """Non-deleted variants in display order, optionally only those with stock >= min_stock."""
        raise NotImplementedError

    async def get_variant(self, product_id: str, variant_id: str) -> ProductVariant | None:
        raise NotImplementedError

    async def adjust_stock(self, variant_id: str, delta: int) -> bool:
        """Add `delta` to a variant's stock in one write. False if the variant is missing."""
        raise NotImplementedError

    async def list_categories(self, parent_id: str | None = None) -> list[ProductCategory]:
        """Children of `parent_id` (root categories when None), in display order."""
        raise NotImplementedError

    async def get_category(self, category_id: str) -> ProductCategory | None:
        raise NotImplementedError

    async def get_category_by_slug(self, slug: str) -> ProductCategory | None:
        raise NotImplementedError

    async def count_active(self, category_ids: Sequence[str]) -> dict[str, int]:
        """Active, non-deleted products per category id. Ids with none are left out."""
        raise NotImplementedError


class SubscriberStore:
    async def get_by_email(self, email: str) -> Subscriber | None:
        """Callers pass the normalised (trimmed, lower-case) address."""
        raise NotImplementedError

    async def get_by_token(self, token: str) -> Subscriber | None:
        raise NotImplementedError

    async def create(self, subscriber: Subscriber) -> Subscriber:
        raise NotImplementedError

    async def update(self, subscriber: Subscriber) -> Subscriber:
        """Write every field of an existing subscriber."""
        raise NotImplementedError


class EmailTemplateStore:
    async def get(self, template_id: str) -> EmailTemplate | None:
        raise NotImplementedError


class NotificationStore:
    async def list(
        self,
        user_id: str,
        *,
        type: NotificationType | None = None,
        unread_only: bool = False,
        page: Page = Page(),
    ) -> tuple[list[Notification], int]:
        raise NotImplementedError

    async def count_unread(self, user_id: str) -> int:
        raise NotImplementedError

    async def get(self, user_id: str, notification_id: str) -> Notification | None:
        """Only returns the notification if it belongs to `user_id`."""
        raise NotImplementedError

    async def mark_read(self, user_id: str, notification_id: str, at: datetime) -> None:
        raise NotImplementedError

    async def mark_all_read(self, user_id: str, at: datetime, *, type: NotificationType | None = None) -> int:
        """Returns how many were unread and are now read."""
        raise NotImplementedError

    async def delete(self, user_id: str, notification_id: str) -> bool:
        raise NotImplementedError

    async def create(self, notification: Notification) -> Notification:
        raise NotImplementedError

    async def get_preferences(self, user_id: str) -> NotificationPreferences | None:
        """None when the user never saved any."""
        raise NotImplementedError

    async def save_preferences(self, user_id: str, preferences: NotificationPreferences) -> NotificationPreferences:
        raise NotImplementedError


class MediaStore:
    async def list(
        self,
        *,
        kind: str | None = None,
        folder_id: str | None = None,
        search: str | None = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
        page: Page = Page(),
    ) -> tuple[list[Media], int]:
        """Non-deleted files. `kind` filters by media_kind(mime_type)."""
        raise NotImplementedError

    async def get(self, media_id: str, *, include_deleted: bool = False) -> Media | None:
        raise NotImplementedError

    async def update(self, media_id: str, changes: dict[str, Any]) -> Media | None:
        """Apply `changes` (record field names) to a non-deleted file."""
        raise NotImplementedError

    async def soft_delete(self, media_id: str, at: datetime) -> None:
        raise NotImplementedError

    async def delete(self, media_id: str) -> None:
        raise NotImplementedError

    async def list_folders(self, parent_id: str | None = None) -> list[MediaFolder]:
        """Children of `parent_id` (root folders when None), by name."""
        raise NotImplementedError

    async def get_folder(self, folder_id: str) -> MediaFolder | None:
        raise NotImplementedError

    async def find_folder(self, name: str, parent_id: str | None) -> MediaFolder | None:
        """The folder called `name` directly under `parent_id`."""
        raise NotImplementedError

    async def create_folder(self, folder: MediaFolder) -> MediaFolder:
        raise NotImplementedError

    async def count_files(self, folder_ids: Sequence[str]) -> dict[str, int]:
        """Non-deleted files per folder id. Ids with none are left out."""
        raise NotImplementedError

    async def folders_with_children(self, folder_ids: Sequence[str]) -> set[str]:
        raise NotImplementedError


@dataclass
class AnalyticsSummary:
    """Aggregates over one time window. Top lists are (key, count), largest first."""

    page_views: int = 0
    unique_visitors: int = 0
    purchases: int = 0
    revenue: int = 0
    top_pages: list[tuple[str, int]] = field(default_factory=list)
    top_events: list[tuple[str, int]] = field(default_factory=list)


class AnalyticsStore:
    async def create(self, event: AnalyticsEvent) -> AnalyticsEvent:
        raise NotImplementedError

    async def list(
        self,
        *,
        event: str | None = None,
        category: str | None = None,
        user_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: Page = Page(),
    ) -> tuple[list[AnalyticsEvent], int]:
        """Newest first. Both bounds are inclusive."""
        raise NotImplementedError

    async def summarize(self, start: datetime, end: datetime, *, top: int = 10) -> AnalyticsSummary:
        """
        page_views counts "page_view" events and unique_visitors their distinct
        session ids. purchases counts "purchase" events and revenue sums their
        integer `total` property.
        """
        raise NotImplementedError


class Store:
    """Everything a handler can reach, already bound to one tenant."""

    def __init__(
        self,
        *,
        discounts: DiscountStore,
        orders: OrderStore,
        carts: CartStore,
        products: ProductStore,
        subscribers: SubscriberStore,
        notifications: NotificationStore,
        media: MediaStore,
        email_templates: EmailTemplateStore,
        analytics: AnalyticsStore,
    ) -> None:
        self.discounts = discounts
        self.orders = orders
        self.carts = carts
        self.products = products
        self.subscribers = subscribers
        self.notifications = notifications
        self.media = media
        self.email_templates = email_templates
        self.analytics = analytics


# ---------------------------------------------------------------------------
# Outbound email
# ---------------------------------------------------------------------------


@dataclass
class EmailMessage:
    to: str
    subject: str
    html: str | None = None
    text: str | None = None
    to_name: str | None = None
    reply_to: str | None = None
    from_address: str | None = None  # None → sender's configured default


@dataclass
class SendResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


class EmailSender:
    """
    Outbound mail. Reports failure in the result rather than raising.
    Retry policy, if any, belongs to the implementation.
    """

    async def send(self, message: EmailMessage) -> SendResult:
        raise NotImplementedError
