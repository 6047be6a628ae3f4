"""In-memory store and mail sender for tests, local runs and demos."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
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
    new_id,
    now_utc,
)
from primitives.catalog.store import (
    AnalyticsStore,
    AnalyticsSummary,
    CartStore,
    DiscountStore,
    EmailMessage,
    EmailSender,
    EmailTemplateStore,
    MediaStore,
    NotificationStore,
    OrderStore,
    Page,
    ProductStore,
    SendResult,
    Store,
    SubscriberStore,
    media_kind,
)

# camelCase sort keys accepted by the list primitives → record attributes
SORT_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "name": "name",
    "price": "base_price",
    "size": "size",
    "total": "total",
    "orderNumber": "order_number",
}


def _paginate(items: list, page: Page) -> tuple[list, int]:
    return items[page.offset : page.offset + page.limit], len(items)


def _sorted(items: list, sort_by: str, sort_order: str) -> list:
    if sort_by == "featured":
        newest = sorted(items, key=lambda r: r.created_at, reverse=True)
        return sorted(newest, key=lambda r: not r.featured)
    attr = SORT_FIELDS.get(sort_by, "created_at")
    # None orders like SQL NULL: last ascending, first descending
    return sorted(items, key=lambda r: (getattr(r, attr) is None, getattr(r, attr)), reverse=sort_order == "desc")


def _copy(record):
    return record.model_copy(deep=True) if record is not None else None


# ---------------------------------------------------------------------------
# Entity stores
# ---------------------------------------------------------------------------


class MemoryDiscountStore(DiscountStore):
    def __init__(self) -> None:
        self.discounts: dict[str, Discount] = {}
        self.usages: list[DiscountUsage] = []

    def add(self, discount: Discount) -> Discount:
        self.discounts[discount.id] = discount
        return discount

    def add_usage(self, usage: DiscountUsage) -> DiscountUsage:
        self.usages.append(usage)
        return usage

    async def get(self, discount_id: str) -> Discount | None:
        return _copy(self.discounts.get(discount_id))

    async def get_by_code(self, code: str) -> Discount | None:
        for d in self.discounts.values():
            if d.code == code:
                return _copy(d)
        return None

    async def list(
        self,
        *,
        enabled: bool | None = None,
        type: DiscountType | None = None,
        active_at: datetime | None = None,
        page: Page = Page(),
    ) -> tuple[list[Discount], int]:
        found = []
        for d in self.discounts.values():
            if enabled is not None and d.enabled != enabled:
                continue
            if type is not None and d.type != type:
                continue
            if active_at is not None and not _is_active(d, active_at):
                continue
            found.append(d)
        found.sort(key=lambda d: d.created_at, reverse=True)
        items, total = _paginate(found, page)
        return [_copy(d) for d in items], total

    async def create(self, discount: Discount) -> Discount:
        self.discounts[discount.id] = _copy(discount)
        return _copy(discount)

    async def count_customer_usages(
        self,
        discount_id: str,
        *,
        customer_id: str | None = None,
        email: str | None = None,
    ) -> int:
        return sum(
            1
            for u in self.usages
            if u.discount_id == discount_id
            and ((customer_id and u.user_id == customer_id) or (email and u.email == email))
        )

    async def list_usages(self, discount_id: str, limit: int = 50) -> list[DiscountUsage]:
        usages = [u for u in self.usages if u.discount_id == discount_id]
        usages.sort(key=lambda u: u.created_at, reverse=True)
        return [_copy(u) for u in usages[:limit]]


def _is_active(d: Discount, at: datetime) -> bool:
    return (
        d.enabled
        and d.starts_at <= at
        and (d.expires_at is None or d.expires_at > at)
        and (d.usage_limit is None or d.usage_count < d.usage_limit)
    )


class _MemoryCheckoutStore:
    def __init__(self) -> None:
        self.records: dict[str, Checkout] = {}

    def add(self, record):
        self.records[record.id] = record
        return record

    async def get(self, record_id: str):
        return _copy(self.records.get(record_id))

    async def set_discount(
        self,
        record_id: str,
        *,
        discount_id: str | None,
        code: str | None,
        discount_total: int,
        total: int,
    ):
        record = self.records.get(record_id)
        if record is None:
            return None
        record.discount_code_id = discount_id
        record.discount_code = code
        record.discount_total = discount_total
        record.total = total
        record.updated_at = now_utc()
        return _copy(record)


class MemoryOrderStore(_MemoryCheckoutStore, OrderStore):
    async def count_for_customer(
        self,
        *,
        customer_id: str | None = None,
        email: str | None = None,
        exclude_statuses: tuple[OrderStatus, ...] = (OrderStatus.CANCELLED,),
    ) -> int:
        count = 0
        for o in self.records.values():
            if o.status in exclude_statuses:
                continue
            if (customer_id and o.customer_id == customer_id) or (email and o.email == email):
                count += 1
        return count

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
        needle = email.lower() if email else None
        found = [
            o
            for o in self.records.values()
            if (customer_id is None or o.customer_id == customer_id)
            and (needle is None or needle in (o.email or "").lower())
            and (status is None or o.status == status)
            and (created_from is None or o.created_at >= created_from)
            and (created_to is None or o.created_at <= created_to)
        ]
        items, total = _paginate(_sorted(found, sort_by, sort_order), page)
        return [_copy(o) for o in items], total

    async def update_status(self, order_id: str, status: OrderStatus, *, note: str | None = None) -> Order | None:
        order = self.records.get(order_id)
        if order is None:
            return None
        order.status = status
        if note:
            order.internal_notes = f"{order.internal_notes}\n{note}" if order.internal_notes else note
        order.updated_at = now_utc()
        return _copy(order)


class MemoryCartStore(_MemoryCheckoutStore, CartStore):
    pass


class MemoryProductStore(ProductStore):
    def __init__(self) -> None:
        self.products: dict[str, Product] = {}
        self.variants: dict[str, ProductVariant] = {}
        self.categories: dict[str, ProductCategory] = {}

    def add(self, product: Product, variants: list[ProductVariant] = ()) -> Product:
        self.products[product.id] = product
        for v in variants:
            self.variants[v.id] = v
        return product

    def add_variant(self, variant: ProductVariant) -> ProductVariant:
        self.variants[variant.id] = variant
        return variant

    def add_category(self, category: ProductCategory) -> ProductCategory:
        self.categories[category.id] = category
        return category

    def _live(self) -> list[Product]:
        return [p for p in self.products.values() if p.deleted_at is None]

    async def get(self, product_id: str) -> Product | None:
        p = self.products.get(product_id)
        return _copy(p) if p is not None and p.deleted_at is None else None

    async def get_by_slug(self, slug: str) -> Product | None:
        for p in self._live():
            if p.slug == slug:
                return _copy(p)
        return None

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
        found = [
            p
            for p in self._live()
            if (category_id is None or p.category_id == category_id)
            and (category_ids is None or p.category_id in category_ids)
            and (status is None or p.status == status)
            and (featured is None or p.featured == featured)
            and (min_price is None or p.base_price >= min_price)
            and (max_price is None or p.base_price <= max_price)
        ]
        items, total = _paginate(_sorted(found, sort_by, sort_order), page)
        return [_copy(p) for p in items], total

    async def search(
        self,
        query: str,
        *,
        category_id: str | None = None,
        min_price: int | None = None,
        max_price: int | None = None,
        page: Page = Page(),
    ) -> tuple[list[Product], int]:
        needle = query.lower()
        found = [
            p
            for p in self._live()
            if p.status == ProductStatus.ACTIVE
            and (needle in p.name.lower() or needle in (p.description or "").lower())
            and (category_id is None or p.category_id == category_id)
            and (min_price is None or p.base_price >= min_price)
            and (max_price is None or p.base_price <= max_price)
        ]
        found.sort(key=lambda p: p.name)
        items, total = _paginate(found, page)
        return [_copy(p) for p in items], total

    async def list_variants(self, product_id: str, *, min_stock: int | None = None) -> list[ProductVariant]:
        found = [
            v
            for v in self.variants.values()
            if v.product_id == product_id
            and v.deleted_at is None
            and (min_stock is None or v.stock >= min_stock)
        ]
        found.sort(key=lambda v: v.position)
        return [_copy(v) for v in found]

    async def get_variant(self, product_id: str, variant_id: str) -> ProductVariant | None:
        v = self.variants.get(variant_id)
        if v is None or v.product_id != product_id or v.deleted_at is not None:
            return None
        return _copy(v)

    async def adjust_stock(self, variant_id: str, delta: int) -> bool:
        v = self.variants.get(variant_id)
        if v is None:
            return False
        v.stock += delta
        return True

    async def list_categories(self, parent_id: str | None = None) -> list[ProductCategory]:
        found = [c for c in self.categories.values() if c.parent_id == parent_id]
        found.sort(key=lambda c: (c.position, c.name))
        return [_copy(c) for c in found]

    async def get_category(self, category_id: str) -> ProductCategory | None:
        return _copy(self.categories.get(category_id))

    async def get_category_by_slug(self, slug: str) -> ProductCategory | None:
        for c in self.categories.values():
            if c.slug == slug:
                return _copy(c)
        return None

    async def count_active(self, category_ids: Sequence[str]) -> dict[str, int]:
        counts = Counter(
            p.category_id
            for p in self._live()
            if p.status == ProductStatus.ACTIVE and p.category_id in category_ids
        )
        return dict(counts)


class MemorySubscriberStore(SubscriberStore):
    def __init__(self) -> None:
        self.subscribers: dict[str, Subscriber] = {}

    def add(self, subscriber: Subscriber) -> Subscriber:
        self.subscribers[subscriber.id] = subscriber
        return subscriber

    async def get_by_email(self, email: str) -> Subscriber | None:
        for s in self.subscribers.values():
            if s.email == email:
                return _copy(s)
        return None

    async def get_by_token(self, token: str) -> Subscriber | None:
        for s in self.subscribers.values():
            if s.confirmation_token == token:
                return _copy(s)
        return None

    async def create(self, subscriber: Subscriber) -> Subscriber:
        self.subscribers[subscriber.id] = _copy(subscriber)
        return _copy(subscriber)

    async def update(self, subscriber: Subscriber) -> Subscriber:
        updated = subscriber.model_copy(deep=True, update={"updated_at": now_utc()})
        self.subscribers[subscriber.id] = updated
        return _copy(updated)


class MemoryEmailTemplateStore(EmailTemplateStore):
    def __init__(self) -> None:
        self.templates: dict[str, EmailTemplate] = {}

    def add(self, template: EmailTemplate) -> EmailTemplate:
        self.templates[template.id] = template
        return template

    async def get(self, template_id: str) -> EmailTemplate | None:
        return _copy(self.templates.get(template_id))


class MemoryNotificationStore(NotificationStore):
    def __init__(self) -> None:
        self.notifications: dict[str, Notification] = {}
        self.preferences: dict[str, NotificationPreferences] = {}

    def add(self, notification: Notification) -> Notification:
        self.notifications[notification.id] = notification
        return notification

    def _for(self, user_id: str) -> list[Notification]:
        return [n for n in self.notifications.values() if n.user_id == user_id]

    async def list(
        self,
        user_id: str,
        *,
        type: NotificationType | None = None,
        unread_only: bool = False,
        page: Page = Page(),
    ) -> tuple[list[Notification], int]:
        found = [
            n
            for n in self._for(user_id)
            if (type is None or n.type == type) and (not unread_only or n.read_at is None)
        ]
        found.sort(key=lambda n: n.created_at, reverse=True)
        items, total = _paginate(found, page)
        return [_copy(n) for n in items], total

    async def count_unread(self, user_id: str) -> int:
        return sum(1 for n in self._for(user_id) if n.read_at is None)

    async def get(self, user_id: str, notification_id: str) -> Notification | None:
        n = self.notifications.get(notification_id)
        return _copy(n) if n is not None and n.user_id == user_id else None

    async def mark_read(self, user_id: str, notification_id: str, at: datetime) -> None:
        n = self.notifications.get(notification_id)
        if n is not None and n.user_id == user_id and n.read_at is None:
            n.read_at = at

    async def mark_all_read(self, user_id: str, at: datetime, *, type: NotificationType | None = None) -> int:
        count = 0
        for n in self._for(user_id):
            if n.read_at is None and (type is None or n.type == type):
                n.read_at = at
                count += 1
        return count

    async def delete(self, user_id: str, notification_id: str) -> bool:
        n = self.notifications.get(notification_id)
        if n is None or n.user_id != user_id:
            return False
        del self.notifications[notification_id]
        return True

    async def create(self, notification: Notification) -> Notification:
        self.notifications[notification.id] = _copy(notification)
        return _copy(notification)

    async def get_preferences(self, user_id: str) -> NotificationPreferences | None:
        return _copy(self.preferences.get(user_id))

    async def save_preferences(self, user_id: str, preferences: NotificationPreferences) -> NotificationPreferences:
        self.preferences[user_id] = _copy(preferences)
        return _copy(preferences)


class MemoryMediaStore(MediaStore):
    def __init__(self) -> None:
        self.files: dict[str, Media] = {}
        self.folders: dict[str, MediaFolder] = {}

    def add(self, media: Media) -> Media:
        self.files[media.id] = media
        return media

    def add_folder(self, folder: MediaFolder) -> MediaFolder:
        self.folders[folder.id] = folder
        return folder

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
        needle = search.lower() if search else None
        found = [
            m
            for m in self.files.values()
            if m.deleted_at is None
            and (kind is None or media_kind(m.mime_type) == kind)
            and (folder_id is None or m.folder_id == folder_id)
            and (needle is None or needle in m.name.lower())
        ]
        items, total = _paginate(_sorted(found, sort_by, sort_order), page)
        return [_copy(m) for m in items], total

    async def get(self, media_id: str, *, include_deleted: bool = False) -> Media | None:
        m = self.files.get(media_id)
        if m is None or (m.deleted_at is not None and not include_deleted):
            return None
        return _copy(m)

    async def update(self, media_id: str, changes: dict[str, Any]) -> Media | None:
        m = self.files.get(media_id)
        if m is None or m.deleted_at is not None:
            return None
        updated = m.model_copy(update={**changes, "updated_at": now_utc()})
        self.files[media_id] = updated
        return _copy(updated)

    async def soft_delete(self, media_id: str, at: datetime) -> None:
        m = self.files.get(media_id)
        if m is not None:
            m.deleted_at = at

    async def delete(self, media_id: str) -> None:
        self.files.pop(media_id, None)

    async def list_folders(self, parent_id: str | None = None) -> list[MediaFolder]:
        found = [f for f in self.folders.values() if f.parent_id == parent_id]
        found.sort(key=lambda f: f.name)
        return [_copy(f) for f in found]

    async def get_folder(self, folder_id: str) -> MediaFolder | None:
        return _copy(self.folders.get(folder_id))

    async def find_folder(self, name: str, parent_id: str | None) -> MediaFolder | None:
        for f in self.folders.values():
            if f.name == name and f.parent_id == parent_id:
                return _copy(f)
        return None

    async def create_folder(self, folder: MediaFolder) -> MediaFolder:
        self.folders[folder.id] = _copy(folder)
        return _copy(folder)

    async def count_files(self, folder_ids: Sequence[str]) -> dict[str, int]:
        counts = Counter(
            m.folder_id for m in self.files.values() if m.deleted_at is None and m.folder_id in folder_ids
        )
        return dict(counts)

    async def folders_with_children(self, folder_ids: Sequence[str]) -> set[str]:
        return {f.parent_id for f in self.folders.values() if f.parent_id in folder_ids}


class MemoryAnalyticsStore(AnalyticsStore):
    def __init__(self) -> None:
        self.events: list[AnalyticsEvent] = []

    def add(self, event: AnalyticsEvent) -> AnalyticsEvent:
        self.events.append(event)
        return event

    async def create(self, event: AnalyticsEvent) -> AnalyticsEvent:
        self.events.append(_copy(event))
        return _copy(event)

    def _between(self, start: datetime | None, end: datetime | None) -> list[AnalyticsEvent]:
        return [
            e
            for e in self.events
            if (start is None or e.timestamp >= start) and (end is None or e.timestamp <= end)
        ]

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
        found = [
            e
            for e in self._between(start, end)
            if (event is None or e.event == event)
            and (category is None or e.category == category)
            and (user_id is None or e.user_id == user_id)
        ]
        found.sort(key=lambda e: e.timestamp, reverse=True)
        items, total = _paginate(found, page)
        return [_copy(e) for e in items], total

    async def summarize(self, start: datetime, end: datetime, *, top: int = 10) -> AnalyticsSummary:
        window = self._between(start, end)
        views = [e for e in window if e.event == "page_view"]
        purchases = [e for e in window if e.event == "purchase"]
        return AnalyticsSummary(
            page_views=len(views),
            unique_visitors=len({e.session_id for e in views if e.session_id}),
            purchases=len(purchases),
            revenue=sum(int(e.properties.get("total") or 0) for e in purchases),
            top_pages=Counter(e.url for e in views if e.url).most_common(top),
            top_events=Counter(e.event for e in window).most_common(top),
        )


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------


class MemoryStore(Store):
    """Every entity store in process. Seed through the per-entity add() helpers."""

    def __init__(self) -> None:
        super().__init__(
            discounts=MemoryDiscountStore(),
            orders=MemoryOrderStore(),
            carts=MemoryCartStore(),
            products=MemoryProductStore(),
            subscribers=MemorySubscriberStore(),
            notifications=MemoryNotificationStore(),
            media=MemoryMediaStore(),
            email_templates=MemoryEmailTemplateStore(),
            analytics=MemoryAnalyticsStore(),
        )


class RecordingSender(EmailSender):
    """Captures outbound mail instead of sending it."""

    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.sent: list[EmailMessage] = []
        self.fail_for = set(fail_for or ())

    async def send(self, message: EmailMessage) -> SendResult:
        if message.to in self.fail_for:
            return SendResult(success=False, error=f"delivery to {message.to} rejected")
        self.sent.append(message)
        return SendResult(success=True, message_id=f"mem_{new_id()[:12]}")


def seed_order(store: MemoryStore, **fields: Any) -> Order:
    """Add an order whose total is consistent with its parts."""
    order = Order(**fields)
    if "total" not in fields:
        order.total = order.undiscounted_total() - order.discount_total
    return store.orders.add(order)


def seed_cart(store: MemoryStore, **fields: Any) -> Cart:
    cart = Cart(**fields)
    if "total" not in fields:
        cart.total = cart.undiscounted_total() - cart.discount_total
    return store.carts.add(cart)
