"""Domain records the catalog handlers read and write. Money is integer cents."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


def now_utc() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return uuid4().hex


def iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class ApplyTo(str, Enum):
    ALL = "ALL"
    PRODUCT = "PRODUCT"
    CATEGORY = "CATEGORY"


class ProductStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DRAFT = "DRAFT"
    ARCHIVED = "ARCHIVED"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class SubscriberStatus(str, Enum):
    PENDING = "PENDING"
    SUBSCRIBED = "SUBSCRIBED"
    UNSUBSCRIBED = "UNSUBSCRIBED"


class NotificationType(str, Enum):
    ORDER = "ORDER"
    SHIPPING = "SHIPPING"
    PROMOTION = "PROMOTION"
    REVIEW = "REVIEW"
    SYSTEM = "SYSTEM"
    PRICE_DROP = "PRICE_DROP"
    BACK_IN_STOCK = "BACK_IN_STOCK"


# ---------------------------------------------------------------------------
# Discounts
# ---------------------------------------------------------------------------


class Discount(BaseModel):
    """A discount code. Its lifecycle state is derived, never stored."""

    id: str = Field(default_factory=new_id)
    code: str  # stored upper case
    description: str | None = None
    type: DiscountType
    value: int  # percent for PERCENTAGE, cents for FIXED
    apply_to: ApplyTo = ApplyTo.ALL
    product_ids: list[str] = Field(default_factory=list)
    category_ids: list[str] = Field(default_factory=list)
    min_order_value: int | None = None
    max_discount: int | None = None
    usage_limit: int | None = None
    usage_count: int = 0
    per_customer: int | None = None
    first_order_only: bool = False
    enabled: bool = True
    starts_at: datetime = Field(default_factory=now_utc)
    expires_at: datetime | None = None
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)


class DiscountUsage(BaseModel):
    id: str = Field(default_factory=new_id)
    discount_id: str
    order_id: str | None = None
    user_id: str | None = None
    email: str | None = None
    discount_amount: int = 0
    created_at: datetime = Field(default_factory=now_utc)


# ---------------------------------------------------------------------------
# Orders and carts
# ---------------------------------------------------------------------------


class Checkout(BaseModel):
    """Fields shared by orders and carts: everything a discount touches."""

    id: str = Field(default_factory=new_id)
    subtotal: int = 0
    shipping_total: int = 0
    tax_total: int = 0
    discount_total: int = 0
    total: int = 0
    discount_code_id: str | None = None
    discount_code: str | None = None
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)

    def undiscounted_total(self) -> int:
        return self.subtotal + self.shipping_total + self.tax_total


class OrderItem(BaseModel):
    id: str = Field(default_factory=new_id)
    product_id: str
    variant_id: str | None = None
    title: str
    quantity: int = 1
    price: int = 0
    total: int = 0


class Order(Checkout):
    order_number: str | None = None
    customer_id: str | None = None
    email: str | None = None
    status: OrderStatus = OrderStatus.PENDING
    items: list[OrderItem] = Field(default_factory=list)
    internal_notes: str | None = None  # append-only, one timestamped line per change


class Cart(Checkout):
    customer_id: str | None = None


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


class Product(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    slug: str
    description: str | None = None
    short_description: str | None = None
    base_price: int = 0
    compare_at_price: int | None = None
    status: ProductStatus = ProductStatus.DRAFT
    featured: bool = False
    category_id: str | None = None
    image_url: str | None = None
    deleted_at: datetime | None = None
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)


class ProductCategory(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    slug: str
    description: str | None = None
    image: str | None = None
    parent_id: str | None = None
    position: int = 0


class ProductVariant(BaseModel):
    id: str = Field(default_factory=new_id)
    product_id: str
    name: str
    sku: str | None = None
    price: int = 0
    compare_at_price: int | None = None
    stock: int = 0
    low_stock_threshold: int | None = None
    options: dict[str, Any] = Field(default_factory=dict)
    position: int = 0
    deleted_at: datetime | None = None


# ---------------------------------------------------------------------------
# Email subscribers
# ---------------------------------------------------------------------------


class Subscriber(BaseModel):
    id: str = Field(default_factory=new_id)
    email: str  # normalised: trimmed, lower case
    first_name: str | None = None
    last_name: str | None = None
    status: SubscriberStatus = SubscriberStatus.PENDING
    lists: list[str] = Field(default_factory=list)
    preferences: dict[str, Any] = Field(default_factory=dict)
    source: str = "api"
    confirmation_token: str | None = None
    subscribed_at: datetime | None = None
    unsubscribed_at: datetime | None = None
    unsubscribe_reason: str | None = None
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)


class EmailTemplate(BaseModel):
    """Subject and bodies may carry {{merge.tags}}."""

    id: str = Field(default_factory=new_id)
    name: str
    subject: str
    html_content: str | None = None
    text_content: str | None = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)


# ---------------------------------------------------------------------------
# Notifications and media
# ---------------------------------------------------------------------------


class Notification(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    action_url: str | None = None
    image_url: str | None = None
    read_at: datetime | None = None
    created_at: datetime = Field(default_factory=now_utc)


class NotificationPreferences(BaseModel):
    order_updates: bool = True
    shipping_updates: bool = True
    promotions: bool = True
    price_drops: bool = True
    back_in_stock: bool = True
    review_reminders: bool = True
    email_notifications: bool = True
    push_notifications: bool = False


class MediaFolder(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    path: str  # "/parent/child"
    parent_id: str | None = None
    created_at: datetime = Field(default_factory=now_utc)


class Media(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    url: str
    thumbnail_url: str | None = None
    mime_type: str
    size: int = 0
    width: int | None = None
    height: int | None = None
    alt: str | None = None
    caption: str | None = None
    folder_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    deleted_at: datetime | None = None
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


class AnalyticsEvent(BaseModel):
    id: str = Field(default_factory=new_id)
    event: str
    category: str = "custom"
    properties: dict[str, Any] = Field(default_factory=dict)
    url: str | None = None
    referrer: str | None = None
    user_agent: str | None = None
    user_id: str | None = None
    session_id: str | None = None
    timestamp: datetime = Field(default_factory=now_utc)
