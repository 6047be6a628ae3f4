"""Postgres-backed Store: every catalog store bound to one tenant."""

from __future__ import annotations

from cms.repos import (
    AnalyticsRepo,
    CartRepo,
    DiscountRepo,
    EmailTemplateRepo,
    MediaRepo,
    NotificationRepo,
    OrderRepo,
    ProductRepo,
    SubscriberRepo,
)
from primitives.catalog.store import Store


class PostgresStore(Store):
    """
    Each repo method opens its own tenant-scoped transaction, so every store
    call is one unit of consistency.
    """

    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id
        super().__init__(
            discounts=DiscountRepo(tenant_id),
            orders=OrderRepo(tenant_id),
            carts=CartRepo(tenant_id),
            products=ProductRepo(tenant_id),
            subscribers=SubscriberRepo(tenant_id),
            notifications=NotificationRepo(tenant_id),
            media=MediaRepo(tenant_id),
            email_templates=EmailTemplateRepo(tenant_id),
            analytics=AnalyticsRepo(tenant_id),
        )
