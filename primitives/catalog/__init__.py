"""
Built-in primitive catalog.

Each category module exports its definitions and defaults; this package
collects them in one explicit step. Nothing registers itself on import.
"""

from __future__ import annotations

from collections.abc import Iterable

from primitives.catalog import analytics, discount, email, media, notification, order, product
from primitives.kernel.registry import PrimitiveRegistry, RegistryBuilder
from primitives.kernel.types import CategoryDefaults, PrimitiveDefinition

_CATEGORY_MODULES = (discount, product, order, email, notification, media, analytics)

BUILT_IN_PRIMITIVES: list[PrimitiveDefinition] = [
    *discount.DISCOUNT_PRIMITIVES,
    *product.PRODUCT_PRIMITIVES,
    *order.ORDER_PRIMITIVES,
    *email.EMAIL_PRIMITIVES,
    *notification.NOTIFICATION_PRIMITIVES,
    *media.MEDIA_PRIMITIVES,
    *analytics.ANALYTICS_PRIMITIVES,
]

CATEGORY_DEFAULTS: dict[str, CategoryDefaults] = {m.CATEGORY: m.DEFAULTS for m in _CATEGORY_MODULES}


def build_registry(extra: Iterable[PrimitiveDefinition] = ()) -> PrimitiveRegistry:
    """Registry of every built-in primitive plus `extra`. Duplicate names raise."""
    return (
        RegistryBuilder()
        .category_defaults(CATEGORY_DEFAULTS)
        .extend(BUILT_IN_PRIMITIVES)
        .extend(extra)
        .build()
    )


__all__ = ["BUILT_IN_PRIMITIVES", "CATEGORY_DEFAULTS", "build_registry"]
