"""The built-in catalog registers cleanly and carries the documented timeouts."""

import pytest

from primitives.catalog import BUILT_IN_PRIMITIVES, CATEGORY_DEFAULTS, build_registry
from primitives.kernel.errors import DuplicatePrimitiveError
from primitives.kernel.types import PrimitiveDefinition

EXPECTED = {
    "discount": ["discount.apply", "discount.create", "discount.get", "discount.list", "discount.remove", "discount.validate"],
    "product": [
        "product.checkStock",
        "product.get",
        "product.getByCategory",
        "product.getCategories",
        "product.getFeatured",
        "product.getVariants",
        "product.list",
        "product.search",
    ],
    "order": ["order.cancel", "order.get", "order.list", "order.updateStatus"],
    "email": [
        "email.confirm",
        "email.getSubscriptionStatus",
        "email.send",
        "email.sendTemplate",
        "email.subscribe",
        "email.unsubscribe",
        "email.updatePreferences",
    ],
    "notification": [
        "notification.create",
        "notification.delete",
        "notification.getPreferences",
        "notification.getUnreadCount",
        "notification.list",
        "notification.markAllRead",
        "notification.markRead",
        "notification.updatePreferences",
    ],
    "media": ["media.createFolder", "media.delete", "media.get", "media.getFolders", "media.list", "media.update"],
    "analytics": [
        "analytics.getEvents",
        "analytics.getStats",
        "analytics.trackAddToCart",
        "analytics.trackEvent",
        "analytics.trackPageView",
        "analytics.trackPurchase",
    ],
}


def test_every_category_registered(registry):
    for category, names in EXPECTED.items():
        assert [d.name for d in registry.list(category=category)] == names


def test_all_built_ins_flagged(registry):
    assert len(registry) == len(BUILT_IN_PRIMITIVES)
    assert all(d.built_in for d in registry.list())


def test_names_match_category(registry):
    for d in registry.list():
        assert d.domain == d.category


def test_every_category_has_defaults():
    assert set(CATEGORY_DEFAULTS) == set(EXPECTED)


@pytest.mark.parametrize(
    "name, timeout_ms",
    [
        ("discount.validate", 10_000),
        ("discount.get", 5_000),
        ("product.get", 5_000),
        ("product.checkStock", 3_000),
        ("product.getFeatured", 5_000),
        ("product.getByCategory", 10_000),
        ("order.get", 10_000),
        ("order.list", 15_000),
        ("order.updateStatus", 15_000),
        ("order.cancel", 30_000),
        ("email.send", 30_000),
        ("email.sendTemplate", 30_000),
        ("email.subscribe", 15_000),
        ("notification.list", 5_000),
        ("notification.getUnreadCount", 2_000),
        ("notification.getPreferences", 3_000),
        ("notification.updatePreferences", 5_000),
        ("media.delete", 5_000),
        ("media.createFolder", 5_000),
        ("analytics.trackEvent", 3_000),
        ("analytics.getEvents", 10_000),
        ("analytics.getStats", 15_000),
    ],
)
def test_effective_timeouts(registry, name, timeout_ms):
    assert registry.effective_timeout_ms(registry.resolve(name)) == timeout_ms


def test_extra_definitions_added():
    async def handler(ctx, args):
        return {}

    extra = PrimitiveDefinition(
        name="loyalty.getPoints",
        category="loyalty",
        description="Points balance",
        input_schema={"type": "object", "properties": {}},
        handler=handler,
    )
    registry = build_registry([extra])
    assert "loyalty.getPoints" in registry
    assert len(registry) == len(BUILT_IN_PRIMITIVES) + 1


def test_extra_cannot_shadow_built_in():
    clash = PrimitiveDefinition(
        name="discount.apply",
        category="discount",
        description="Shadow",
        input_schema={"type": "object", "properties": {}},
        handler=lambda ctx, args: {},
    )
    with pytest.raises(DuplicatePrimitiveError):
        build_registry([clash])
