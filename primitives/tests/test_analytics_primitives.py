"""Analytics tracking and reporting against the in-memory event log."""

from datetime import timedelta

import pytest

from primitives.catalog.analytics import period_range
from primitives.catalog.records import AnalyticsEvent, now_utc
from primitives.kernel.errors import ValidationError
from primitives.kernel.types import ErrorKind


@pytest.fixture
def traffic(store):
    """Three page views from two sessions, one purchase of $45.00, one old purchase outside 7d."""
    now = now_utc()
    events = [
        AnalyticsEvent(event="page_view", url="/", session_id="s1", timestamp=now - timedelta(hours=3)),
        AnalyticsEvent(event="page_view", url="/tees", session_id="s1", timestamp=now - timedelta(hours=2)),
        AnalyticsEvent(event="page_view", url="/", session_id="s2", timestamp=now - timedelta(hours=1)),
        AnalyticsEvent(event="purchase", category="ecommerce", properties={"total": 4_500}, user_id="u1",
                       timestamp=now - timedelta(minutes=30)),
        AnalyticsEvent(event="purchase", category="ecommerce", properties={"total": 99_900},
                       timestamp=now - timedelta(days=20)),
    ]
    for e in events:
        store.analytics.add(e)
    return events


class TestTracking:
    async def test_track_event(self, store, invoke):
        result = await invoke(
            "analytics.trackEvent",
            event="newsletter_open",
            properties={"url": "/promo", "referrer": "mail", "campaign": "spring"},
            sessionId="s1",
        )

        assert result.success is True
        [saved] = store.analytics.events
        assert result.data["eventId"] == saved.id
        assert saved.category == "custom"
        assert saved.url == "/promo"
        assert saved.referrer == "mail"
        assert saved.properties["campaign"] == "spring"

    async def test_event_name_length(self, invoke):
        result = await invoke("analytics.trackEvent", event="x" * 101)
        assert result.error_kind == ErrorKind.VALIDATION

    async def test_page_view(self, store, invoke):
        await invoke("analytics.trackPageView", url="/tees", title="Tees", sessionId="s9")

        [saved] = store.analytics.events
        assert (saved.event, saved.category, saved.url) == ("page_view", "navigation", "/tees")
        assert saved.properties == {"title": "Tees"}

    async def test_purchase(self, store, invoke):
        await invoke(
            "analytics.trackPurchase",
            orderId="o1",
            total=7_500,
            items=[{"productId": "p1", "quantity": 2}, {"productId": "p2"}],
        )

        [saved] = store.analytics.events
        assert saved.event == "purchase"
        assert saved.properties["total"] == 7_500
        assert saved.properties["currency"] == "USD"
        assert saved.properties["itemCount"] == 3

    async def test_purchase_total_is_cents(self, invoke):
        result = await invoke("analytics.trackPurchase", orderId="o1", total=75.5)
        assert result.error_kind == ErrorKind.VALIDATION

    async def test_add_to_cart_value(self, store, invoke):
        await invoke("analytics.trackAddToCart", productId="p1", price=2_500, quantity=3)

        [saved] = store.analytics.events
        assert saved.event == "add_to_cart"
        assert saved.properties["value"] == 7_500

    async def test_add_to_cart_without_price(self, store, invoke):
        await invoke("analytics.trackAddToCart", productId="p1")
        assert store.analytics.events[0].properties["value"] is None


class TestEvents:
    async def test_newest_first(self, traffic, invoke):
        result = await invoke("analytics.getEvents")

        ids = [e["id"] for e in result.data["events"]]
        assert ids == [e.id for e in reversed(traffic)]
        assert result.data["total"] == 5

    async def test_filters(self, traffic, invoke):
        result = await invoke("analytics.getEvents", event="purchase", userId="u1")
        assert [e["properties"]["total"] for e in result.data["events"]] == [4_500]

    async def test_limit(self, traffic, invoke):
        result = await invoke("analytics.getEvents", limit=2)
        assert len(result.data["events"]) == 2
        assert result.data["total"] == 5

    async def test_limit_max(self, invoke):
        result = await invoke("analytics.getEvents", limit=201)
        assert result.error_kind == ErrorKind.VALIDATION


class TestStats:
    async def test_default_metrics_for_seven_days(self, traffic, invoke):
        result = await invoke("analytics.getStats")

        assert result.success is True
        assert result.data["period"] == "7d"
        assert result.data["stats"] == {
            "pageViews": 3,
            "uniqueVisitors": 2,
            "purchases": 1,
            "revenue": 4_500,
        }

    async def test_thirty_days_sees_old_purchase(self, traffic, invoke):
        result = await invoke("analytics.getStats", period="30d", metrics=["revenue"])
        assert result.data["stats"] == {"revenue": 104_400}

    async def test_top_lists(self, traffic, invoke):
        result = await invoke("analytics.getStats", metrics=["topPages", "topEvents"])

        assert result.data["stats"]["topPages"] == [{"url": "/", "views": 2}, {"url": "/tees", "views": 1}]
        assert result.data["stats"]["topEvents"][0] == {"event": "page_view", "count": 3}

    async def test_custom_needs_start(self, invoke):
        result = await invoke("analytics.getStats", period="custom")
        assert result.error_kind == ErrorKind.VALIDATION

    async def test_unknown_metric(self, invoke):
        result = await invoke("analytics.getStats", metrics=["bounceRate"])
        assert result.error_kind == ErrorKind.VALIDATION


def test_yesterday_stops_before_midnight():
    start, end = period_range("yesterday")
    midnight = now_utc().replace(hour=0, minute=0, second=0, microsecond=0)

    assert start == midnight - timedelta(days=1)
    assert end < midnight
    assert end > midnight - timedelta(seconds=1)


def test_custom_range_order():
    with pytest.raises(ValidationError):
        period_range("custom", "2026-03-02", "2026-03-01")
