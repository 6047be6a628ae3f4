"""Repository for storefront analytics events. Append-only; reports aggregate in SQL."""

from __future__ import annotations

from datetime import datetime

import asyncpg

from cms.db import tenant_conn
from cms.repos.sql import Conditions
from primitives.catalog.records import AnalyticsEvent
from primitives.catalog.store import AnalyticsStore, AnalyticsSummary, Page


def _row_to_event(row: asyncpg.Record) -> AnalyticsEvent:
    return AnalyticsEvent(
        id=row["id"],
        event=row["event"],
        category=row["category"],
        properties=row["properties"],
        url=row["url"],
        referrer=row["referrer"],
        user_agent=row["user_agent"],
        user_id=row["user_id"],
        session_id=row["session_id"],
        timestamp=row["timestamp"],
    )


class AnalyticsRepo(AnalyticsStore):
    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id

    async def create(self, event: AnalyticsEvent) -> AnalyticsEvent:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO analytics_events (
                    id, tenant_id, event, category, properties, url, referrer,
                    user_agent, user_id, session_id, timestamp
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                RETURNING *
                """,
                event.id,
                self.tenant_id,
                event.event,
                event.category,
                event.properties,
                event.url,
                event.referrer,
                event.user_agent,
                event.user_id,
                event.session_id,
                event.timestamp,
            )
            return _row_to_event(row)

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
        cond = Conditions()
        if event is not None:
            cond.add("event = {}", event)
        if category is not None:
            cond.add("category = {}", category)
        if user_id is not None:
            cond.add("user_id = {}", user_id)
        if start is not None:
            cond.add("timestamp >= {}", start)
        if end is not None:
            cond.add("timestamp <= {}", end)
        where = cond.where()

        async with tenant_conn(self.tenant_id) as conn:
            total = await conn.fetchval(f"SELECT count(*) FROM analytics_events {where}", *cond.values)  # nosec B608
            rows = await conn.fetch(
                f"SELECT * FROM analytics_events {where} ORDER BY timestamp DESC, id {cond.page(page)}",  # nosec B608
                *cond.values,
            )
            return [_row_to_event(r) for r in rows], total

    async def summarize(self, start: datetime, end: datetime, *, top: int = 10) -> AnalyticsSummary:
        async with tenant_conn(self.tenant_id) as conn:
            totals = await conn.fetchrow(
                """
                SELECT
                    count(*) FILTER (WHERE event = 'page_view') AS page_views,
                    count(DISTINCT session_id) FILTER (WHERE event = 'page_view') AS unique_visitors,
                    count(*) FILTER (WHERE event = 'purchase') AS purchases,
                    coalesce(sum((properties->>'total')::bigint) FILTER (WHERE event = 'purchase'), 0) AS revenue
                FROM analytics_events
                WHERE timestamp >= $1 AND timestamp <= $2
                """,
                start,
                end,
            )
            pages = await conn.fetch(
                """
                SELECT url, count(*) AS views FROM analytics_events
                WHERE event = 'page_view' AND url IS NOT NULL AND timestamp >= $1 AND timestamp <= $2
                GROUP BY url ORDER BY views DESC, url
                LIMIT $3
                """,
                start,
                end,
                top,
            )
            events = await conn.fetch(
                """
                SELECT event, count(*) AS total FROM analytics_events
                WHERE timestamp >= $1 AND timestamp <= $2
                GROUP BY event ORDER BY total DESC, event
                LIMIT $3
                """,
                start,
                end,
                top,
            )
        return AnalyticsSummary(
            page_views=totals["page_views"],
            unique_visitors=totals["unique_visitors"],
            purchases=totals["purchases"],
            revenue=int(totals["revenue"]),
            top_pages=[(r["url"], r["views"]) for r in pages],
            top_events=[(r["event"], r["total"]) for r in events],
        )
