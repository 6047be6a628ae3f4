"""Small helpers for building parameterised WHERE clauses and ORDER BY safely."""

from __future__ import annotations

from typing import Any

from primitives.catalog.store import Page

# camelCase sort keys accepted by the list primitives → column names
SORT_COLUMNS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "name": "name",
    "price": "base_price",
    "size": "size",
    "total": "total",
    "orderNumber": "order_number",
}


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so `text` only ever matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class Conditions:
    """
    Accumulates `column op $n` fragments and their values.

    Column names and operators always come from code, never from input;
    values are always bound parameters.
    """

    def __init__(self) -> None:
        self.clauses: list[str] = []
        self.values: list[Any] = []

    def param(self, value: Any) -> str:
        self.values.append(value)
        return f"${len(self.values)}"

    def add(self, template: str, *values: Any) -> None:
        """One placeholder per value: add("price >= {}", 100), or {0} to reuse the first."""
        self.clauses.append(template.format(*(self.param(v) for v in values)))

    def where(self) -> str:
        return "WHERE " + " AND ".join(self.clauses) if self.clauses else ""

    def page(self, page: Page) -> str:
        return f"LIMIT {self.param(page.limit)} OFFSET {self.param(page.offset)}"


def order_by(sort_by: str, sort_order: str) -> str:
    if sort_by == "featured":
        return "ORDER BY featured DESC, created_at DESC, id"
    column = SORT_COLUMNS.get(sort_by, "created_at")
    direction = "ASC" if sort_order == "asc" else "DESC"
    return f"ORDER BY {column} {direction}, id"
