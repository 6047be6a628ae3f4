"""Helpers shared by the catalog handlers."""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Any

from primitives.catalog.store import Page
from primitives.kernel.errors import ValidationError

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Reusable schema fragments
PAGE_PROPERTIES: dict[str, Any] = {
    "page": {"type": "integer", "description": "Page number (1-based)", "default": 1, "minimum": 1},
    "limit": {"type": "integer", "description": "Items per page", "default": 20, "minimum": 1, "maximum": 100},
}
SORT_ORDER: dict[str, Any] = {
    "type": "string",
    "description": "Sort direction",
    "enum": ["asc", "desc"],
    "default": "desc",
}


def page_from(args: dict[str, Any]) -> Page:
    return Page(page=args.get("page", 1), limit=args.get("limit", 20))


def format_money(cents: int) -> str:
    return f"${cents / 100:,.2f}"


def normalize_email(value: str, field: str = "email") -> str:
    """Trim and lower-case; reject anything that doesn't look like an address."""
    email = value.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError([f"{field}: {value!r} is not a valid email address"])
    return email


def parse_datetime(value: str, field: str) -> datetime:
    """ISO 8601 → aware datetime. Naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise ValidationError([f"{field}: {value!r} is not an ISO 8601 date"]) from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
