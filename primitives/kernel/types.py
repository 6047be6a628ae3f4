"""
Primitives Kernel: Shared Types

Data classes used across the registry, validator, sandbox and dispatcher.
These are the contracts that bind the kernel together.

A primitive is a named, schema-validated, independently invocable unit of
domain logic ("discount.validate"). Its handler is a plain Python callable
registered alongside the definition; nothing is ever evaluated from a string.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# "domain.action": lower-case domain, camelCase action ("product.checkStock")
NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*\.[a-zA-Z][a-zA-Z0-9_]*$")

DEFAULT_TIMEOUT_MS = 30_000
MIN_TIMEOUT_MS = 1
MAX_TIMEOUT_MS = 300_000


class ErrorKind(str, Enum):
    """Why an invocation failed. Callers decide on retries from this."""

    VALIDATION = "ValidationError"
    NOT_FOUND = "NotFoundError"
    DOMAIN_RULE = "DomainRuleViolation"
    TIMEOUT = "Timeout"
    UNEXPECTED = "UnexpectedError"


# (ctx, args) -> dict. Async handlers are the norm; sync ones run in a thread.
Handler = Callable[["HandlerContext", dict[str, Any]], Awaitable[Any] | Any]


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PrimitiveDefinition:
    """
    Static description of one primitive plus the callable that implements it.

    Immutable once registered. Updating a primitive means building a new
    definition and replacing the registry entry.
    """

    name: str
    category: str
    description: str
    input_schema: dict[str, Any]
    handler: Handler
    timeout_ms: int | None = None  # None → category default
    tags: frozenset[str] = frozenset()
    built_in: bool = False
    icon: str | None = None

    @property
    def domain(self) -> str:
        return self.name.split(".", 1)[0]

    def to_info(self, timeout_ms: int | None = None) -> dict[str, Any]:
        """Handler-free view of the definition, safe to serialize."""
        return {
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "input_schema": self.input_schema,
            "timeout_ms": timeout_ms if timeout_ms is not None else self.timeout_ms,
            "tags": sorted(self.tags),
            "built_in": self.built_in,
            "icon": self.icon,
        }


@dataclass(frozen=True)
class CategoryDefaults:
    """Defaults merged into every primitive of a category at dispatch time."""

    timeout_ms: int = DEFAULT_TIMEOUT_MS


# ---------------------------------------------------------------------------
# Invocation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CallerContext:
    """Who is calling. Opaque to the kernel; handlers may read it."""

    tenant_id: str
    user_id: str | None = None
    agent_id: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class HandlerContext:
    """
    Dependencies handed to a handler for one invocation.

    `store` is bound to the caller's tenant; `mailer` is the outbound email
    sender. Both are owned by the surrounding service, not the kernel.
    """

    store: Any
    caller: CallerContext
    mailer: Any = None
    site_url: str = "http://localhost:8000"
    primitive_name: str = ""


@dataclass(frozen=True)
class InvocationRequest:
    """One call: which primitive, with what, on whose behalf."""

    primitive_name: str
    args: dict[str, Any]
    caller: CallerContext


@dataclass
class InvocationResult:
    """
    Outcome of exactly one invocation.
    The dispatcher never throws; it always returns one of these.

    `message` is always human-readable and safe to show to an end user.
    """

    success: bool
    message: str
    data: dict[str, Any] | None = None
    error_kind: ErrorKind | None = None
    errors: list[str] = field(default_factory=list)
    primitive: str = ""
    duration_ms: int = 0
    invocation_id: str = field(default_factory=lambda: new_invocation_id())

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "primitive": self.primitive,
            "invocation_id": self.invocation_id,
            "duration_ms": self.duration_ms,
        }
        if self.data is not None:
            d["data"] = self.data
        if self.error_kind is not None:
            d["error_kind"] = self.error_kind.value
        if self.errors:
            d["errors"] = list(self.errors)
        return d

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        *,
        primitive: str = "",
        errors: list[str] | None = None,
        duration_ms: int = 0,
        data: dict[str, Any] | None = None,
    ) -> InvocationResult:
        return cls(
            success=False,
            message=message,
            data=data,
            error_kind=kind,
            errors=list(errors or []),
            primitive=primitive,
            duration_ms=duration_ms,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def is_valid_name(value: str) -> bool:
    """Check if a string is a valid primitive name ("domain.action")."""
    return bool(NAME_PATTERN.match(value))


def new_invocation_id() -> str:
    return f"exec_{uuid.uuid4().hex[:16]}"
