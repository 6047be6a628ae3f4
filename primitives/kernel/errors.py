"""
Primitives Kernel: Errors

Handlers raise these; the sandbox turns them into failed InvocationResults.
The `message` of every error is written for the person at the keyboard, not
for a developer: "This discount code has expired", not a stack trace.
"""

from __future__ import annotations

from typing import Any

from primitives.kernel.types import ErrorKind


class PrimitiveError(Exception):
    """Base for every error that maps onto an InvocationResult."""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str, *, data: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.data = data


class ValidationError(PrimitiveError):
    """Input is malformed. Carries every violation found, not just the first."""

    kind = ErrorKind.VALIDATION

    def __init__(self, errors: list[str], message: str | None = None) -> None:
        self.errors = list(errors)
        if message is None:
            if len(self.errors) == 1:
                message = f"Invalid input: {self.errors[0]}"
            else:
                message = f"Invalid input ({len(self.errors)} problems): " + "; ".join(self.errors)
        super().__init__(message)


class NotFoundError(PrimitiveError):
    """Unknown primitive, or a referenced record (order, discount, subscriber) is missing."""

    kind = ErrorKind.NOT_FOUND


class DomainRuleViolation(PrimitiveError):
    """Input was well-formed but current state disallows the operation."""

    kind = ErrorKind.DOMAIN_RULE


class PrimitiveTimeout(PrimitiveError):
    """
    Raised by a handler whose own wait on a slower dependency ran out, e.g. a
    mail provider call wrapped in asyncio.timeout. The sandbox reports it as
    ErrorKind.TIMEOUT with this message. When the sandbox budget itself runs
    out, no exception is raised; the sandbox builds the TIMEOUT result.
    """

    kind = ErrorKind.TIMEOUT


# ---------------------------------------------------------------------------
# Startup errors (programming mistakes; allowed to escape)
# ---------------------------------------------------------------------------


class DuplicatePrimitiveError(Exception):
    """Two definitions registered under the same name."""


class InvalidDefinitionError(Exception):
    """A definition has a bad name, timeout, schema or handler."""


class HandlerImportError(InvalidDefinitionError):
    """A stored handler reference could not be imported."""
