"""
Primitives Kernel: Execution Sandbox

Runs one handler with its bound dependencies under a wall-clock budget and
always answers with an InvocationResult. No exception raised by a handler
crosses this boundary.

Timeout contract (read this before writing a handler):

  The timeout means "stop waiting", not "stop the work". When the budget
  runs out the caller gets an ErrorKind.TIMEOUT result immediately, but the
  handler task is NOT cancelled and nothing it already wrote is rolled back.
  The task keeps running detached until it finishes on its own (its late
  outcome is logged) or until aclose() cancels it at shutdown. Cancellation
  is cooperative only; a storage call already sent may complete server-side.

  Handlers that issue several writes must order them so that stopping after
  any one of them leaves the data valid, if incomplete.

A successful result whose data serializes to more than `max_output_bytes` of
JSON is replaced by an UnexpectedError failure. The data itself is dropped.

The sandbox keeps no per-primitive state, so the same primitive can run
concurrently with different arguments. It imposes no ordering between
concurrent invocations that touch the same record: the last write wins.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import time
from typing import Any

from primitives.kernel.errors import PrimitiveError, ValidationError
from primitives.kernel.types import (
    ErrorKind,
    Handler,
    HandlerContext,
    InvocationResult,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_BYTES = 1_000_000

UNEXPECTED_MESSAGE = "Something went wrong while running {name}. Please try again later."
OUTPUT_TOO_LARGE_MESSAGE = (
    "{name} returned more data than can be sent back ({size:,} bytes, limit {limit:,}). "
    "Narrow the request, for example with a smaller page size, and try again."
)
TIMEOUT_MESSAGE = (
    "{name} did not finish within {seconds:g} seconds. "
    "Some changes may already have been saved, so check the current state before trying again."
)


class ExecutionSandbox:
    """Executes handlers with a timeout and converts every failure into a result."""

    def __init__(self, max_output_bytes: int | None = DEFAULT_MAX_OUTPUT_BYTES) -> None:
        self.max_output_bytes = max_output_bytes
        self._detached: set[asyncio.Task[Any]] = set()

    @property
    def detached_count(self) -> int:
        """Handlers that timed out but are still running."""
        return len(self._detached)

    async def execute(
        self,
        handler: Handler,
        args: dict[str, Any],
        context: HandlerContext,
        timeout_ms: int,
        *,
        name: str = "",
    ) -> InvocationResult:
        """
        Run `handler(context, args)` for at most `timeout_ms` of wall-clock time.

        Returns a successful result carrying the handler's data, or a failed
        one with error_kind set. Only cancellation of the *calling* task
        propagates.
        """
        label = name or context.primitive_name or "this action"
        started = time.monotonic()
        task = asyncio.create_task(_run(handler, context, args), name=f"primitive:{label}")

        try:
            done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
        except asyncio.CancelledError:
            # Caller went away: nobody is left to wait for the result.
            task.cancel()
            raise

        duration_ms = _elapsed_ms(started)

        if not done:
            self._detach(task, label, timeout_ms)
            logger.warning("sandbox: %s timed out after %dms (handler left running)", label, timeout_ms)
            return InvocationResult.failure(
                ErrorKind.TIMEOUT,
                TIMEOUT_MESSAGE.format(name=label, seconds=timeout_ms / 1000),
                primitive=label,
                duration_ms=duration_ms,
            )

        if task.cancelled():
            logger.warning("sandbox: %s was cancelled from inside the handler", label)
            return InvocationResult.failure(
                ErrorKind.UNEXPECTED,
                UNEXPECTED_MESSAGE.format(name=label),
                primitive=label,
                duration_ms=duration_ms,
            )

        error = task.exception()
        if error is None:
            data = _as_data(task.result())
            size = _output_size(data)
            if self.max_output_bytes is not None and size > self.max_output_bytes:
                logger.warning("sandbox: %s returned %d bytes (limit %d)", label, size, self.max_output_bytes)
                return InvocationResult.failure(
                    ErrorKind.UNEXPECTED,
                    OUTPUT_TOO_LARGE_MESSAGE.format(name=label, size=size, limit=self.max_output_bytes),
                    primitive=label,
                    duration_ms=duration_ms,
                )
            return InvocationResult(
                success=True,
                message=_success_message(data, label),
                data=data,
                primitive=label,
                duration_ms=duration_ms,
            )

        if isinstance(error, PrimitiveError):
            logger.info("sandbox: %s failed with %s: %s", label, error.kind.value, error.message)
            return InvocationResult.failure(
                error.kind,
                error.message,
                primitive=label,
                errors=error.errors if isinstance(error, ValidationError) else None,
                duration_ms=duration_ms,
                data=error.data,
            )

        logger.error(
            "sandbox: %s raised %s",
            label,
            type(error).__name__,
            exc_info=(type(error), error, error.__traceback__),
        )
        return InvocationResult.failure(
            ErrorKind.UNEXPECTED,
            UNEXPECTED_MESSAGE.format(name=label),
            primitive=label,
            duration_ms=duration_ms,
        )

    async def aclose(self) -> None:
        """Cancel handlers still running after their timeout. Call at shutdown."""
        pending = list(self._detached)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._detached.clear()

    # -- internals --

    def _detach(self, task: asyncio.Task[Any], label: str, timeout_ms: int) -> None:
        self._detached.add(task)

        def _on_late_finish(t: asyncio.Task[Any]) -> None:
            self._detached.discard(t)
            if t.cancelled():
                logger.info("sandbox: detached %s cancelled", label)
                return
            exc = t.exception()
            if exc is not None:
                logger.warning("sandbox: detached %s failed after timeout: %r", label, exc)
            else:
                logger.info("sandbox: detached %s finished after its %dms timeout", label, timeout_ms)

        task.add_done_callback(_on_late_finish)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _run(handler: Handler, context: HandlerContext, args: dict[str, Any]) -> Any:
    if _is_async(handler):
        return await handler(context, args)

    # Sync handlers must not block the event loop, or the timeout can't fire.
    result = await asyncio.to_thread(handler, context, args)
    if inspect.isawaitable(result):
        return await result
    return result


def _is_async(handler: Any) -> bool:
    if inspect.iscoroutinefunction(handler):
        return True
    call = getattr(handler, "__call__", None)
    return inspect.iscoroutinefunction(call)


def _as_data(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    return {"result": value}


def _output_size(data: dict[str, Any]) -> int:
    return len(json.dumps(data, default=str).encode())


def _success_message(data: dict[str, Any], label: str) -> str:
    message = data.get("message")
    if isinstance(message, str) and message:
        return message
    return f"{label} completed"


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
