"""
Primitives Kernel: Dispatcher

caller → resolve by name → validate args → sandbox → InvocationResult

The dispatcher never raises for a bad call: unknown names and invalid
arguments come back as failed results. It does not touch storage and does
not retry; callers decide what to do from `error_kind`.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from typing import Any

from primitives.kernel.errors import NotFoundError, ValidationError
from primitives.kernel.registry import PrimitiveRegistry
from primitives.kernel.sandbox import ExecutionSandbox
from primitives.kernel.schema import validate_args
from primitives.kernel.types import (
    ErrorKind,
    HandlerContext,
    InvocationRequest,
    InvocationResult,
    PrimitiveDefinition,
)

logger = logging.getLogger(__name__)


class Dispatcher:
    def __init__(self, registry: PrimitiveRegistry, sandbox: ExecutionSandbox | None = None) -> None:
        self.registry = registry
        self.sandbox = sandbox or ExecutionSandbox()

    def resolve(self, name: str) -> PrimitiveDefinition:
        return self.registry.resolve(name)

    async def invoke(self, name: str, args: Any, context: HandlerContext) -> InvocationResult:
        started = time.monotonic()

        try:
            definition = self.registry.resolve(name)
        except NotFoundError as e:
            logger.info("dispatch: unknown primitive %r", name)
            return InvocationResult.failure(ErrorKind.NOT_FOUND, e.message, primitive=name)

        timeout_ms = self.registry.effective_timeout_ms(definition)

        try:
            validated = validate_args(definition.input_schema, args)
        except ValidationError as e:
            logger.info("dispatch: %s rejected %d invalid argument(s)", name, len(e.errors))
            return InvocationResult.failure(
                ErrorKind.VALIDATION,
                e.message,
                primitive=name,
                errors=e.errors,
                duration_ms=int((time.monotonic() - started) * 1000),
            )

        if context.primitive_name != name:
            context = dataclasses.replace(context, primitive_name=name)

        return await self.sandbox.execute(
            definition.handler,
            validated,
            context,
            timeout_ms,
            name=name,
        )

    async def invoke_request(self, request: InvocationRequest, context: HandlerContext) -> InvocationResult:
        if context.caller != request.caller:
            context = dataclasses.replace(context, caller=request.caller)
        return await self.invoke(request.primitive_name, request.args, context)

    async def aclose(self) -> None:
        await self.sandbox.aclose()
