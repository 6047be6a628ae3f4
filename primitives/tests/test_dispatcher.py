"""
Dispatcher tests: resolve → validate → sandbox, and nothing ever raises.
"""

import asyncio
import time

from primitives.kernel.dispatcher import Dispatcher
from primitives.kernel.registry import RegistryBuilder
from primitives.kernel.types import (
    CallerContext,
    CategoryDefaults,
    ErrorKind,
    HandlerContext,
    InvocationRequest,
    PrimitiveDefinition,
)

SCHEMA = {
    "type": "object",
    "properties": {
        "productId": {"type": "string"},
        "quantity": {"type": "integer", "minimum": 1, "default": 1},
    },
    "required": ["productId"],
}


def build(handler, *, timeout_ms=None, category_timeout=None):
    builder = RegistryBuilder()
    if category_timeout is not None:
        builder.category_defaults({"demo": CategoryDefaults(timeout_ms=category_timeout)})
    builder.add(
        PrimitiveDefinition(
            name="demo.reserve",
            category="demo",
            description="Reserve stock",
            input_schema=SCHEMA,
            handler=handler,
            timeout_ms=timeout_ms,
        )
    )
    return Dispatcher(builder.build())


def hctx(tenant="t1"):
    return HandlerContext(store=None, caller=CallerContext(tenant_id=tenant))


class TestDispatch:
    async def test_unknown_primitive_is_a_result_not_an_exception(self):
        d = build(lambda ctx, args: {})
        result = await d.invoke("demo.nothing", {}, hctx())
        assert result.success is False
        assert result.error_kind == ErrorKind.NOT_FOUND
        assert result.primitive == "demo.nothing"

    async def test_missing_required_field_never_enters_handler(self):
        calls = []

        async def handler(ctx, args):
            calls.append(args)
            return {}

        d = build(handler)
        result = await d.invoke("demo.reserve", {"quantity": 0}, hctx())

        assert result.success is False
        assert result.error_kind == ErrorKind.VALIDATION
        assert len(result.errors) == 2
        assert calls == []

    async def test_handler_gets_validated_args_with_defaults(self):
        seen = {}

        async def handler(ctx, args):
            seen.update(args)
            return {"ok": True}

        d = build(handler)
        result = await d.invoke("demo.reserve", {"productId": "p1"}, hctx())
        assert result.success is True
        assert seen == {"productId": "p1", "quantity": 1}

    async def test_context_carries_primitive_name(self):
        async def handler(ctx, args):
            return {"name": ctx.primitive_name}

        d = build(handler)
        result = await d.invoke("demo.reserve", {"productId": "p1"}, hctx())
        assert result.data == {"name": "demo.reserve"}

    async def test_category_default_timeout_applied(self):
        async def handler(ctx, args):
            await asyncio.sleep(2)

        d = build(handler, category_timeout=50)
        started = time.monotonic()
        result = await d.invoke("demo.reserve", {"productId": "p1"}, hctx())
        assert result.error_kind == ErrorKind.TIMEOUT
        assert time.monotonic() - started < 0.5
        await d.aclose()

    async def test_definition_timeout_beats_category_default(self):
        async def handler(ctx, args):
            await asyncio.sleep(0.1)
            return {"done": True}

        d = build(handler, timeout_ms=1_000, category_timeout=10)
        result = await d.invoke("demo.reserve", {"productId": "p1"}, hctx())
        assert result.success is True

    async def test_resolve_delegates_to_registry(self):
        d = build(lambda ctx, args: {})
        assert d.resolve("demo.reserve").category == "demo"


class TestInvokeRequest:
    async def test_request_caller_bound_to_context(self):
        async def handler(ctx, args):
            return {"tenant": ctx.caller.tenant_id}

        d = build(handler)
        request = InvocationRequest("demo.reserve", {"productId": "p1"}, CallerContext(tenant_id="acme"))
        result = await d.invoke_request(request, hctx(tenant="someone-else"))
        assert result.data == {"tenant": "acme"}
