"""PrimitiveService: per-call context binding, execution log and failure logging."""

from __future__ import annotations

import logging

import pytest

from cms.models.primitive import StoredPrimitive
from primitives.catalog.memory import MemoryStore
from primitives.kernel.errors import DomainRuleViolation, InvalidDefinitionError
from primitives.kernel.types import CallerContext, ErrorKind

CALLER = CallerContext(tenant_id="tenant-a", user_id="u1")


class BrokenExecutions:
    async def record(self, execution):
        raise RuntimeError("database is down")


class TestContext:
    async def test_context_binds_tenant_store(self, service, stores, mailer):
        ctx = service.context_for(CALLER)
        assert ctx.store is stores["tenant-a"]
        assert ctx.mailer is mailer
        assert ctx.site_url == "https://shop.example.com"
        assert ctx.caller == CALLER

    async def test_each_tenant_gets_its_own_store(self, service):
        a = service.context_for(CALLER).store
        b = service.context_for(CallerContext(tenant_id="tenant-b")).store
        assert isinstance(a, MemoryStore)
        assert a is not b


class TestInvoke:
    async def test_success_is_recorded(self, service, executions):
        result = await service.invoke("notification.getUnreadCount", {"userId": "u1"}, CALLER)

        assert result.success is True
        assert len(executions.rows) == 1
        row = executions.rows[0]
        assert row.id == result.invocation_id
        assert row.primitive_name == "notification.getUnreadCount"
        assert row.tenant_id == "tenant-a"
        assert row.success is True
        assert row.error_kind is None

    async def test_failure_is_recorded_and_logged(self, service, executions, caplog):
        with caplog.at_level(logging.WARNING, logger="cms.services.invocations"):
            result = await service.invoke("media.get", {"mediaId": "missing"}, CALLER)

        assert result.error_kind == ErrorKind.NOT_FOUND
        assert executions.rows[0].error_kind == "NotFoundError"
        assert "media.get failed" in caplog.text

    async def test_unknown_primitive(self, service):
        result = await service.invoke("nope.nothing", {}, CALLER)
        assert result.error_kind == ErrorKind.NOT_FOUND

    async def test_broken_log_never_fails_the_call(self, service, caplog):
        service.executions = BrokenExecutions()
        with caplog.at_level(logging.ERROR, logger="cms.services.invocations"):
            result = await service.invoke("notification.getUnreadCount", {"userId": "u1"}, CALLER)

        assert result.success is True
        assert "could not record execution" in caplog.text

    async def test_recording_disabled(self, service, executions):
        service.executions = None
        result = await service.invoke("notification.getUnreadCount", {"userId": "u1"}, CALLER)
        assert result.success is True
        assert executions.rows == []

    async def test_subscribe_uses_site_url_and_mailer(self, service, mailer):
        result = await service.invoke("email.subscribe", {"email": "a@b.com"}, CALLER)
        assert result.data["confirmationSent"] is True
        assert "https://shop.example.com/email/confirm?token=" in mailer.sent[0].html


class TestStoredPrimitives:
    async def test_save_then_invoke(self, service, stored_primitives, caplog):
        stored = StoredPrimitive(
            name="loyalty.unread",
            category="loyalty",
            input_schema={"type": "object", "properties": {"userId": {"type": "string"}}, "required": ["userId"]},
            handler="primitives.catalog.notification:get_unread_count",
        )
        with caplog.at_level(logging.INFO, logger="cms.services.invocations"):
            await service.save_stored(stored)

        result = await service.invoke("loyalty.unread", {"userId": "u1"}, CALLER)
        assert result.success is True
        assert "loyalty.unread saved and registered" in caplog.text

    async def test_invalid_definition_is_not_written(self, service, stored_primitives):
        stored = StoredPrimitive(name="loyalty", category="loyalty", input_schema={}, handler="x.y:z")

        with pytest.raises(InvalidDefinitionError):
            await service.save_stored(stored)
        assert stored_primitives.rows == {}

    async def test_built_in_refused(self, service):
        with pytest.raises(DomainRuleViolation):
            await service.delete_stored("media.get")

    async def test_delete_missing(self, service):
        assert await service.delete_stored("loyalty.unread") is False
