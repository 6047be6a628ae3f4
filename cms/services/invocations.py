"""
Primitive invocation service.

Binds a caller to a tenant-scoped store and the outbound mail sender,
dispatches through the kernel, and writes each outcome to the execution log.

User-defined primitives are saved here too: a save is checked, written to
the primitives table, then swapped into the live registry. Built-in names
can never be overwritten or deleted.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from cms.config import settings
from cms.models.primitive import ExecutionRecord, StoredPrimitive
from cms.repos.execution_repo import ExecutionRepo
from cms.repos.primitive_repo import PrimitiveRepo
from cms.services.registry_loader import to_definition
from cms.store import PostgresStore
from primitives.catalog.store import EmailSender, Store
from primitives.kernel.dispatcher import Dispatcher
from primitives.kernel.errors import DomainRuleViolation
from primitives.kernel.registry import PrimitiveRegistry
from primitives.kernel.types import CallerContext, HandlerContext, InvocationResult

logger = logging.getLogger(__name__)


class PrimitiveService:
    """
    One per process. Holds the dispatcher; builds a fresh HandlerContext per call.

    Args:
        dispatcher: Dispatcher over the process registry
        store_factory: tenant_id → Store (PostgresStore in production)
        mailer: Outbound EmailSender, or None when email is not configured
        executions: Execution log, or None to skip recording
        site_url: Base URL for links in outgoing email
        primitives: Stored-primitive table, or None when user-defined primitives can't be saved
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        *,
        store_factory: Callable[[str], Store] = PostgresStore,
        mailer: EmailSender | None = None,
        executions: ExecutionRepo | None = None,
        site_url: str | None = None,
        primitives: PrimitiveRepo | None = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.store_factory = store_factory
        self.mailer = mailer
        self.executions = executions
        self.site_url = site_url or settings.SITE_URL
        self.primitives = primitives

    @property
    def registry(self) -> PrimitiveRegistry:
        return self.dispatcher.registry

    def context_for(self, caller: CallerContext) -> HandlerContext:
        return HandlerContext(
            store=self.store_factory(caller.tenant_id),
            caller=caller,
            mailer=self.mailer,
            site_url=self.site_url,
        )

    async def invoke(self, name: str, args: dict[str, Any], caller: CallerContext) -> InvocationResult:
        result = await self.dispatcher.invoke(name, args, self.context_for(caller))

        if not result.success:
            logger.warning(
                "invoke: %s failed for tenant %s (%s): %s",
                name,
                caller.tenant_id,
                result.error_kind.value if result.error_kind else "unknown",
                result.message,
            )

        if self.executions is not None:
            await self._record(result, caller, args)
        return result

    async def _record(self, result: InvocationResult, caller: CallerContext, args: dict[str, Any]) -> None:
        # The invocation already happened; losing its audit row must not turn it into a failure
        try:
            await self.executions.record(ExecutionRecord.from_result(result, caller, args))
        except Exception:
            logger.exception("invoke: could not record execution %s of %s", result.invocation_id, result.primitive)

    def _refuse_built_in(self, name: str) -> None:
        existing = self.registry.get(name)
        if existing is not None and existing.built_in:
            raise DomainRuleViolation(f"'{name}' is a built-in action and cannot be changed.")

    async def save_stored(self, stored: StoredPrimitive) -> StoredPrimitive:
        """
        Create or overwrite a user-defined primitive and make it callable.

        Raises DomainRuleViolation for a built-in name and InvalidDefinitionError
        (before anything is written) when the definition can't be registered.
        A disabled primitive is saved but taken out of the registry.
        """
        self._refuse_built_in(stored.name)
        definition = to_definition(stored)

        saved = await self.primitives.upsert(stored)
        if saved.enabled:
            self.registry.replace(definition)
            logger.info("primitives: %s saved and registered", saved.name)
        elif saved.name in self.registry:
            self.registry.remove(saved.name)
            logger.info("primitives: %s saved disabled and unregistered", saved.name)
        return saved

    async def delete_stored(self, name: str) -> bool:
        """Remove a user-defined primitive from the table and the registry. False if it was in neither."""
        self._refuse_built_in(name)
        deleted = await self.primitives.delete(name)
        registered = name in self.registry
        if registered:
            self.registry.remove(name)
        if deleted or registered:
            logger.info("primitives: %s deleted", name)
        return deleted or registered

    async def aclose(self) -> None:
        await self.dispatcher.aclose()
