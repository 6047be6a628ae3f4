"""
Registry loading: built-in catalog plus stored (user-defined) primitives.

Built-ins always win. A stored row whose name collides with a built-in,
whose handler cannot be imported, or whose definition is invalid is
skipped with a warning; it never stops the service from starting.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from cms.models.primitive import StoredPrimitive
from cms.repos.primitive_repo import PrimitiveRepo
from primitives.catalog import build_registry
from primitives.kernel.errors import InvalidDefinitionError
from primitives.kernel.loader import resolve_handler
from primitives.kernel.registry import PrimitiveRegistry, check_definition
from primitives.kernel.types import PrimitiveDefinition

logger = logging.getLogger(__name__)


def to_definition(stored: StoredPrimitive) -> PrimitiveDefinition:
    """Raises InvalidDefinitionError (HandlerImportError included) if the row can't be used."""
    definition = PrimitiveDefinition(
        name=stored.name,
        category=stored.category,
        description=stored.description,
        input_schema=stored.input_schema,
        handler=resolve_handler(stored.handler),
        timeout_ms=stored.timeout_ms,
        tags=frozenset(stored.tags),
        built_in=False,
        icon=stored.icon,
    )
    check_definition(definition)
    return definition


def registry_with(stored: Iterable[StoredPrimitive]) -> PrimitiveRegistry:
    """Build the registry from the built-in catalog and whichever stored rows load cleanly."""
    registry = build_registry()
    for row in stored:
        if row.name in registry:
            logger.warning("registry: stored primitive %s is already registered, skipped", row.name)
            continue
        try:
            registry.replace(to_definition(row))
        except InvalidDefinitionError as e:
            logger.warning("registry: stored primitive %s skipped: %s", row.name, e)
    return registry


async def load_registry(repo: PrimitiveRepo | None = None, *, include_stored: bool = True) -> PrimitiveRegistry:
    """
    Build the process registry.

    Args:
        repo: Where stored primitives come from (default PrimitiveRepo())
        include_stored: False to load only the built-in catalog

    Returns:
        PrimitiveRegistry ready for a Dispatcher
    """
    if not include_stored:
        return build_registry()

    stored = await (repo or PrimitiveRepo()).list_enabled()
    registry = registry_with(stored)
    logger.info("registry: %d stored primitive(s) found, %d primitives available", len(stored), len(registry))
    return registry
