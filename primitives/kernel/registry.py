"""
Primitives Kernel: Registry

One namespace of primitive definitions keyed by name.

Built once at process start by a RegistryBuilder that collects every
category's definitions, checks them, and rejects duplicates. After that the
only mutations are whole-entry swaps (replace/remove), so a name always maps
to exactly one definition.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from primitives.kernel.errors import (
    DuplicatePrimitiveError,
    InvalidDefinitionError,
    NotFoundError,
)
from primitives.kernel.schema import check_schema
from primitives.kernel.types import (
    DEFAULT_TIMEOUT_MS,
    MAX_TIMEOUT_MS,
    MIN_TIMEOUT_MS,
    CategoryDefaults,
    PrimitiveDefinition,
    is_valid_name,
)

logger = logging.getLogger(__name__)


def check_definition(definition: PrimitiveDefinition) -> None:
    """Raise InvalidDefinitionError if the definition can't be registered."""
    if not is_valid_name(definition.name):
        raise InvalidDefinitionError(f"invalid primitive name {definition.name!r}: expected 'domain.action'")
    if "__" in definition.name:
        # AI tool names join domain and action with "__"
        raise InvalidDefinitionError(
            f"invalid primitive name {definition.name!r}: '__' is reserved as the tool name separator"
        )
    if not definition.category:
        raise InvalidDefinitionError(f"{definition.name}: category is required")
    if not callable(definition.handler):
        raise InvalidDefinitionError(f"{definition.name}: handler is not callable")
    if definition.timeout_ms is not None:
        _check_timeout(definition.name, definition.timeout_ms)
    try:
        check_schema(definition.input_schema)
    except InvalidDefinitionError as e:
        raise InvalidDefinitionError(f"{definition.name}: {e}") from e


def _check_timeout(owner: str, timeout_ms: int) -> None:
    if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int):
        raise InvalidDefinitionError(f"{owner}: timeout_ms must be an integer")
    if not MIN_TIMEOUT_MS <= timeout_ms <= MAX_TIMEOUT_MS:
        raise InvalidDefinitionError(f"{owner}: timeout_ms must be between {MIN_TIMEOUT_MS} and {MAX_TIMEOUT_MS}")


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class RegistryBuilder:
    """Collects definitions and category defaults, then builds a registry."""

    def __init__(self) -> None:
        self._definitions: dict[str, PrimitiveDefinition] = {}
        self._defaults: dict[str, CategoryDefaults] = {}

    def add(self, definition: PrimitiveDefinition) -> RegistryBuilder:
        check_definition(definition)
        if definition.name in self._definitions:
            raise DuplicatePrimitiveError(f"primitive {definition.name!r} is already registered")
        self._definitions[definition.name] = definition
        return self

    def extend(self, definitions: Iterable[PrimitiveDefinition]) -> RegistryBuilder:
        for definition in definitions:
            self.add(definition)
        return self

    def category_defaults(self, defaults: Mapping[str, CategoryDefaults]) -> RegistryBuilder:
        for category, value in defaults.items():
            _check_timeout(f"category {category!r}", value.timeout_ms)
            self._defaults[category] = value
        return self

    def build(self) -> PrimitiveRegistry:
        registry = PrimitiveRegistry(dict(self._definitions), dict(self._defaults))
        logger.info(
            "registry: built with %d primitives across %d categories",
            len(registry),
            len(registry.categories()),
        )
        return registry


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class PrimitiveRegistry:
    """
    Lookup table of primitive definitions.

    Reads never see a half-updated entry: replace() and remove() swap the
    whole mapping in one assignment.
    """

    def __init__(
        self,
        definitions: Mapping[str, PrimitiveDefinition] | None = None,
        defaults: Mapping[str, CategoryDefaults] | None = None,
    ) -> None:
        self._definitions: dict[str, PrimitiveDefinition] = dict(definitions or {})
        self._defaults: dict[str, CategoryDefaults] = dict(defaults or {})

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def resolve(self, name: str) -> PrimitiveDefinition:
        definition = self._definitions.get(name)
        if definition is None:
            raise NotFoundError(f"There is no action called '{name}'.")
        return definition

    def get(self, name: str) -> PrimitiveDefinition | None:
        return self._definitions.get(name)

    def names(self) -> list[str]:
        return sorted(self._definitions)

    def categories(self) -> list[str]:
        return sorted({d.category for d in self._definitions.values()})

    def list(
        self,
        category: str | None = None,
        tags: Iterable[str] | None = None,
        search: str | None = None,
    ) -> list[PrimitiveDefinition]:
        """
        Definitions sorted by name, optionally filtered.

        `tags` matches definitions carrying all of the given tags; `search`
        is a case-insensitive substring match on name and description.
        """
        wanted_tags = set(tags or ())
        needle = search.lower() if search else None

        found = []
        for name in sorted(self._definitions):
            d = self._definitions[name]
            if category and d.category != category:
                continue
            if wanted_tags and not wanted_tags <= d.tags:
                continue
            if needle and needle not in d.name.lower() and needle not in d.description.lower():
                continue
            found.append(d)
        return found

    def replace(self, definition: PrimitiveDefinition) -> PrimitiveDefinition | None:
        """Put `definition` in place of whatever holds its name. Returns the old one."""
        check_definition(definition)
        previous = self._definitions.get(definition.name)
        updated = dict(self._definitions)
        updated[definition.name] = definition
        self._definitions = updated
        return previous

    def remove(self, name: str) -> PrimitiveDefinition:
        previous = self.resolve(name)
        updated = dict(self._definitions)
        del updated[name]
        self._definitions = updated
        return previous

    def category_defaults(self, category: str) -> CategoryDefaults | None:
        return self._defaults.get(category)

    def effective_timeout_ms(self, definition: PrimitiveDefinition) -> int:
        """Definition's own timeout, else its category default, else the global default."""
        if definition.timeout_ms is not None:
            return definition.timeout_ms
        defaults = self._defaults.get(definition.category)
        if defaults is not None:
            return defaults.timeout_ms
        return DEFAULT_TIMEOUT_MS

    def describe(self, name: str) -> dict:
        definition = self.resolve(name)
        return definition.to_info(self.effective_timeout_ms(definition))
