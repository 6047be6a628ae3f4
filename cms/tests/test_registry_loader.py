"""Loading stored primitives next to the built-in catalog."""

from __future__ import annotations

import logging

import pytest

from cms.models.primitive import StoredPrimitive
from cms.services.registry_loader import load_registry, registry_with, to_definition
from primitives.catalog import BUILT_IN_PRIMITIVES
from primitives.catalog.discount import validate_discount
from primitives.kernel.errors import HandlerImportError, InvalidDefinitionError


def stored(**fields) -> StoredPrimitive:
    fields.setdefault("name", "loyalty.checkCode")
    fields.setdefault("category", "loyalty")
    fields.setdefault("description", "Loyalty code check")
    fields.setdefault("input_schema", {"type": "object", "properties": {"code": {"type": "string"}}})
    fields.setdefault("handler", "primitives.catalog.discount:validate_discount")
    return StoredPrimitive(**fields)


class FakeRepo:
    def __init__(self, rows):
        self.rows = rows
        self.calls = 0

    async def list_enabled(self):
        self.calls += 1
        return self.rows


class TestToDefinition:
    def test_resolves_handler(self):
        definition = to_definition(stored(tags=["loyalty"], timeout_ms=2_000))
        assert definition.handler is validate_discount
        assert definition.built_in is False
        assert definition.tags == frozenset({"loyalty"})
        assert definition.timeout_ms == 2_000

    def test_bad_handler(self):
        with pytest.raises(HandlerImportError):
            to_definition(stored(handler="primitives.catalog.discount:nope"))

    def test_bad_schema(self):
        with pytest.raises(InvalidDefinitionError):
            to_definition(stored(input_schema={"type": "nonsense"}))


class TestRegistryWith:
    def test_adds_valid_rows(self):
        registry = registry_with([stored()])
        assert "loyalty.checkCode" in registry
        assert len(registry) == len(BUILT_IN_PRIMITIVES) + 1

    def test_built_ins_win(self, caplog):
        with caplog.at_level(logging.WARNING, logger="cms.services.registry_loader"):
            registry = registry_with([stored(name="discount.apply", category="discount", description="Shadow")])

        assert registry.resolve("discount.apply").built_in is True
        assert "already registered" in caplog.text

    def test_bad_rows_skipped(self, caplog):
        rows = [
            stored(name="loyalty.broken", handler="nowhere:run"),
            stored(name="Bad Name"),
            stored(name="loyalty.slow", timeout_ms=999_999),
            stored(),
        ]
        with caplog.at_level(logging.WARNING, logger="cms.services.registry_loader"):
            registry = registry_with(rows)

        assert "loyalty.checkCode" in registry
        assert "loyalty.broken" not in registry
        assert "loyalty.slow" not in registry
        assert caplog.text.count("skipped") == 3


class TestLoadRegistry:
    async def test_reads_repo(self):
        repo = FakeRepo([stored()])
        registry = await load_registry(repo)
        assert repo.calls == 1
        assert "loyalty.checkCode" in registry

    async def test_built_ins_only(self):
        repo = FakeRepo([stored()])
        registry = await load_registry(repo, include_stored=False)
        assert repo.calls == 0
        assert len(registry) == len(BUILT_IN_PRIMITIVES)
