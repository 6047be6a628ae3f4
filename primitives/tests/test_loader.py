"""Handler reference resolution for stored (user-defined) primitives."""

import pytest

from primitives.catalog.discount import validate_discount
from primitives.kernel.errors import HandlerImportError, InvalidDefinitionError
from primitives.kernel.loader import resolve_handler


class TestResolveHandler:
    def test_resolves_module_function(self):
        assert resolve_handler("primitives.catalog.discount:validate_discount") is validate_discount

    def test_resolves_dotted_attribute(self):
        handler = resolve_handler("primitives.catalog.memory:RecordingSender.send")
        assert callable(handler)

    @pytest.mark.parametrize(
        "reference",
        ["", "no_colon", "module:", ":func", "os.path:join; rm -rf", "lambda: 1", 42],
    )
    def test_malformed_reference_rejected(self, reference):
        with pytest.raises(HandlerImportError):
            resolve_handler(reference)

    def test_missing_module(self):
        with pytest.raises(HandlerImportError, match="cannot import"):
            resolve_handler("primitives.does_not_exist:run")

    def test_missing_attribute(self):
        with pytest.raises(HandlerImportError, match="no attribute"):
            resolve_handler("primitives.catalog.discount:nope")

    def test_not_callable(self):
        with pytest.raises(HandlerImportError, match="not callable"):
            resolve_handler("primitives.catalog.discount:CATEGORY")

    def test_is_an_invalid_definition_error(self):
        assert issubclass(HandlerImportError, InvalidDefinitionError)
