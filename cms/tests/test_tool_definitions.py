import re

from cms.services.tool_defs import primitive_for_tool, tool_definitions, tool_name
from primitives.catalog import BUILT_IN_PRIMITIVES, build_registry

TOOL_NAME = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")


def test_one_tool_per_primitive():
    tools = tool_definitions(build_registry())
    assert len(tools) == len(BUILT_IN_PRIMITIVES)


def test_tool_names_are_valid():
    for tool in tool_definitions(build_registry()):
        assert TOOL_NAME.match(tool["name"]), tool["name"]


def test_dot_becomes_double_underscore():
    assert tool_name("discount.apply") == "discount__apply"
    assert tool_name("product.checkStock") == "product__checkStock"


def test_last_tool_has_cache_control():
    """Cache breakpoint goes on last tool for optimal cache ordering."""
    tools = tool_definitions(build_registry())
    assert tools[-1]["cache_control"]["type"] == "ephemeral"
    assert all("cache_control" not in t for t in tools[:-1])


def test_cache_off():
    tools = tool_definitions(build_registry(), cache=False)
    assert all("cache_control" not in t for t in tools)


def test_schema_carried_unchanged():
    registry = build_registry()
    tool = next(t for t in tool_definitions(registry, "order") if t["name"] == "order__get")
    assert tool["input_schema"] == registry.resolve("order.get").input_schema
    assert tool["description"] == registry.resolve("order.get").description


def test_maps_back_to_primitive():
    registry = build_registry()
    for tool in tool_definitions(registry):
        name = primitive_for_tool(registry, tool["name"])
        assert name is not None
        assert tool_name(name) == tool["name"]


def test_unknown_tool():
    assert primitive_for_tool(build_registry(), "discount__nothing") is None


def test_empty_category():
    assert tool_definitions(build_registry(), "loyalty") == []
