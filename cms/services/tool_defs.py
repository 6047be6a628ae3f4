"""
Tool definitions for AI assistant calls, generated from the primitive registry.

Tool names may not contain ".", so "discount.apply" is exposed as
"discount__apply". cache_control goes on the LAST tool because prompt
caching is prefix-based: the breakpoint must come after all tools for them
to be included in the cached prefix.
"""

from __future__ import annotations

from typing import Any

from primitives.kernel.registry import PrimitiveRegistry

SEPARATOR = "__"


def tool_name(primitive_name: str) -> str:
    return primitive_name.replace(".", SEPARATOR, 1)


def tool_definitions(
    registry: PrimitiveRegistry,
    category: str | None = None,
    *,
    cache: bool = True,
) -> list[dict[str, Any]]:
    """
    One tool per primitive, sorted by primitive name.

    Args:
        registry: Source of definitions
        category: Only this category's primitives
        cache: Put the ephemeral cache breakpoint on the last tool

    Returns:
        List of {"name", "description", "input_schema"} dicts
    """
    tools = [
        {
            "name": tool_name(d.name),
            "description": d.description,
            "input_schema": d.input_schema,
        }
        for d in registry.list(category=category)
    ]
    if cache and tools:
        tools[-1] = {**tools[-1], "cache_control": {"type": "ephemeral"}}
    return tools


def primitive_for_tool(registry: PrimitiveRegistry, name: str) -> str | None:
    """Map a tool name from a model response back to its primitive name, or None if unknown."""
    for primitive in registry.names():
        if tool_name(primitive) == name:
            return primitive
    return None
