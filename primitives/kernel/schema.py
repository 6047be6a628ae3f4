"""
Primitives Kernel: Argument Validation

Validates caller-supplied arguments against a primitive's declared
JSON Schema before the handler runs. Fails closed and reports every
violation at once, so an AI caller can fix its whole call in one round trip.

Schema defaults are applied first, then the result is validated with
jsonschema (Draft 2020-12). The validated dict is what the handler sees.
"""

from __future__ import annotations

import copy
from typing import Any

import jsonschema

from primitives.kernel.errors import InvalidDefinitionError, ValidationError

Validator = jsonschema.Draft202012Validator

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_args(schema: dict[str, Any], args: Any) -> dict[str, Any]:
    """
    Apply defaults and validate `args` against `schema`.

    Returns a new dict (the caller's object is never mutated).
    Raises ValidationError listing every violation found.
    """
    if args is None:
        args = {}
    if not isinstance(args, dict):
        raise ValidationError(["Arguments must be a JSON object"])

    prepared = apply_defaults(schema, copy.deepcopy(args))

    errors = collect_errors(schema, prepared)
    if errors:
        raise ValidationError(errors)
    return prepared


def collect_errors(schema: dict[str, Any], instance: Any) -> list[str]:
    """Every violation as a readable string, ordered by field path."""
    validator = Validator(schema)
    found = sorted(
        validator.iter_errors(instance),
        key=lambda e: (_path(e.absolute_path), e.message),
    )
    return [_format(e) for e in found]


def apply_defaults(schema: dict[str, Any], value: Any) -> Any:
    """
    Fill in `default` values for missing properties.

    Recurses into nested objects and into object items of arrays.
    Mutates and returns `value`.
    """
    if not isinstance(schema, dict):
        return value

    if isinstance(value, dict):
        for key, sub in (schema.get("properties") or {}).items():
            if not isinstance(sub, dict):
                continue
            if key not in value and "default" in sub:
                value[key] = copy.deepcopy(sub["default"])
            if key in value:
                value[key] = apply_defaults(sub, value[key])
    elif isinstance(value, list) and isinstance(schema.get("items"), dict):
        for i, item in enumerate(value):
            value[i] = apply_defaults(schema["items"], item)

    return value


def check_schema(schema: Any) -> None:
    """Raise InvalidDefinitionError if `schema` is not a usable input schema."""
    if not isinstance(schema, dict):
        raise InvalidDefinitionError("input schema must be an object")
    if schema.get("type") != "object":
        raise InvalidDefinitionError("input schema must have type 'object'")
    try:
        Validator.check_schema(schema)
    except jsonschema.SchemaError as e:
        raise InvalidDefinitionError(f"invalid input schema: {e.message}") from e


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def _path(parts: Any) -> str:
    return ".".join(str(p) for p in parts)


def _format(error: jsonschema.ValidationError) -> str:
    path = _path(error.absolute_path)
    if not path:
        return error.message
    return f"{path}: {error.message}"
