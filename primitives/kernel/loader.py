"""
Handler references for user-defined primitives.

A stored primitive names its handler as "package.module:function". The
reference is imported, never evaluated.
"""

from __future__ import annotations

import importlib
import re

from primitives.kernel.errors import HandlerImportError
from primitives.kernel.types import Handler

REFERENCE_PATTERN = re.compile(r"^[A-Za-z_][\w.]*:[A-Za-z_][\w.]*$")


def resolve_handler(reference: str) -> Handler:
    """Import `module:attr` (attr may be dotted) and return the callable."""
    if not isinstance(reference, str) or not REFERENCE_PATTERN.match(reference):
        raise HandlerImportError(f"invalid handler reference {reference!r}: expected 'package.module:function'")

    module_name, _, attr_path = reference.partition(":")
    try:
        target = importlib.import_module(module_name)
    except ImportError as e:
        raise HandlerImportError(f"cannot import module {module_name!r}: {e}") from e

    for part in attr_path.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            raise HandlerImportError(f"{module_name!r} has no attribute {attr_path!r}") from e

    if not callable(target):
        raise HandlerImportError(f"{reference!r} is not callable")
    return target
