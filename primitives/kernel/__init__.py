from primitives.kernel.dispatcher import Dispatcher
from primitives.kernel.errors import (
    DomainRuleViolation,
    DuplicatePrimitiveError,
    HandlerImportError,
    InvalidDefinitionError,
    NotFoundError,
    PrimitiveError,
    PrimitiveTimeout,
    ValidationError,
)
from primitives.kernel.loader import resolve_handler
from primitives.kernel.registry import PrimitiveRegistry, RegistryBuilder
from primitives.kernel.sandbox import ExecutionSandbox
from primitives.kernel.schema import validate_args
from primitives.kernel.types import (
    DEFAULT_TIMEOUT_MS,
    CallerContext,
    CategoryDefaults,
    ErrorKind,
    HandlerContext,
    InvocationRequest,
    InvocationResult,
    PrimitiveDefinition,
)

__all__ = [
    "DEFAULT_TIMEOUT_MS",
    "CallerContext",
    "CategoryDefaults",
    "Dispatcher",
    "DomainRuleViolation",
    "DuplicatePrimitiveError",
    "ErrorKind",
    "ExecutionSandbox",
    "HandlerContext",
    "HandlerImportError",
    "InvalidDefinitionError",
    "InvocationRequest",
    "InvocationResult",
    "NotFoundError",
    "PrimitiveDefinition",
    "PrimitiveError",
    "PrimitiveRegistry",
    "PrimitiveTimeout",
    "RegistryBuilder",
    "ValidationError",
    "resolve_handler",
]
