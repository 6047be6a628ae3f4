"""Models for stored primitives, the execution log, and the primitives API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from primitives.catalog.records import now_utc
from primitives.kernel.types import CallerContext, InvocationResult


class StoredPrimitive(BaseModel):
    """A user-defined primitive. Represents a row in the primitives table."""

    name: str
    category: str
    description: str = ""
    input_schema: dict[str, Any]
    handler: str  # "package.module:function"
    timeout_ms: int | None = None
    tags: list[str] = Field(default_factory=list)
    icon: str | None = None
    enabled: bool = True
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)


class ExecutionRecord(BaseModel):
    """One row of the primitive_executions audit trail."""

    id: str  # the invocation id
    tenant_id: str
    primitive_name: str
    user_id: str | None = None
    agent_id: str | None = None
    input: dict[str, Any] = Field(default_factory=dict)
    success: bool
    error_kind: str | None = None
    message: str | None = None
    duration_ms: int = 0
    created_at: datetime = Field(default_factory=now_utc)

    @classmethod
    def from_result(cls, result: InvocationResult, caller: CallerContext, args: dict[str, Any]) -> ExecutionRecord:
        return cls(
            id=result.invocation_id,
            tenant_id=caller.tenant_id,
            primitive_name=result.primitive,
            user_id=caller.user_id,
            agent_id=caller.agent_id,
            input=args,
            success=result.success,
            error_kind=result.error_kind.value if result.error_kind else None,
            message=result.message,
            duration_ms=result.duration_ms,
        )


class InvokeRequest(BaseModel):
    """What the client sends to POST /api/primitives/{name}/invoke."""

    model_config = {"extra": "forbid"}

    args: dict[str, Any] = Field(default_factory=dict)
    agent_id: str | None = Field(default=None, max_length=200)


class SavePrimitiveRequest(BaseModel):
    """What the client sends to PUT /api/primitives/stored/{name}. The name comes from the path."""

    model_config = {"extra": "forbid"}

    category: str = Field(min_length=1, max_length=50)
    description: str = ""
    input_schema: dict[str, Any]
    handler: str = Field(min_length=3, max_length=200)
    timeout_ms: int | None = None
    tags: list[str] = Field(default_factory=list)
    icon: str | None = None
    enabled: bool = True

    def to_stored(self, name: str) -> StoredPrimitive:
        return StoredPrimitive(name=name, **self.model_dump())
