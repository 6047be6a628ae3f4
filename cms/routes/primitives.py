"""Primitive routes: list, describe, AI tool definitions, invoke, execution history and stats,
plus saving and deleting user-defined primitives."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from cms.models.primitive import InvokeRequest, SavePrimitiveRequest
from cms.services.invocations import PrimitiveService
from cms.services.tool_defs import primitive_for_tool, tool_definitions
from primitives.kernel.errors import DomainRuleViolation, InvalidDefinitionError
from primitives.kernel.types import CallerContext

router = APIRouter(prefix="/api/primitives", tags=["primitives"])


def get_primitive_service(request: Request) -> PrimitiveService:
    """The process-wide service created in the app lifespan."""
    service = getattr(request.app.state, "primitive_service", None)
    if service is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is starting up.")
    return service


def get_caller(
    x_tenant_id: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
) -> CallerContext:
    """Caller identity from request headers. Authentication happens upstream."""
    if not x_tenant_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-Tenant-ID header is required.")
    return CallerContext(tenant_id=x_tenant_id, user_id=x_user_id)


def _not_found(name: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"There is no action called '{name}'.")


@router.get("", status_code=200)
async def list_primitives(
    category: str | None = None,
    tag: list[str] | None = Query(default=None),
    search: str | None = None,
    service: PrimitiveService = Depends(get_primitive_service),
) -> dict:
    """List primitive definitions, optionally filtered by category, tags (all must match) or text."""
    registry = service.registry
    found = registry.list(category=category, tags=tag, search=search)
    return {
        "primitives": [registry.describe(d.name) for d in found],
        "categories": registry.categories(),
        "total": len(found),
    }


@router.get("/tools", status_code=200)
async def list_tools(
    category: str | None = None,
    service: PrimitiveService = Depends(get_primitive_service),
) -> dict:
    """Primitive definitions as AI tool definitions."""
    return {"tools": tool_definitions(service.registry, category)}


@router.post("/tools/{tool}/invoke", status_code=200)
async def invoke_tool(
    tool: str,
    req: InvokeRequest,
    caller: CallerContext = Depends(get_caller),
    service: PrimitiveService = Depends(get_primitive_service),
) -> dict:
    """Invoke a primitive by its tool name, as returned in a model's tool call."""
    name = primitive_for_tool(service.registry, tool)
    if name is None:
        raise _not_found(tool)
    return await _invoke(service, name, req, caller)


@router.put("/stored/{name}", status_code=200)
async def save_stored_primitive(
    name: str,
    req: SavePrimitiveRequest,
    service: PrimitiveService = Depends(get_primitive_service),
) -> dict:
    """
    Create or replace a user-defined primitive. It is callable as soon as this returns.

    Built-in names are 409. A definition that can't be registered (bad name,
    schema, timeout or handler reference) is 422 and nothing is saved.
    """
    _require_stored(service)
    try:
        saved = await service.save_stored(req.to_stored(name))
    except DomainRuleViolation as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message) from e
    except InvalidDefinitionError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    return {
        "primitive": saved.model_dump(mode="json"),
        "registered": saved.name in service.registry,
    }


@router.delete("/stored/{name}", status_code=200)
async def delete_stored_primitive(
    name: str,
    service: PrimitiveService = Depends(get_primitive_service),
) -> dict:
    """Delete a user-defined primitive. Built-in names are 409."""
    _require_stored(service)
    try:
        deleted = await service.delete_stored(name)
    except DomainRuleViolation as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message) from e
    if not deleted:
        raise _not_found(name)
    return {"deleted": name}


@router.get("/{name}", status_code=200)
async def describe_primitive(
    name: str,
    service: PrimitiveService = Depends(get_primitive_service),
) -> dict:
    """One primitive's definition with its effective timeout."""
    if name not in service.registry:
        raise _not_found(name)
    return service.registry.describe(name)


@router.post("/{name}/invoke", status_code=200)
async def invoke_primitive(
    name: str,
    req: InvokeRequest,
    caller: CallerContext = Depends(get_caller),
    service: PrimitiveService = Depends(get_primitive_service),
) -> dict:
    """
    Invoke a primitive.

    Unknown names are 404. Every other outcome, failures included, is a 200
    whose body says whether the call succeeded and why not.
    """
    if name not in service.registry:
        raise _not_found(name)
    return await _invoke(service, name, req, caller)


@router.get("/{name}/executions", status_code=200)
async def list_executions(
    name: str,
    limit: int = Query(default=50, ge=1, le=200),
    caller: CallerContext = Depends(get_caller),
    service: PrimitiveService = Depends(get_primitive_service),
) -> dict:
    """Recent executions of a primitive for the caller's tenant."""
    if name not in service.registry:
        raise _not_found(name)
    if service.executions is None:
        return {"executions": [], "recording": False}
    rows = await service.executions.list_recent(caller.tenant_id, name, limit)
    return {"executions": [r.model_dump(mode="json") for r in rows], "recording": True}


@router.get("/{name}/stats", status_code=200)
async def execution_stats(
    name: str,
    caller: CallerContext = Depends(get_caller),
    service: PrimitiveService = Depends(get_primitive_service),
) -> dict:
    """Totals, error count, average duration and last run of a primitive for the caller's tenant."""
    if name not in service.registry:
        raise _not_found(name)
    if service.executions is None:
        return {"stats": None, "recording": False}
    return {"stats": await service.executions.stats(caller.tenant_id, name), "recording": True}


def _require_stored(service: PrimitiveService) -> None:
    if service.primitives is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="User-defined actions can't be saved on this server.",
        )


async def _invoke(service: PrimitiveService, name: str, req: InvokeRequest, caller: CallerContext) -> dict:
    if req.agent_id:
        caller = CallerContext(tenant_id=caller.tenant_id, user_id=caller.user_id, agent_id=req.agent_id)
    result = await service.invoke(name, req.args, caller)
    return result.to_dict()
