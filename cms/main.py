"""
CMS FastAPI application.

Entry point for the API server.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from cms import db
from cms.config import settings
from cms.repos.execution_repo import ExecutionRepo
from cms.repos.primitive_repo import PrimitiveRepo
from cms.routes import primitives as primitive_routes
from cms.services.email import ResendSender
from cms.services.invocations import PrimitiveService
from cms.services.registry_loader import load_registry
from primitives.kernel.dispatcher import Dispatcher
from primitives.kernel.sandbox import ExecutionSandbox

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.

    Handles startup and shutdown logic:
    - Initialize database pool
    - Load the primitive registry (built-ins plus stored primitives)
    - Detach in-flight timed-out handlers and close the pool on shutdown
    """
    # Startup
    await db.init_pool()
    logger.info("Database pool initialized")

    primitives = PrimitiveRepo()
    registry = await load_registry(primitives, include_stored=settings.LOAD_STORED_PRIMITIVES)
    sandbox = ExecutionSandbox(max_output_bytes=settings.MAX_OUTPUT_BYTES or None)
    service = PrimitiveService(
        Dispatcher(registry, sandbox),
        mailer=ResendSender() if settings.RESEND_API_KEY else None,
        executions=ExecutionRepo() if settings.RECORD_EXECUTIONS else None,
        primitives=primitives,
    )
    app.state.primitive_service = service
    logger.info("Primitive service ready with %d primitives", len(registry))

    yield

    # Shutdown
    await service.aclose()
    app.state.primitive_service = None
    logger.info("Primitive service stopped")

    await db.close_pool()
    logger.info("Database pool closed")


app = FastAPI(
    title="Storefront Primitives",
    docs_url=None,
    redoc_url=None,
    lifespan=lifespan,
)

# Register routes
app.include_router(primitive_routes.router)


@app.get("/health")
async def health():
    """Health check endpoint for uptime monitoring."""
    return {"status": "ok"}
