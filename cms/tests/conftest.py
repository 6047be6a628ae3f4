"""
Pytest configuration and fixtures for the CMS service tests.

Routes and services run against one MemoryStore per tenant; only
test_postgres_repos.py needs a real database.
"""

from __future__ import annotations

import os

# Set test environment variables before importing config
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("SITE_URL", "https://shop.example.com")

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from cms.main import app  # noqa: E402
from cms.routes.primitives import get_primitive_service  # noqa: E402
from cms.services.invocations import PrimitiveService  # noqa: E402
from primitives.catalog import build_registry  # noqa: E402
from primitives.catalog.memory import MemoryStore, RecordingSender  # noqa: E402
from primitives.kernel.dispatcher import Dispatcher  # noqa: E402


class MemoryExecutions:
    """Stands in for ExecutionRepo, kept in a list."""

    def __init__(self) -> None:
        self.rows = []

    async def record(self, execution) -> None:
        self.rows.append(execution)

    async def list_recent(self, tenant_id, primitive_name=None, limit=50):
        rows = [
            r
            for r in reversed(self.rows)
            if r.tenant_id == tenant_id and (primitive_name is None or r.primitive_name == primitive_name)
        ]
        return rows[:limit]

    async def stats(self, tenant_id, primitive_name):
        rows = [r for r in self.rows if r.tenant_id == tenant_id and r.primitive_name == primitive_name]
        successes = sum(1 for r in rows if r.success)
        return {
            "total": len(rows),
            "successes": successes,
            "errors": len(rows) - successes,
            "avgDurationMs": round(sum(r.duration_ms for r in rows) / len(rows)) if rows else 0,
            "lastRunAt": max(r.created_at for r in rows).isoformat() if rows else None,
        }


class MemoryPrimitives:
    """Stands in for PrimitiveRepo: stored primitives by name."""

    def __init__(self) -> None:
        self.rows = {}

    async def upsert(self, primitive):
        self.rows[primitive.name] = primitive
        return primitive

    async def delete(self, name):
        return self.rows.pop(name, None) is not None


@pytest.fixture
def stores():
    """tenant_id → MemoryStore, created on first use."""
    return {}


@pytest.fixture
def mailer():
    return RecordingSender()


@pytest.fixture
def executions():
    return MemoryExecutions()


@pytest.fixture
def stored_primitives():
    return MemoryPrimitives()


@pytest_asyncio.fixture
async def service(stores, mailer, executions, stored_primitives):
    s = PrimitiveService(
        Dispatcher(build_registry()),
        store_factory=lambda tenant_id: stores.setdefault(tenant_id, MemoryStore()),
        mailer=mailer,
        executions=executions,
        site_url="https://shop.example.com",
        primitives=stored_primitives,
    )
    yield s
    await s.aclose()


@pytest_asyncio.fixture
async def async_client(service):
    """Async HTTP client against the ASGI app, with the in-memory service injected."""
    app.dependency_overrides[get_primitive_service] = lambda: service
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
