"""
Primitives test configuration.

Kernel and catalog tests run against MemoryStore and RecordingSender only;
nothing here needs a database or network.
"""

from __future__ import annotations

import pytest

from primitives.catalog import build_registry
from primitives.catalog.memory import MemoryStore, RecordingSender
from primitives.kernel.dispatcher import Dispatcher
from primitives.kernel.types import CallerContext, HandlerContext

SITE_URL = "https://shop.example.com"


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def mailer():
    return RecordingSender()


@pytest.fixture
def caller():
    return CallerContext(tenant_id="tenant-1", user_id="admin-1")


@pytest.fixture
def ctx(store, mailer, caller):
    """Handler context bound to the in-memory store."""
    return HandlerContext(store=store, caller=caller, mailer=mailer, site_url=SITE_URL)


@pytest.fixture
def registry():
    return build_registry()


@pytest.fixture
async def dispatcher(registry):
    d = Dispatcher(registry)
    yield d
    await d.aclose()


@pytest.fixture
def invoke(dispatcher, ctx):
    """invoke(primitive, **args) through the full dispatch path. Args may include `name`."""

    async def _invoke(primitive, /, **args):
        return await dispatcher.invoke(primitive, args, ctx)

    return _invoke
