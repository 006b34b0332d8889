"""
Shared test configuration and fixtures.

Stores are real: SQLite runs in :memory:, the memory store is the
production implementation. The service fixture is parametrized over both
so ledger semantics are checked against each backend.
"""

import logging

import pytest

from clipboard_sync.backends import MemoryStore, SQLiteConfig, SQLiteStore
from clipboard_sync.config import ClipboardConfig
from clipboard_sync.ledger import ClipboardService

logger = logging.getLogger(__name__)


@pytest.fixture
async def memory_store():
    """Initialized in-memory store."""
    store = MemoryStore()
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def sqlite_store():
    """Initialized SQLite store on an in-memory database."""
    store = await SQLiteStore.create(SQLiteConfig(db_path=":memory:"))
    yield store
    await store.close()


@pytest.fixture(params=["memory", "sqlite"])
async def store(request):
    """Each store implementation in turn."""
    if request.param == "memory":
        store = MemoryStore()
        await store.initialize()
    else:
        store = await SQLiteStore.create(SQLiteConfig(db_path=":memory:"))
    yield store
    await store.close()


@pytest.fixture
def config():
    return ClipboardConfig(db_path=":memory:")


@pytest.fixture
async def service(store, config):
    """Clipboard service over each store implementation."""
    return ClipboardService(store, config)


@pytest.fixture
async def session_code(service):
    """Code of a freshly created, empty session."""
    created = await service.create_session()
    return created.code
