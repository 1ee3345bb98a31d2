"""
Shared pytest fixtures for the shipments tests.

This module provides:
- Event log and projection store fixtures (in-memory and SQLite ``:memory:``)
- Repository, transport, publisher and service fixtures wired together
- Sample shipment fixtures

Every fixture builds fresh objects; nothing is shared between tests.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import aiosqlite
import pytest
import pytest_asyncio

from shipments.application import ShipmentService
from shipments.domain import CustomerInfo, LineItem, Shipment
from shipments.messaging import InMemoryTransport, NotificationPublisher
from shipments.observability import MockTracer
from shipments.projections import InMemoryProjectionStore, SQLiteProjectionStore
from shipments.repository import ShipmentRepository
from shipments.stores import InMemoryEventLogStore, SQLiteEventLogStore
from tests.fixtures import make_customer, make_line_items, make_shipment

# ============================================================================
# Sample data
# ============================================================================


@pytest.fixture
def customer() -> CustomerInfo:
    return make_customer()


@pytest.fixture
def line_items() -> list[LineItem]:
    return make_line_items()


@pytest.fixture
def shipment() -> Shipment:
    """A new PENDING shipment with its creation event still buffered."""
    return make_shipment()


@pytest.fixture
def mock_tracer() -> MockTracer:
    return MockTracer()


# ============================================================================
# Stores
# ============================================================================


@pytest.fixture
def event_store() -> InMemoryEventLogStore:
    return InMemoryEventLogStore(enable_tracing=False)


@pytest.fixture
def projection_store() -> InMemoryProjectionStore:
    return InMemoryProjectionStore(enable_tracing=False)


@pytest_asyncio.fixture
async def sqlite_event_store() -> AsyncGenerator[SQLiteEventLogStore, None]:
    store = SQLiteEventLogStore(":memory:", wal_mode=False, enable_tracing=False)
    await store.initialize()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def sqlite_connection() -> AsyncGenerator[aiosqlite.Connection, None]:
    async with aiosqlite.connect(":memory:") as db:
        yield db


@pytest_asyncio.fixture
async def sqlite_projection_store(
    sqlite_connection: aiosqlite.Connection,
) -> SQLiteProjectionStore:
    store = SQLiteProjectionStore(sqlite_connection, enable_tracing=False)
    await store.initialize()
    return store


# ============================================================================
# Repository, messaging and service
# ============================================================================


@pytest.fixture
def repository(
    event_store: InMemoryEventLogStore,
    projection_store: InMemoryProjectionStore,
) -> ShipmentRepository:
    return ShipmentRepository(event_store, projection_store, enable_tracing=False)


@pytest.fixture
def transport() -> InMemoryTransport:
    return InMemoryTransport()


@pytest.fixture
def publisher(transport: InMemoryTransport) -> NotificationPublisher:
    return NotificationPublisher(transport, enable_tracing=False)


@pytest.fixture
def service(
    repository: ShipmentRepository,
    publisher: NotificationPublisher,
) -> ShipmentService:
    return ShipmentService(repository, publisher)
