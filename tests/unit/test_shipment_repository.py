"""
Unit tests for ShipmentRepository.

Tests cover:
- Saving pending events and refreshing the projection
- Loading from the event log versus reading the projection
- Consistency reports between the two sides
- Rebuilding one or all projections from the log
"""

from unittest.mock import AsyncMock

import pytest

from shipments.domain import Shipment, ShipmentEventType, ShipmentStatus
from shipments.exceptions import ConsistencyError, PersistenceError, ShipmentNotFoundError
from shipments.observability import MockTracer
from shipments.projections import InMemoryProjectionStore, ShipmentProjection
from shipments.repository import ConsistencyReport, ShipmentRepository
from shipments.stores import InMemoryEventLogStore
from tests.fixtures import make_shipment, shipment_in


class TestSave:
    @pytest.mark.asyncio
    async def test_save_appends_events_and_upserts_projection(
        self,
        repository: ShipmentRepository,
        event_store: InMemoryEventLogStore,
        projection_store: InMemoryProjectionStore,
    ):
        shipment = shipment_in(ShipmentStatus.PREPARED)

        saved = await repository.save(shipment)

        assert [e.event_type for e in saved] == [
            ShipmentEventType.SHIPMENT_CREATED,
            ShipmentEventType.MOVED_TO_PREPARED,
        ]
        assert await event_store.count_events_for_shipment(shipment.shipment_id) == 2
        projection = await projection_store.get(shipment.shipment_id)
        assert projection is not None
        assert projection.status is ShipmentStatus.PREPARED

    @pytest.mark.asyncio
    async def test_save_clears_uncommitted_events(self, repository: ShipmentRepository):
        shipment = make_shipment()

        await repository.save(shipment)

        assert shipment.uncommitted_events == []
        assert await repository.save(shipment) == []

    @pytest.mark.asyncio
    async def test_failed_projection_upsert_keeps_events_buffered(
        self,
        event_store: InMemoryEventLogStore,
        projection_store: InMemoryProjectionStore,
    ):
        projection_store.upsert = AsyncMock(  # type: ignore[method-assign]
            side_effect=PersistenceError("upsert projection", "disk full")
        )
        repository = ShipmentRepository(event_store, projection_store, enable_tracing=False)
        shipment = make_shipment()

        with pytest.raises(PersistenceError):
            await repository.save(shipment)

        assert len(shipment.uncommitted_events) == 1
        assert await event_store.count_events_for_shipment(shipment.shipment_id) == 1

    @pytest.mark.asyncio
    async def test_retry_after_failure_counts_duplicates(
        self,
        event_store: InMemoryEventLogStore,
        projection_store: InMemoryProjectionStore,
    ):
        real_upsert = projection_store.upsert
        projection_store.upsert = AsyncMock(  # type: ignore[method-assign]
            side_effect=[PersistenceError("upsert projection", "locked"), None]
        )
        repository = ShipmentRepository(event_store, projection_store, enable_tracing=False)
        shipment = make_shipment()

        with pytest.raises(PersistenceError):
            await repository.save(shipment)
        projection_store.upsert = real_upsert  # type: ignore[method-assign]
        await repository.save(shipment)

        assert await event_store.count_events_for_shipment(shipment.shipment_id) == 1
        assert await repository.exists(shipment.shipment_id)

    @pytest.mark.asyncio
    async def test_save_records_span(
        self,
        event_store: InMemoryEventLogStore,
        projection_store: InMemoryProjectionStore,
        mock_tracer: MockTracer,
    ):
        repository = ShipmentRepository(event_store, projection_store, tracer=mock_tracer)

        await repository.save(make_shipment())

        assert "shipments.repository.save" in [name for name, _ in mock_tracer.spans]


class TestLoad:
    @pytest.mark.asyncio
    async def test_load_by_id_replays_events(self, repository: ShipmentRepository):
        shipment = shipment_in(ShipmentStatus.DELIVERED)
        await repository.save(shipment)

        loaded = await repository.load_by_id(shipment.shipment_id)

        assert loaded.status is ShipmentStatus.DELIVERED
        assert loaded.version == 4
        assert loaded.to_state() == shipment.to_state()

    @pytest.mark.asyncio
    async def test_load_missing_raises(self, repository: ShipmentRepository):
        with pytest.raises(ShipmentNotFoundError) as exc_info:
            await repository.load_by_id("ship_0_missing")
        assert exc_info.value.shipment_id == "ship_0_missing"

    @pytest.mark.asyncio
    async def test_find_by_id_reads_projection(self, repository: ShipmentRepository):
        shipment = shipment_in(ShipmentStatus.IN_TRANSIT)
        await repository.save(shipment)

        found = await repository.find_by_id(shipment.shipment_id)

        assert found is not None
        assert found.status is ShipmentStatus.IN_TRANSIT
        assert found.uncommitted_events == []

    @pytest.mark.asyncio
    async def test_find_by_id_missing_returns_none(self, repository: ShipmentRepository):
        assert await repository.find_by_id("ship_0_missing") is None
        assert not await repository.exists("ship_0_missing")

    @pytest.mark.asyncio
    async def test_find_created_for_order_reads_event_log(
        self, repository: ShipmentRepository, event_store: InMemoryEventLogStore
    ):
        shipment = shipment_in(ShipmentStatus.PREPARED, order_id="order-3")
        replacement = Shipment.create_for_exchange(
            "ship_0_original", "order-4", shipment.customer, shipment.line_items
        )
        await event_store.append(shipment.uncommitted_events)
        await event_store.append(replacement.uncommitted_events)

        found = await repository.find_created_for_order("order-3")

        assert found is not None
        assert found.shipment_id == shipment.shipment_id
        assert found.status is ShipmentStatus.PREPARED
        assert await repository.find_created_for_order("order-4") is None
        assert await repository.find_created_for_order("order-5") is None

    @pytest.mark.asyncio
    async def test_queries_hydrate_aggregates(self, repository: ShipmentRepository):
        first = make_shipment(order_id="order-9", customer_id="cust-9")
        second = shipment_in(ShipmentStatus.CANCELLED, order_id="order-9")
        await repository.save(first)
        await repository.save(second)

        by_order = await repository.find_by_order_id("order-9")
        by_customer = await repository.find_by_customer_id("cust-9")
        cancelled = await repository.find_by_status("cancelled")

        assert {s.shipment_id for s in by_order} == {first.shipment_id, second.shipment_id}
        assert [s.shipment_id for s in by_customer] == [first.shipment_id]
        assert [s.shipment_id for s in cancelled] == [second.shipment_id]
        assert all(isinstance(s, Shipment) for s in by_order)
        assert await repository.count() == 2
        assert await repository.count_by_status(ShipmentStatus.PENDING) == 1
        assert (await repository.count_by_all_statuses())[ShipmentStatus.CANCELLED] == 1

    @pytest.mark.asyncio
    async def test_get_events_in_order(self, repository: ShipmentRepository):
        shipment = shipment_in(ShipmentStatus.RETURNED)
        await repository.save(shipment)

        events = await repository.get_events(shipment.shipment_id)

        assert [e.new_status for e in events] == [
            ShipmentStatus.PENDING,
            ShipmentStatus.PREPARED,
            ShipmentStatus.IN_TRANSIT,
            ShipmentStatus.DELIVERED,
            ShipmentStatus.RETURNING,
            ShipmentStatus.RETURNED,
        ]


class TestConsistency:
    @pytest.mark.asyncio
    async def test_consistent_after_save(self, repository: ShipmentRepository):
        shipment = shipment_in(ShipmentStatus.PREPARED)
        await repository.save(shipment)

        report = await repository.validate_consistency(shipment.shipment_id)

        assert report == ConsistencyReport(
            shipment.shipment_id, ShipmentStatus.PREPARED, ShipmentStatus.PREPARED
        )
        assert report.consistent

    @pytest.mark.asyncio
    async def test_divergence_is_reported_not_repaired(
        self,
        repository: ShipmentRepository,
        event_store: InMemoryEventLogStore,
    ):
        shipment = make_shipment()
        await repository.save(shipment)
        shipment.move_to_prepared()
        await event_store.append(shipment.uncommitted_events)

        report = await repository.validate_consistency(shipment.shipment_id)

        assert not report.consistent
        assert report.events_status is ShipmentStatus.PREPARED
        assert report.projection_status is ShipmentStatus.PENDING
        still = await repository.find_by_id(shipment.shipment_id)
        assert still is not None
        assert still.status is ShipmentStatus.PENDING

    @pytest.mark.asyncio
    async def test_divergence_raises_when_asked(
        self,
        repository: ShipmentRepository,
        projection_store: InMemoryProjectionStore,
    ):
        shipment = make_shipment()
        await repository.save(shipment)
        await projection_store.delete(shipment.shipment_id)

        with pytest.raises(ConsistencyError):
            await repository.validate_consistency(
                shipment.shipment_id, raise_on_divergence=True
            )

    @pytest.mark.asyncio
    async def test_unknown_shipment_is_consistent(self, repository: ShipmentRepository):
        report = await repository.validate_consistency("ship_0_missing")

        assert report.events_status is None
        assert report.projection_status is None
        assert report.consistent


class TestRebuild:
    @pytest.mark.asyncio
    async def test_rebuild_projection_repairs_divergence(
        self,
        repository: ShipmentRepository,
        event_store: InMemoryEventLogStore,
    ):
        shipment = make_shipment()
        await repository.save(shipment)
        shipment.move_to_prepared()
        await event_store.append(shipment.uncommitted_events)

        rebuilt = await repository.rebuild_projection(shipment.shipment_id)

        assert rebuilt.status is ShipmentStatus.PREPARED
        report = await repository.validate_consistency(shipment.shipment_id)
        assert report.consistent

    @pytest.mark.asyncio
    async def test_rebuild_projection_missing_raises(self, repository: ShipmentRepository):
        with pytest.raises(ShipmentNotFoundError):
            await repository.rebuild_projection("ship_0_missing")

    @pytest.mark.asyncio
    async def test_rebuild_all_projections(
        self,
        repository: ShipmentRepository,
        event_store: InMemoryEventLogStore,
        projection_store: InMemoryProjectionStore,
    ):
        shipments = [make_shipment(), shipment_in(ShipmentStatus.DELIVERED)]
        for shipment in shipments:
            await event_store.append(shipment.uncommitted_events)
        await projection_store.upsert(
            ShipmentProjection.from_aggregate(make_shipment(order_id="order-orphan"))
        )

        written = await repository.rebuild_all_projections()

        assert written == 2
        assert await projection_store.count() == 2
        for shipment in shipments:
            assert (await repository.validate_consistency(shipment.shipment_id)).consistent


class TestConcurrentWriters:
    @pytest.mark.asyncio
    async def test_last_projection_upsert_wins(self, repository: ShipmentRepository):
        shipment = make_shipment()
        await repository.save(shipment)
        first = await repository.load_by_id(shipment.shipment_id)
        second = await repository.load_by_id(shipment.shipment_id)

        first.move_to_prepared()
        second.cancel()
        await repository.save(first)
        await repository.save(second)

        events = await repository.get_events(shipment.shipment_id)
        assert len(events) == 3
        projection = await repository.find_by_id(shipment.shipment_id)
        assert projection is not None
        assert projection.status is ShipmentStatus.CANCELLED

