"""
Shipment repository.

Coordinates the event log (source of truth) and the projection store (query
side). Writes go to both; reads come from the projection unless a caller
explicitly asks for the event-sourced view.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from shipments.domain.aggregate import Shipment
from shipments.domain.events import ShipmentEvent, ShipmentEventType
from shipments.domain.status import ShipmentStatus
from shipments.exceptions import ConsistencyError, EmptyHistoryError, ShipmentNotFoundError
from shipments.observability import (
    ATTR_EVENT_COUNT,
    ATTR_QUERY_LIMIT,
    ATTR_QUERY_OFFSET,
    ATTR_SHIPMENT_ID,
    ATTR_SHIPMENT_STATUS,
    Tracer,
    create_tracer,
)
from shipments.projections.interface import ProjectionStore
from shipments.projections.record import ShipmentProjection
from shipments.stores.interface import EventLogStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsistencyReport:
    """
    Comparison of a shipment's status in the event log and in its projection.

    Either status is None when that side has nothing for the shipment.
    """

    shipment_id: str
    events_status: ShipmentStatus | None
    projection_status: ShipmentStatus | None

    @property
    def consistent(self) -> bool:
        return self.events_status == self.projection_status


class ShipmentRepository:
    """
    Repository for shipment aggregates.

    Save order is event log first, then projection. When the projection
    upsert fails after a successful append, the events stay buffered on the
    aggregate; saving again re-appends them as counted duplicates and
    retries the upsert, and ``rebuild_projection`` repairs the read side
    from the log.

    There is no per-shipment locking: two concurrent writers both append
    their events and the last projection upsert wins.

    Example:
        >>> repository = ShipmentRepository(InMemoryEventLogStore(), InMemoryProjectionStore())
        >>> shipment = Shipment.create(order_id="order_1", customer=customer, line_items=items)
        >>> await repository.save(shipment)
        >>> loaded = await repository.load_by_id(shipment.shipment_id)
    """

    def __init__(
        self,
        event_store: EventLogStore,
        projection_store: ProjectionStore,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._event_store = event_store
        self._projection_store = projection_store
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def event_store(self) -> EventLogStore:
        return self._event_store

    @property
    def projection_store(self) -> ProjectionStore:
        return self._projection_store

    async def save(self, shipment: Shipment) -> list[ShipmentEvent]:
        """
        Persist a shipment's uncommitted events and refresh its projection.

        Returns:
            The events that were pending when save was called

        Raises:
            PersistenceError: If either store fails. The aggregate keeps
                its uncommitted events.
        """
        pending = shipment.uncommitted_events

        with self._tracer.span(
            "shipments.repository.save",
            {
                ATTR_SHIPMENT_ID: shipment.shipment_id,
                ATTR_SHIPMENT_STATUS: shipment.status.value,
                ATTR_EVENT_COUNT: len(pending),
            },
        ):
            if pending:
                result = await self._event_store.append(pending)
                if result.has_duplicates:
                    logger.warning(
                        "Shipment %s: %d of %d events were already stored",
                        shipment.shipment_id,
                        result.duplicates,
                        result.total,
                        extra={"shipment_id": shipment.shipment_id},
                    )

            await self._projection_store.upsert(ShipmentProjection.from_aggregate(shipment))
            shipment.mark_events_as_committed()

        logger.debug(
            "Saved shipment %s with %d new events",
            shipment.shipment_id,
            len(pending),
            extra={"shipment_id": shipment.shipment_id, "order_id": shipment.order_id},
        )
        return pending

    async def load_by_id(self, shipment_id: str) -> Shipment:
        """
        Rebuild a shipment from the event log.

        Raises:
            ShipmentNotFoundError: If the log holds no events for the shipment
        """
        with self._tracer.span("shipments.repository.load", {ATTR_SHIPMENT_ID: shipment_id}):
            events = await self._event_store.replay(shipment_id)
            try:
                return Shipment.from_events(events)
            except EmptyHistoryError:
                raise ShipmentNotFoundError(shipment_id) from None

    async def find_by_id(self, shipment_id: str) -> Shipment | None:
        """Read a shipment from its projection. Returns None if there is none."""
        projection = await self._projection_store.get(shipment_id)
        if projection is None:
            return None
        return Shipment.hydrate(projection.to_state())

    async def exists(self, shipment_id: str) -> bool:
        return await self._projection_store.get(shipment_id) is not None

    async def find_by_order_id(self, order_id: str) -> list[Shipment]:
        return self._hydrate_all(await self._projection_store.find_by_order_id(order_id))

    async def find_by_customer_id(self, customer_id: str) -> list[Shipment]:
        return self._hydrate_all(await self._projection_store.find_by_customer_id(customer_id))

    async def find_by_status(self, status: ShipmentStatus | str) -> list[Shipment]:
        return self._hydrate_all(await self._projection_store.find_by_status(status))

    async def list_all(self, limit: int = 50, offset: int = 0) -> list[Shipment]:
        with self._tracer.span(
            "shipments.repository.list_all",
            {ATTR_QUERY_LIMIT: limit, ATTR_QUERY_OFFSET: offset},
        ):
            return self._hydrate_all(await self._projection_store.list_all(limit, offset))

    async def count(self) -> int:
        return await self._projection_store.count()

    async def count_by_status(self, status: ShipmentStatus | str) -> int:
        return await self._projection_store.count_by_status(status)

    async def count_by_all_statuses(self) -> dict[ShipmentStatus, int]:
        return await self._projection_store.count_by_all_statuses()

    async def get_events(self, shipment_id: str) -> list[ShipmentEvent]:
        return await self._event_store.replay(shipment_id)

    async def find_created_for_order(self, order_id: str) -> Shipment | None:
        """
        Rebuild the NORMAL shipment created for ``order_id``, if there is one.

        Reads the event log rather than the projection, so a creation whose
        projection write failed is still found.
        """
        events = await self._event_store.get_events_by_order_id(order_id)
        created = next(
            (e for e in events if e.event_type is ShipmentEventType.SHIPMENT_CREATED), None
        )
        if created is None:
            return None
        return await self.load_by_id(created.shipment_id)

    async def validate_consistency(
        self, shipment_id: str, *, raise_on_divergence: bool = False
    ) -> ConsistencyReport:
        """
        Compare the event-sourced status with the projection status.

        Never repairs anything; see ``rebuild_projection``.

        Raises:
            ConsistencyError: If the two sides differ and ``raise_on_divergence`` is set
        """
        events = await self._event_store.replay(shipment_id)
        events_status = Shipment.from_events(events).status if events else None
        projection = await self._projection_store.get(shipment_id)
        projection_status = projection.status if projection else None

        report = ConsistencyReport(shipment_id, events_status, projection_status)
        if not report.consistent:
            logger.warning(
                "Projection diverged for shipment %s: events=%s projection=%s",
                shipment_id,
                events_status.value if events_status else None,
                projection_status.value if projection_status else None,
                extra={"shipment_id": shipment_id},
            )
            if raise_on_divergence:
                raise ConsistencyError(shipment_id, events_status, projection_status)
        return report

    async def rebuild_projection(self, shipment_id: str) -> Shipment:
        """
        Replace a shipment's projection with one derived from its events.

        Raises:
            ShipmentNotFoundError: If the log holds no events for the shipment
        """
        shipment = await self.load_by_id(shipment_id)
        await self._projection_store.upsert(ShipmentProjection.from_aggregate(shipment))
        logger.info(
            "Rebuilt projection for shipment %s",
            shipment_id,
            extra={"shipment_id": shipment_id, "status": shipment.status.value},
        )
        return shipment

    async def rebuild_all_projections(self) -> int:
        """
        Replace every projection with one derived from the event log.

        Returns:
            Number of projections written
        """
        with self._tracer.span("shipments.repository.rebuild_all"):
            projections = []
            for shipment_id in await self._event_store.get_shipment_ids():
                events = await self._event_store.replay(shipment_id)
                projections.append(
                    ShipmentProjection.from_aggregate(Shipment.from_events(events))
                )
            await self._projection_store.rebuild_all(projections)

        logger.info("Rebuilt all %d shipment projections from the event log", len(projections))
        return len(projections)

    @staticmethod
    def _hydrate_all(projections: list[ShipmentProjection]) -> list[Shipment]:
        return [Shipment.hydrate(p.to_state()) for p in projections]


__all__ = ["ShipmentRepository", "ConsistencyReport"]
