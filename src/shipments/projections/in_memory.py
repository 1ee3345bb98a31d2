"""
In-memory projection store.

Suitable for tests and development. Query performance is O(n).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence

from shipments.domain.status import ShipmentStatus
from shipments.observability import ATTR_SHIPMENT_ID, ATTR_SHIPMENT_STATUS, Tracer, create_tracer
from shipments.projections.record import ShipmentProjection

logger = logging.getLogger(__name__)


class InMemoryProjectionStore:
    """
    Dictionary-backed implementation of ``ProjectionStore``.

    Stored projections are copies, so callers mutating a returned
    projection never change the stored one.

    Example:
        >>> store = InMemoryProjectionStore()
        >>> await store.upsert(ShipmentProjection.from_aggregate(shipment))
        >>> await store.count()
        1
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._projections: dict[str, ShipmentProjection] = {}
        self._lock = asyncio.Lock()

    async def upsert(self, projection: ShipmentProjection) -> None:
        with self._tracer.span(
            "shipments.projection.upsert",
            {
                ATTR_SHIPMENT_ID: projection.shipment_id,
                ATTR_SHIPMENT_STATUS: projection.status.value,
            },
        ):
            async with self._lock:
                self._projections[projection.shipment_id] = projection.model_copy(deep=True)

    async def get(self, shipment_id: str) -> ShipmentProjection | None:
        async with self._lock:
            projection = self._projections.get(shipment_id)
            return projection.model_copy(deep=True) if projection else None

    async def _select(
        self,
        predicate: Callable[[ShipmentProjection], bool],
        newest_by: str = "created_at",
    ) -> list[ShipmentProjection]:
        async with self._lock:
            matches = [p for p in self._projections.values() if predicate(p)]
        matches.sort(key=lambda p: getattr(p, newest_by), reverse=True)
        return [p.model_copy(deep=True) for p in matches]

    async def find_by_order_id(self, order_id: str) -> list[ShipmentProjection]:
        return await self._select(lambda p: p.order_id == order_id)

    async def find_by_customer_id(self, customer_id: str) -> list[ShipmentProjection]:
        return await self._select(lambda p: p.customer_id == customer_id)

    async def find_by_status(self, status: ShipmentStatus | str) -> list[ShipmentProjection]:
        wanted = ShipmentStatus.parse(status)
        return await self._select(lambda p: p.status is wanted, newest_by="updated_at")

    async def list_all(self, limit: int = 50, offset: int = 0) -> list[ShipmentProjection]:
        everything = await self._select(lambda p: True)
        return everything[offset : offset + limit]

    async def count(self) -> int:
        async with self._lock:
            return len(self._projections)

    async def count_by_status(self, status: ShipmentStatus | str) -> int:
        wanted = ShipmentStatus.parse(status)
        async with self._lock:
            return sum(1 for p in self._projections.values() if p.status is wanted)

    async def count_by_all_statuses(self) -> dict[ShipmentStatus, int]:
        counts = dict.fromkeys(ShipmentStatus, 0)
        async with self._lock:
            for projection in self._projections.values():
                counts[projection.status] += 1
        return counts

    async def delete(self, shipment_id: str) -> bool:
        async with self._lock:
            return self._projections.pop(shipment_id, None) is not None

    async def rebuild_all(self, projections: Sequence[ShipmentProjection]) -> None:
        async with self._lock:
            self._projections = {p.shipment_id: p.model_copy(deep=True) for p in projections}
        logger.info("Rebuilt %d shipment projections", len(projections))

    async def clear(self) -> None:
        async with self._lock:
            self._projections.clear()

    def __len__(self) -> int:
        return len(self._projections)


__all__ = ["InMemoryProjectionStore"]
