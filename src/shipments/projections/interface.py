"""
Projection store protocol.

Any class implementing these methods can back the shipment query side.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from shipments.domain.status import ShipmentStatus
from shipments.projections.record import ShipmentProjection


@runtime_checkable
class ProjectionStore(Protocol):
    """
    Protocol for shipment projection stores.

    Ordering rules:
    - ``find_by_order_id``, ``find_by_customer_id`` and ``list_all``
      return the newest ``created_at`` first
    - ``find_by_status`` returns the newest ``updated_at`` first

    Implementations:
    - InMemoryProjectionStore: Dictionary-backed, for tests and development
    - SQLiteProjectionStore: ``shipment_projections`` table via aiosqlite
    """

    async def upsert(self, projection: ShipmentProjection) -> None:
        """Insert or fully replace the projection of a shipment."""
        ...

    async def get(self, shipment_id: str) -> ShipmentProjection | None: ...

    async def find_by_order_id(self, order_id: str) -> list[ShipmentProjection]: ...

    async def find_by_customer_id(self, customer_id: str) -> list[ShipmentProjection]: ...

    async def find_by_status(self, status: ShipmentStatus | str) -> list[ShipmentProjection]:
        """Find projections by status. String statuses match in any letter case."""
        ...

    async def list_all(self, limit: int = 50, offset: int = 0) -> list[ShipmentProjection]: ...

    async def count(self) -> int: ...

    async def count_by_status(self, status: ShipmentStatus | str) -> int: ...

    async def count_by_all_statuses(self) -> dict[ShipmentStatus, int]:
        """Count per status. Every status is present, zero when unused."""
        ...

    async def delete(self, shipment_id: str) -> bool: ...

    async def rebuild_all(self, projections: Sequence[ShipmentProjection]) -> None:
        """Wipe every projection and insert ``projections`` in their place."""
        ...


__all__ = ["ProjectionStore"]
