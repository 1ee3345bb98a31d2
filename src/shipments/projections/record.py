"""
Shipment projection record.

The projection is a denormalized, query-optimized view of a shipment. It
is a pure function of the aggregate state and is rebuilt from the event
log whenever it is lost or diverges.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from shipments.domain.aggregate import ShipmentState
from shipments.domain.status import ShipmentKind, ShipmentStatus
from shipments.domain.values import CustomerInfo, LineItem, TrackingEntry

if TYPE_CHECKING:
    from shipments.domain.aggregate import Shipment


class ShipmentProjection(BaseModel):
    """
    Flattened view of a shipment.

    ``customer_id`` is duplicated from the customer snapshot so stores can
    index it.

    Example:
        >>> projection = ShipmentProjection.from_aggregate(shipment)
        >>> projection.status
        <ShipmentStatus.PENDING: 'PENDING'>
    """

    shipment_id: str = Field(..., min_length=1)
    order_id: str = Field(..., min_length=1)
    customer_id: str = Field(..., min_length=1)
    status: ShipmentStatus
    kind: ShipmentKind = ShipmentKind.NORMAL
    customer: CustomerInfo
    line_items: list[LineItem] = Field(..., min_length=1)
    tracking: list[TrackingEntry] = Field(default_factory=list)
    related_shipment_id: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_state(cls, state: ShipmentState) -> ShipmentProjection:
        return cls(
            shipment_id=state.shipment_id,
            order_id=state.order_id,
            customer_id=state.customer.customer_id,
            status=state.status,
            kind=state.kind,
            customer=state.customer,
            line_items=list(state.line_items),
            tracking=list(state.tracking),
            related_shipment_id=state.related_shipment_id,
            created_at=state.created_at,
            updated_at=state.updated_at,
        )

    @classmethod
    def from_aggregate(cls, shipment: Shipment) -> ShipmentProjection:
        return cls.from_state(shipment.to_state())

    def to_state(self) -> ShipmentState:
        """Validated state suitable for ``Shipment.hydrate``."""
        return ShipmentState(
            shipment_id=self.shipment_id,
            order_id=self.order_id,
            status=self.status,
            kind=self.kind,
            customer=self.customer,
            line_items=tuple(self.line_items),
            tracking=tuple(self.tracking),
            related_shipment_id=self.related_shipment_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


__all__ = ["ShipmentProjection"]
