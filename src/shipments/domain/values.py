"""
Value objects captured by a shipment.

All of them are frozen: the customer snapshot and line items are set
once when the shipment is created and never change afterwards. Field
aliases are camelCase so the same models read and write the wire
payloads exchanged with the orders service.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shipments.domain.status import ShipmentStatus


class _ValueObject(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class CustomerInfo(_ValueObject):
    """Customer contact and delivery address snapshot."""

    customer_id: str = Field(..., min_length=1, description="Customer identifier")
    name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)


class LineItem(_ValueObject):
    """An ordered article with the unit price captured at creation time."""

    article_id: str = Field(..., min_length=1, description="Article identifier")
    quantity: int = Field(..., gt=0, description="Number of units, always positive")
    price: float = Field(..., ge=0, description="Unit price, never negative")

    @property
    def subtotal(self) -> float:
        return self.quantity * self.price


class TrackingEntry(_ValueObject):
    """One row of a shipment's tracking history."""

    status: ShipmentStatus
    description: str = ""
    timestamp: datetime
    actor: str | None = None


__all__ = ["CustomerInfo", "LineItem", "TrackingEntry"]
