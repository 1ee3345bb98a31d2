"""Shipment projections: the query side rebuilt from the event log."""

from shipments.projections.in_memory import InMemoryProjectionStore
from shipments.projections.interface import ProjectionStore
from shipments.projections.record import ShipmentProjection
from shipments.projections.sqlite import SQLiteProjectionStore

__all__ = [
    "ProjectionStore",
    "ShipmentProjection",
    "InMemoryProjectionStore",
    "SQLiteProjectionStore",
]
