"""
Shipment domain model: statuses, value objects, events and the aggregate.

Nothing in this package performs I/O.
"""

from shipments.domain.aggregate import Shipment, ShipmentState, generate_shipment_id
from shipments.domain.events import (
    CreationEvent,
    EventRegistry,
    EventTypeNotFoundError,
    ExchangeCompleted,
    ExchangeInitiated,
    MovedToDelivered,
    MovedToInTransit,
    MovedToPrepared,
    ReturnCompleted,
    ReturnInitiated,
    ShipmentCancelled,
    ShipmentCreated,
    ShipmentErrorRecorded,
    ShipmentEvent,
    ShipmentEventType,
    default_registry,
    register_event,
)
from shipments.domain.status import (
    ProductCondition,
    ShipmentKind,
    ShipmentStatus,
    can_be_cancelled,
    can_complete_return,
    can_initiate_exchange,
    can_initiate_return,
)
from shipments.domain.values import CustomerInfo, LineItem, TrackingEntry

__all__ = [
    "Shipment",
    "ShipmentState",
    "generate_shipment_id",
    "ShipmentStatus",
    "ShipmentKind",
    "ProductCondition",
    "can_be_cancelled",
    "can_initiate_return",
    "can_complete_return",
    "can_initiate_exchange",
    "CustomerInfo",
    "LineItem",
    "TrackingEntry",
    "ShipmentEventType",
    "ShipmentEvent",
    "CreationEvent",
    "EventRegistry",
    "EventTypeNotFoundError",
    "default_registry",
    "register_event",
    "ShipmentCreated",
    "MovedToPrepared",
    "MovedToInTransit",
    "MovedToDelivered",
    "ShipmentCancelled",
    "ReturnInitiated",
    "ReturnCompleted",
    "ExchangeInitiated",
    "ExchangeCompleted",
    "ShipmentErrorRecorded",
]
