"""
shipments - Event-sourced shipment tracking service.

This package provides:
- Shipment aggregate with a closed status state machine
- Append-only event log with In-Memory and SQLite backends
- Shipment projections (read model) with In-Memory and SQLite backends
- Repository keeping the event log and projections in step
- Notification publishing and inbound message handling over RabbitMQ
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("shipments")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from shipments.domain import (
    CustomerInfo,
    LineItem,
    ProductCondition,
    Shipment,
    ShipmentEvent,
    ShipmentEventType,
    ShipmentKind,
    ShipmentState,
    ShipmentStatus,
    TrackingEntry,
)
from shipments.exceptions import (
    ConsistencyError,
    DuplicateEventError,
    EmptyHistoryError,
    InvalidTransitionError,
    MalformedHistoryError,
    MessageProcessingError,
    NotificationDeliveryError,
    PersistenceError,
    ShipmentNotFoundError,
    ShipmentServiceError,
    ValidationError,
)
from shipments.stores import (
    AppendResult,
    EventLogStore,
    InMemoryEventLogStore,
    SQLiteEventLogStore,
)
from shipments.projections import (
    InMemoryProjectionStore,
    ProjectionStore,
    ShipmentProjection,
    SQLiteProjectionStore,
)
from shipments.repository import ConsistencyReport, ShipmentRepository
from shipments.messaging import (
    InMemoryTransport,
    NotificationPolicy,
    NotificationPublisher,
    NotificationType,
    RabbitMQConfig,
)
from shipments.application import ShipmentService
from shipments.config import ShipmentSettings
from shipments.bootstrap import ShipmentApplication

__all__ = [
    "__version__",
    # Domain
    "Shipment",
    "ShipmentState",
    "ShipmentStatus",
    "ShipmentKind",
    "ProductCondition",
    "ShipmentEvent",
    "ShipmentEventType",
    "CustomerInfo",
    "LineItem",
    "TrackingEntry",
    # Exceptions
    "ShipmentServiceError",
    "ValidationError",
    "InvalidTransitionError",
    "ShipmentNotFoundError",
    "DuplicateEventError",
    "PersistenceError",
    "ConsistencyError",
    "EmptyHistoryError",
    "MalformedHistoryError",
    "NotificationDeliveryError",
    "MessageProcessingError",
    # Stores
    "AppendResult",
    "EventLogStore",
    "InMemoryEventLogStore",
    "SQLiteEventLogStore",
    "ProjectionStore",
    "ShipmentProjection",
    "InMemoryProjectionStore",
    "SQLiteProjectionStore",
    "ShipmentRepository",
    "ConsistencyReport",
    # Messaging and application
    "NotificationType",
    "NotificationPolicy",
    "NotificationPublisher",
    "InMemoryTransport",
    "RabbitMQConfig",
    "ShipmentService",
    "ShipmentSettings",
    "ShipmentApplication",
]
