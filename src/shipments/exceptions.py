"""Exceptions for the shipments package."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from shipments.domain.status import ShipmentStatus


class ShipmentServiceError(Exception):
    """Base exception for the shipment service."""

    pass


class ValidationError(ShipmentServiceError):
    """Raised when command or message input is malformed.

    Always raised before an aggregate is touched.
    """

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message)


class InvalidTransitionError(ShipmentServiceError):
    """Raised when a domain operation is not allowed from the current status."""

    def __init__(
        self,
        source: ShipmentStatus,
        target: ShipmentStatus,
        reason: str | None = None,
    ) -> None:
        self.source = source
        self.target = target
        self.reason = reason
        message = f"Invalid status transition: {source.value} -> {target.value}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ShipmentNotFoundError(ShipmentServiceError):
    """Raised when a shipment has no stored events or no projection."""

    def __init__(self, shipment_id: str) -> None:
        self.shipment_id = shipment_id
        super().__init__(f"Shipment not found: {shipment_id}")


class DuplicateEventError(ShipmentServiceError):
    """Raised by a backend when an event id is already stored.

    Event log stores absorb this condition and count it as a duplicate;
    it never reaches callers of ``append``.
    """

    def __init__(self, event_id: Any) -> None:
        self.event_id = event_id
        super().__init__(f"Event already stored: {event_id}")


class PersistenceError(ShipmentServiceError):
    """Raised when the event log or the projection store is unavailable."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"Persistence failure during {operation}: {message}")


class ConsistencyError(ShipmentServiceError):
    """Raised when the projection has diverged from the event log."""

    def __init__(
        self,
        shipment_id: str,
        events_status: ShipmentStatus | None,
        projection_status: ShipmentStatus | None,
    ) -> None:
        self.shipment_id = shipment_id
        self.events_status = events_status
        self.projection_status = projection_status
        events_value = events_status.value if events_status else "missing"
        projection_value = projection_status.value if projection_status else "missing"
        super().__init__(
            f"Projection diverged for shipment {shipment_id}: "
            f"events={events_value}, projection={projection_value}"
        )


class EmptyHistoryError(ShipmentServiceError, ValueError):
    """Raised when an aggregate is rebuilt from an empty event sequence."""

    def __init__(self) -> None:
        super().__init__("Cannot rebuild a shipment without events")


class MalformedHistoryError(ShipmentServiceError, ValueError):
    """Raised when the first event of a history is not a creation event."""

    def __init__(self, shipment_id: str, event_type: str) -> None:
        self.shipment_id = shipment_id
        self.event_type = event_type
        super().__init__(
            f"First event of shipment {shipment_id} must carry customer info and "
            f"line items, got {event_type}"
        )


class NotificationDeliveryError(ShipmentServiceError):
    """Raised when a critical outbound notification could not be published."""

    def __init__(self, notification_type: str, routing_key: str, message: str) -> None:
        self.notification_type = notification_type
        self.routing_key = routing_key
        super().__init__(
            f"Failed to publish critical notification {notification_type} "
            f"to {routing_key}: {message}"
        )


class MessageProcessingError(ShipmentServiceError):
    """Raised when an inbound message cannot be parsed or is missing fields."""

    def __init__(self, message_type: str, message: str) -> None:
        self.message_type = message_type
        super().__init__(f"Invalid {message_type} message: {message}")


__all__ = [
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
]
