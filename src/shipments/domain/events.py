"""
Shipment domain events.

Events are immutable records of what happened to a shipment. They are the
source of truth: the aggregate and every projection are derived from them.
Each event is keyed by ``event_id``, which is also the idempotency key
used by the event log stores.

The set of event types is closed. Every concrete event class registers
itself with ``default_registry`` so stores can turn stored rows back into
the right class.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from shipments.domain.status import ShipmentKind, ShipmentStatus
from shipments.domain.values import CustomerInfo, LineItem
from shipments.exceptions import ValidationError

logger = logging.getLogger(__name__)


class ShipmentEventType(str, Enum):
    """Closed enumeration of shipment event types."""

    SHIPMENT_CREATED = "SHIPMENT_CREATED"
    MOVED_TO_PREPARED = "MOVED_TO_PREPARED"
    MOVED_TO_IN_TRANSIT = "MOVED_TO_IN_TRANSIT"
    MOVED_TO_DELIVERED = "MOVED_TO_DELIVERED"
    SHIPMENT_CANCELLED = "SHIPMENT_CANCELLED"
    RETURN_INITIATED = "RETURN_INITIATED"
    RETURN_COMPLETED = "RETURN_COMPLETED"
    EXCHANGE_INITIATED = "EXCHANGE_INITIATED"
    EXCHANGE_COMPLETED = "EXCHANGE_COMPLETED"
    SHIPMENT_ERROR = "SHIPMENT_ERROR"


_CLOSING_STATUSES = frozenset(
    {
        ShipmentStatus.DELIVERED,
        ShipmentStatus.CANCELLED,
        ShipmentStatus.RETURNED,
        ShipmentStatus.EXCHANGE_PROCESSED,
    }
)


class ShipmentEvent(BaseModel):
    """
    Base class for all shipment events.

    Attributes:
        event_id: Unique identifier for this event instance (idempotency key)
        event_type: Type of the event, fixed per subclass
        shipment_id: Shipment the event belongs to
        order_id: Order the shipment was created for
        occurred_at: When the event occurred (UTC)
        actor: User or system that triggered the event
        description: Human-readable note recorded in tracking
        previous_status: Status before the event, None for creation and errors
        new_status: Status after the event, None for non-status events

    Example:
        >>> event = MovedToPrepared(
        ...     shipment_id="ship_1",
        ...     order_id="order_1",
        ...     previous_status=ShipmentStatus.PENDING,
        ...     actor="operator",
        ... )
        >>> event.new_status
        <ShipmentStatus.PREPARED: 'PREPARED'>
    """

    model_config = ConfigDict(frozen=True)

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier",
    )
    event_type: ShipmentEventType
    shipment_id: str = Field(..., min_length=1)
    order_id: str = Field(..., min_length=1)
    occurred_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When event occurred (UTC)",
    )
    actor: str | None = None
    description: str = ""
    previous_status: ShipmentStatus | None = None
    new_status: ShipmentStatus | None = None

    def __str__(self) -> str:
        return (
            f"{self.event_type.value}(event_id={self.event_id}, "
            f"shipment_id={self.shipment_id})"
        )

    @property
    def is_status_change(self) -> bool:
        return self.new_status is not None

    @property
    def is_creation_event(self) -> bool:
        """True for events that carry the customer and line-item snapshot."""
        return self.event_type in (
            ShipmentEventType.SHIPMENT_CREATED,
            ShipmentEventType.EXCHANGE_COMPLETED,
        )

    @property
    def is_closing_event(self) -> bool:
        """
        True when the event ends the forward delivery flow.

        DELIVERED counts as closing even though ``ShipmentStatus.is_terminal``
        is False for it, since a return can still follow.
        """
        return self.new_status in _CLOSING_STATUSES

    @property
    def is_error(self) -> bool:
        return self.event_type is ShipmentEventType.SHIPMENT_ERROR

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible representation used by the stores."""
        return self.model_dump(mode="json")


TEvent = TypeVar("TEvent", bound=ShipmentEvent)


class EventTypeNotFoundError(KeyError):
    """Raised when a stored event type has no registered class."""

    def __init__(self, event_type: str, available_types: list[str]) -> None:
        self.event_type = event_type
        self.available_types = available_types
        available = ", ".join(sorted(available_types)) if available_types else "none"
        super().__init__(f"Unknown event type: '{event_type}'. Available types: {available}.")


class EventRegistry:
    """
    Maps event type names to event classes.

    Example:
        >>> registry = EventRegistry()
        >>> registry.register(MovedToPrepared)
        >>> registry.get("MOVED_TO_PREPARED")
        <class 'shipments.domain.events.MovedToPrepared'>
    """

    def __init__(self) -> None:
        self._registry: dict[str, type[ShipmentEvent]] = {}

    def register(self, event_class: type[TEvent]) -> type[TEvent]:
        event_type = event_class.model_fields["event_type"].default
        key = event_type.value if isinstance(event_type, Enum) else str(event_type)
        existing = self._registry.get(key)
        if existing is not None and existing is not event_class:
            raise ValueError(
                f"Event type '{key}' is already registered to {existing.__name__}"
            )
        self._registry[key] = event_class
        logger.debug(
            "Registered event type '%s' -> %s",
            key,
            event_class.__name__,
            extra={"event_type": key, "event_class": event_class.__name__},
        )
        return event_class

    def get(self, event_type: str | ShipmentEventType) -> type[ShipmentEvent]:
        key = event_type.value if isinstance(event_type, ShipmentEventType) else event_type
        try:
            return self._registry[key]
        except KeyError:
            raise EventTypeNotFoundError(key, list(self._registry)) from None

    def deserialize(self, data: dict[str, Any]) -> ShipmentEvent:
        """
        Rebuild an event from its ``to_dict`` representation.

        Raises:
            EventTypeNotFoundError: If the event type is not registered
            ValidationError: If the payload does not match the event class
        """
        event_class = self.get(data.get("event_type", ""))
        try:
            return event_class.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Stored {event_class.__name__} payload is invalid",
                errors=e.errors(include_url=False),
            ) from e

    def list_types(self) -> list[str]:
        return sorted(self._registry)

    def __contains__(self, event_type: str) -> bool:
        return event_type in self._registry

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._registry))

    def __len__(self) -> int:
        return len(self._registry)


default_registry = EventRegistry()


def register_event(event_class: type[TEvent]) -> type[TEvent]:
    """Class decorator registering an event with ``default_registry``."""
    return default_registry.register(event_class)


@register_event
class ShipmentCreated(ShipmentEvent):
    """A NORMAL shipment was created for a paid order."""

    event_type: ShipmentEventType = ShipmentEventType.SHIPMENT_CREATED
    new_status: ShipmentStatus | None = ShipmentStatus.PENDING
    customer: CustomerInfo
    line_items: tuple[LineItem, ...] = Field(..., min_length=1)
    shipment_kind: ShipmentKind = ShipmentKind.NORMAL


@register_event
class MovedToPrepared(ShipmentEvent):
    event_type: ShipmentEventType = ShipmentEventType.MOVED_TO_PREPARED
    new_status: ShipmentStatus | None = ShipmentStatus.PREPARED


@register_event
class MovedToInTransit(ShipmentEvent):
    event_type: ShipmentEventType = ShipmentEventType.MOVED_TO_IN_TRANSIT
    new_status: ShipmentStatus | None = ShipmentStatus.IN_TRANSIT


@register_event
class MovedToDelivered(ShipmentEvent):
    event_type: ShipmentEventType = ShipmentEventType.MOVED_TO_DELIVERED
    new_status: ShipmentStatus | None = ShipmentStatus.DELIVERED


@register_event
class ShipmentCancelled(ShipmentEvent):
    event_type: ShipmentEventType = ShipmentEventType.SHIPMENT_CANCELLED
    new_status: ShipmentStatus | None = ShipmentStatus.CANCELLED


@register_event
class ReturnInitiated(ShipmentEvent):
    event_type: ShipmentEventType = ShipmentEventType.RETURN_INITIATED
    new_status: ShipmentStatus | None = ShipmentStatus.RETURNING


@register_event
class ReturnCompleted(ShipmentEvent):
    event_type: ShipmentEventType = ShipmentEventType.RETURN_COMPLETED
    new_status: ShipmentStatus | None = ShipmentStatus.RETURNED


@register_event
class ExchangeInitiated(ShipmentEvent):
    """The original shipment was closed out in favour of a replacement shipment."""

    event_type: ShipmentEventType = ShipmentEventType.EXCHANGE_INITIATED
    new_status: ShipmentStatus | None = ShipmentStatus.EXCHANGE_PROCESSED
    related_shipment_id: str = Field(..., min_length=1)


@register_event
class ExchangeCompleted(ShipmentEvent):
    """
    Creation event of an EXCHANGE shipment.

    Carries the full creation snapshot and the id of the original shipment.
    """

    event_type: ShipmentEventType = ShipmentEventType.EXCHANGE_COMPLETED
    new_status: ShipmentStatus | None = ShipmentStatus.PENDING
    related_shipment_id: str = Field(..., min_length=1)
    customer: CustomerInfo
    line_items: tuple[LineItem, ...] = Field(..., min_length=1)
    shipment_kind: ShipmentKind = ShipmentKind.EXCHANGE


@register_event
class ShipmentErrorRecorded(ShipmentEvent):
    """An operational error was recorded against a shipment. No status change."""

    event_type: ShipmentEventType = ShipmentEventType.SHIPMENT_ERROR
    error_message: str


CreationEvent = ShipmentCreated | ExchangeCompleted


__all__ = [
    "ShipmentEventType",
    "ShipmentEvent",
    "EventRegistry",
    "EventTypeNotFoundError",
    "default_registry",
    "register_event",
    "CreationEvent",
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
