"""
Shipment aggregate.

The aggregate is the consistency boundary for a single shipment. State is
only ever changed by applying events: each domain operation checks its
guard, builds exactly one event, applies it and buffers it until the
repository persists it. Exchange initiation from DELIVERED is the one
operation that buffers two.

Three ways to obtain an aggregate:
    - ``Shipment.create`` / ``Shipment.create_for_exchange`` for new shipments
    - ``Shipment.from_events`` to rebuild from the event log
    - ``Shipment.hydrate`` to rebuild from a validated ``ShipmentState``
      (used for projection reads)
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from shipments.domain.events import (
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
)
from shipments.domain.status import (
    ShipmentKind,
    ShipmentStatus,
    can_be_cancelled,
    ensure_can_be_cancelled,
    ensure_can_complete_return,
    ensure_can_initiate_exchange,
    ensure_can_initiate_return,
    ensure_transition,
)
from shipments.domain.values import CustomerInfo, LineItem, TrackingEntry
from shipments.exceptions import EmptyHistoryError, MalformedHistoryError, ValidationError

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits

EXCHANGE_RETURN_DESCRIPTION = "Return initiated for product exchange"


def generate_shipment_id() -> str:
    """Generate an opaque shipment id of the form ``ship_<millis>_<suffix>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"ship_{int(time.time() * 1000)}_{suffix}"


def _default_note(action: str) -> str:
    return f"{action} at {datetime.now(UTC).isoformat()}"


class ShipmentState(BaseModel):
    """
    Full, validated state of a shipment.

    This is the only input ``Shipment.hydrate`` accepts; it is also what
    projections are derived from.
    """

    model_config = ConfigDict(frozen=True)

    shipment_id: str = Field(..., min_length=1)
    order_id: str = Field(..., min_length=1)
    status: ShipmentStatus = ShipmentStatus.PENDING
    kind: ShipmentKind = ShipmentKind.NORMAL
    customer: CustomerInfo
    line_items: tuple[LineItem, ...] = Field(..., min_length=1)
    tracking: tuple[TrackingEntry, ...] = ()
    related_shipment_id: str | None = None
    created_at: datetime
    updated_at: datetime


class Shipment:
    """
    Event-sourced shipment aggregate.

    Example:
        >>> shipment = Shipment.create(
        ...     order_id="order_1",
        ...     customer=customer,
        ...     line_items=[LineItem(article_id="a1", quantity=1, price=10.0)],
        ... )
        >>> shipment.move_to_prepared(actor="operator")
        >>> shipment.status
        <ShipmentStatus.PREPARED: 'PREPARED'>
        >>> [e.event_type.value for e in shipment.uncommitted_events]
        ['SHIPMENT_CREATED', 'MOVED_TO_PREPARED']
    """

    aggregate_type: str = "Shipment"

    def __init__(self, state: ShipmentState, version: int = 0) -> None:
        self._state = state
        self._version = version
        self._uncommitted_events: list[ShipmentEvent] = []

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    def hydrate(cls, state: ShipmentState) -> Shipment:
        """Build an aggregate from a full state snapshot. No events are buffered."""
        return cls(state, version=len(state.tracking))

    @classmethod
    def create(
        cls,
        order_id: str,
        customer: CustomerInfo,
        line_items: Sequence[LineItem],
        *,
        shipment_id: str | None = None,
        actor: str | None = "system",
        description: str | None = None,
    ) -> Shipment:
        """Create a NORMAL shipment in PENDING with a buffered creation event."""
        event = ShipmentCreated(
            shipment_id=shipment_id or generate_shipment_id(),
            order_id=order_id,
            customer=customer,
            line_items=tuple(line_items),
            actor=actor,
            description=description or _default_note("Shipment created"),
        )
        shipment = cls(cls._state_from_creation(event))
        shipment.apply_event(event)
        return shipment

    @classmethod
    def create_for_exchange(
        cls,
        original_shipment_id: str,
        order_id: str,
        customer: CustomerInfo,
        line_items: Sequence[LineItem],
        *,
        shipment_id: str | None = None,
        actor: str | None = "system",
        description: str | None = None,
    ) -> Shipment:
        """
        Create the replacement shipment of an exchange.

        The new shipment is of kind EXCHANGE, starts in PENDING and is linked
        to the original through ``related_shipment_id``. Its synthetic
        creation event is an ``ExchangeCompleted``.
        """
        event = ExchangeCompleted(
            shipment_id=shipment_id or generate_shipment_id(),
            order_id=order_id,
            related_shipment_id=original_shipment_id,
            customer=customer,
            line_items=tuple(line_items),
            actor=actor,
            description=description
            or f"Exchange shipment created from {original_shipment_id}",
        )
        shipment = cls(cls._state_from_creation(event))
        shipment.apply_event(event)
        return shipment

    @classmethod
    def from_events(cls, events: Sequence[ShipmentEvent]) -> Shipment:
        """
        Rebuild a shipment by folding its chronologically ordered history.

        Raises:
            EmptyHistoryError: If ``events`` is empty
            MalformedHistoryError: If the first event is not a creation event
        """
        if not events:
            raise EmptyHistoryError()

        first = events[0]
        if not isinstance(first, (ShipmentCreated, ExchangeCompleted)):
            raise MalformedHistoryError(first.shipment_id, first.event_type.value)

        shipment = cls(cls._state_from_creation(first))
        for event in events:
            shipment.apply_event(event, is_new=False)

        logger.debug(
            "Rebuilt shipment %s from %d events",
            shipment.shipment_id,
            len(events),
            extra={"shipment_id": shipment.shipment_id, "status": shipment.status.value},
        )
        return shipment

    @staticmethod
    def _state_from_creation(event: ShipmentCreated | ExchangeCompleted) -> ShipmentState:
        return ShipmentState(
            shipment_id=event.shipment_id,
            order_id=event.order_id,
            status=ShipmentStatus.PENDING,
            kind=event.shipment_kind,
            customer=event.customer,
            line_items=event.line_items,
            related_shipment_id=getattr(event, "related_shipment_id", None),
            created_at=event.occurred_at,
            updated_at=event.occurred_at,
        )

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def shipment_id(self) -> str:
        return self._state.shipment_id

    @property
    def id(self) -> str:
        return self._state.shipment_id

    @property
    def order_id(self) -> str:
        return self._state.order_id

    @property
    def status(self) -> ShipmentStatus:
        return self._state.status

    @property
    def kind(self) -> ShipmentKind:
        return self._state.kind

    @property
    def customer(self) -> CustomerInfo:
        return self._state.customer

    @property
    def line_items(self) -> tuple[LineItem, ...]:
        return self._state.line_items

    @property
    def tracking(self) -> tuple[TrackingEntry, ...]:
        return self._state.tracking

    @property
    def related_shipment_id(self) -> str | None:
        return self._state.related_shipment_id

    @property
    def created_at(self) -> datetime:
        return self._state.created_at

    @property
    def updated_at(self) -> datetime:
        return self._state.updated_at

    @property
    def version(self) -> int:
        """Number of events applied to this aggregate."""
        return self._version

    @property
    def uncommitted_events(self) -> list[ShipmentEvent]:
        """Events produced since the last save (copy)."""
        return list(self._uncommitted_events)

    @property
    def has_uncommitted_events(self) -> bool:
        return bool(self._uncommitted_events)

    @property
    def can_be_cancelled(self) -> bool:
        return can_be_cancelled(self.status)

    def to_state(self) -> ShipmentState:
        return self._state

    def tracking_entry_for(self, status: ShipmentStatus) -> TrackingEntry | None:
        """First tracking entry recorded for ``status``, if any."""
        return next((t for t in self._state.tracking if t.status is status), None)

    # ------------------------------------------------------------------
    # Domain operations
    # ------------------------------------------------------------------

    def move_to_prepared(self, actor: str | None = None, description: str | None = None) -> None:
        ensure_transition(self.status, ShipmentStatus.PREPARED)
        self._raise(MovedToPrepared, actor, description or _default_note("Shipment prepared"))

    def move_to_in_transit(
        self, actor: str | None = None, description: str | None = None
    ) -> None:
        ensure_transition(self.status, ShipmentStatus.IN_TRANSIT)
        self._raise(MovedToInTransit, actor, description or _default_note("Shipment in transit"))

    def move_to_delivered(self, actor: str | None = None, description: str | None = None) -> None:
        ensure_transition(self.status, ShipmentStatus.DELIVERED)
        self._raise(MovedToDelivered, actor, description or _default_note("Shipment delivered"))

    def cancel(self, actor: str | None = None, description: str | None = None) -> None:
        ensure_can_be_cancelled(self.status)
        ensure_transition(self.status, ShipmentStatus.CANCELLED)
        self._raise(ShipmentCancelled, actor, description or _default_note("Shipment cancelled"))

    def initiate_return(self, actor: str | None = None, description: str | None = None) -> None:
        ensure_can_initiate_return(self.status)
        self._raise(ReturnInitiated, actor, description or _default_note("Return initiated"))

    def complete_return(self, actor: str | None = None, description: str | None = None) -> None:
        ensure_can_complete_return(self.status)
        self._raise(ReturnCompleted, actor, description or _default_note("Return completed"))

    def initiate_exchange(
        self,
        related_shipment_id: str,
        actor: str | None = None,
        description: str | None = None,
    ) -> None:
        """
        Close this shipment out in favour of the replacement ``related_shipment_id``.

        Allowed from DELIVERED or RETURNING; the shipment ends in
        EXCHANGE_PROCESSED. From DELIVERED the product first has to come
        back, so a ``ReturnInitiated`` event is buffered ahead of the
        ``ExchangeInitiated`` one and every stored event stays a legal
        transition.
        """
        ensure_can_initiate_exchange(self.status)
        if not related_shipment_id or related_shipment_id == self.shipment_id:
            raise ValidationError(
                "An exchange must reference a different replacement shipment"
            )
        if self.status.is_delivered:
            self._raise(ReturnInitiated, actor, EXCHANGE_RETURN_DESCRIPTION)
        ensure_transition(self.status, ShipmentStatus.EXCHANGE_PROCESSED)
        self._raise(
            ExchangeInitiated,
            actor,
            description or f"Exchange initiated, replacement shipment {related_shipment_id}",
            related_shipment_id=related_shipment_id,
        )

    def record_error(self, error_message: str, actor: str | None = None) -> None:
        """Buffer an error record. Status and tracking are left untouched."""
        event = ShipmentErrorRecorded(
            shipment_id=self.shipment_id,
            order_id=self.order_id,
            actor=actor,
            description=f"Shipment error: {error_message}",
            error_message=error_message,
        )
        self.apply_event(event)

    # ------------------------------------------------------------------
    # Event application
    # ------------------------------------------------------------------

    def _raise(
        self,
        event_class: type[ShipmentEvent],
        actor: str | None,
        description: str,
        **payload: Any,
    ) -> None:
        event = event_class(
            shipment_id=self.shipment_id,
            order_id=self.order_id,
            actor=actor,
            description=description,
            previous_status=self.status,
            **payload,
        )
        self.apply_event(event)

    def apply_event(self, event: ShipmentEvent, is_new: bool = True) -> None:
        """
        Apply an event to the aggregate state.

        Args:
            event: The event to apply
            is_new: True for freshly raised events, which are buffered;
                False when replaying history
        """
        if event.shipment_id != self.shipment_id:
            raise ValueError(
                f"Event {event.event_id} belongs to shipment {event.shipment_id}, "
                f"not {self.shipment_id}"
            )

        update: dict[str, Any] = {"updated_at": event.occurred_at}
        if event.new_status is not None:
            update["status"] = event.new_status
            update["tracking"] = (
                *self._state.tracking,
                TrackingEntry(
                    status=event.new_status,
                    description=event.description,
                    timestamp=event.occurred_at,
                    actor=event.actor,
                ),
            )
        kind = getattr(event, "shipment_kind", None)
        if kind is not None:
            update["kind"] = kind
        related = getattr(event, "related_shipment_id", None)
        if related:
            update["related_shipment_id"] = related

        self._state = self._state.model_copy(update=update)
        self._version += 1

        if is_new:
            self._uncommitted_events.append(event)

    def mark_events_as_committed(self) -> None:
        """Clear the buffer after the repository has persisted it."""
        self._uncommitted_events.clear()

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"id={self.shipment_id!r}, "
            f"status={self.status.value}, "
            f"kind={self.kind.value}, "
            f"uncommitted={len(self._uncommitted_events)})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Shipment):
            return NotImplemented
        return self.shipment_id == other.shipment_id

    def __hash__(self) -> int:
        return hash(self.shipment_id)


__all__ = [
    "Shipment",
    "ShipmentState",
    "EXCHANGE_RETURN_DESCRIPTION",
    "generate_shipment_id",
]
