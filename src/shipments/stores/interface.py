"""
Event log interface.

The event log is the source of truth: an append-only, idempotent record of
every shipment event. Projections and aggregates are derived from it.

This module provides:
- AppendResult: Outcome of an append (how many were stored, how many skipped)
- EventLogStore: Abstract base class for event log implementations
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from shipments.domain.events import ShipmentEvent, ShipmentEventType
from shipments.exceptions import ValidationError


@dataclass(frozen=True)
class AppendResult:
    """
    Result of appending events to the log.

    Attributes:
        appended: Number of events newly stored
        duplicates: Number of events skipped because their event_id was already stored

    Example:
        >>> result = await store.append([created, prepared])
        >>> result.appended, result.duplicates
        (2, 0)
    """

    appended: int = 0
    duplicates: int = 0

    @property
    def total(self) -> int:
        return self.appended + self.duplicates

    @property
    def has_duplicates(self) -> bool:
        return self.duplicates > 0


def validate_time_range(start: datetime, end: datetime) -> None:
    """
    Raises:
        ValidationError: If ``start`` is after ``end``
    """
    if start > end:
        raise ValidationError(
            f"Invalid time range: start {start.isoformat()} is after end {end.isoformat()}"
        )


class EventLogStore(ABC):
    """
    Abstract base class for shipment event logs.

    Implementations must:
    - Treat ``event_id`` as an idempotency key: appending an already stored
      event is counted as a duplicate, never raised
    - Return events in chronological order (occurred_at, then insertion order)
      unless a method says otherwise
    - Wrap backend failures in PersistenceError
    """

    @abstractmethod
    async def append(self, events: Sequence[ShipmentEvent]) -> AppendResult:
        """
        Append events to the log.

        Partial batches are allowed: new events are stored, known ones are
        skipped and counted.

        Args:
            events: Events to append

        Returns:
            AppendResult with appended and duplicate counts

        Raises:
            PersistenceError: If the backend is unavailable
        """
        pass

    @abstractmethod
    async def replay(self, shipment_id: str) -> list[ShipmentEvent]:
        """
        Get the full history of a shipment in chronological order.

        Returns an empty list for unknown shipments.
        """
        pass

    @abstractmethod
    async def get_events_by_order_id(self, order_id: str) -> list[ShipmentEvent]:
        pass

    @abstractmethod
    async def get_events_by_type(
        self, event_type: ShipmentEventType | str
    ) -> list[ShipmentEvent]:
        pass

    @abstractmethod
    async def get_events_by_time_range(
        self, start: datetime, end: datetime
    ) -> list[ShipmentEvent]:
        """
        Get events whose occurred_at lies within ``[start, end]``.

        Raises:
            ValidationError: If ``start`` is after ``end``
        """
        pass

    @abstractmethod
    async def event_exists(self, event_id: UUID) -> bool:
        pass

    @abstractmethod
    async def get_all_events(self, limit: int = 100, offset: int = 0) -> list[ShipmentEvent]:
        """Get a page of events across all shipments, newest first."""
        pass

    @abstractmethod
    async def count_events(self) -> int:
        pass

    @abstractmethod
    async def count_events_for_shipment(self, shipment_id: str) -> int:
        pass

    @abstractmethod
    async def get_last_event(self, shipment_id: str) -> ShipmentEvent | None:
        pass

    @abstractmethod
    async def get_shipment_ids(self) -> list[str]:
        """Get every shipment id present in the log, in first-seen order."""
        pass


__all__ = ["AppendResult", "EventLogStore", "validate_time_range"]
