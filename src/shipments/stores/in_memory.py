"""
In-memory event log implementation.

Useful for testing and development. Not suitable for production
as all events are lost when the process terminates.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from shipments.domain.events import ShipmentEvent, ShipmentEventType
from shipments.observability import (
    ATTR_EVENT_COUNT,
    ATTR_ORDER_ID,
    ATTR_SHIPMENT_ID,
    Tracer,
    create_tracer,
)
from shipments.stores.interface import AppendResult, EventLogStore, validate_time_range

logger = logging.getLogger(__name__)


class InMemoryEventLogStore(EventLogStore):
    """
    In-memory implementation of the event log.

    Events are kept in insertion order together with a sequence number
    that breaks ties between events sharing an ``occurred_at``.

    Thread-safety:
        Uses an asyncio.Lock. Safe for concurrent async operations within
        a single process.

    Example:
        >>> store = InMemoryEventLogStore()
        >>> result = await store.append(shipment.uncommitted_events)
        >>> result.appended
        1

    Attributes:
        _events: List of (sequence, event) in insertion order
        _event_ids: Set of stored event ids for idempotency checks
    """

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._events: list[tuple[int, ShipmentEvent]] = []
        self._event_ids: set[UUID] = set()
        self._sequence = 0
        self._lock: asyncio.Lock = asyncio.Lock()

    async def append(self, events: Sequence[ShipmentEvent]) -> AppendResult:
        if not events:
            return AppendResult()

        with self._tracer.span(
            "shipments.event_log.append",
            {ATTR_EVENT_COUNT: len(events)},
        ):
            async with self._lock:
                appended = 0
                duplicates = 0
                for event in events:
                    if event.event_id in self._event_ids:
                        duplicates += 1
                        logger.warning(
                            "Skipping duplicate event %s",
                            event.event_id,
                            extra={
                                "event_id": str(event.event_id),
                                "shipment_id": event.shipment_id,
                                "event_type": event.event_type.value,
                            },
                        )
                        continue
                    self._sequence += 1
                    self._events.append((self._sequence, event))
                    self._event_ids.add(event.event_id)
                    appended += 1

            result = AppendResult(appended=appended, duplicates=duplicates)
            logger.debug(
                "Appended %d events (%d duplicates)",
                result.appended,
                result.duplicates,
                extra={"appended": result.appended, "duplicates": result.duplicates},
            )
            return result

    def _chronological(self, events: list[tuple[int, ShipmentEvent]]) -> list[ShipmentEvent]:
        return [e for _, e in sorted(events, key=lambda item: (item[1].occurred_at, item[0]))]

    async def replay(self, shipment_id: str) -> list[ShipmentEvent]:
        with self._tracer.span("shipments.event_log.replay", {ATTR_SHIPMENT_ID: shipment_id}):
            async with self._lock:
                return self._chronological(
                    [item for item in self._events if item[1].shipment_id == shipment_id]
                )

    async def get_events_by_order_id(self, order_id: str) -> list[ShipmentEvent]:
        with self._tracer.span("shipments.event_log.get_by_order", {ATTR_ORDER_ID: order_id}):
            async with self._lock:
                return self._chronological(
                    [item for item in self._events if item[1].order_id == order_id]
                )

    async def get_events_by_type(
        self, event_type: ShipmentEventType | str
    ) -> list[ShipmentEvent]:
        wanted = ShipmentEventType(event_type)
        async with self._lock:
            return self._chronological(
                [item for item in self._events if item[1].event_type is wanted]
            )

    async def get_events_by_time_range(
        self, start: datetime, end: datetime
    ) -> list[ShipmentEvent]:
        validate_time_range(start, end)
        async with self._lock:
            return self._chronological(
                [item for item in self._events if start <= item[1].occurred_at <= end]
            )

    async def event_exists(self, event_id: UUID) -> bool:
        async with self._lock:
            return event_id in self._event_ids

    async def get_all_events(self, limit: int = 100, offset: int = 0) -> list[ShipmentEvent]:
        async with self._lock:
            newest_first = list(reversed(self._chronological(self._events)))
            return newest_first[offset : offset + limit]

    async def count_events(self) -> int:
        async with self._lock:
            return len(self._events)

    async def count_events_for_shipment(self, shipment_id: str) -> int:
        async with self._lock:
            return sum(1 for _, e in self._events if e.shipment_id == shipment_id)

    async def get_last_event(self, shipment_id: str) -> ShipmentEvent | None:
        history = await self.replay(shipment_id)
        return history[-1] if history else None

    async def get_shipment_ids(self) -> list[str]:
        async with self._lock:
            return list(dict.fromkeys(e.shipment_id for _, e in self._events))

    async def clear(self) -> None:
        """
        Clear all events from the store.

        Useful for resetting state between tests.
        """
        async with self._lock:
            self._events.clear()
            self._event_ids.clear()
            self._sequence = 0


__all__ = ["InMemoryEventLogStore"]
