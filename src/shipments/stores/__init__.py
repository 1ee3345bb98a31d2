"""Event log stores: the append-only source of truth for shipment events."""

from shipments.stores.in_memory import InMemoryEventLogStore
from shipments.stores.interface import AppendResult, EventLogStore
from shipments.stores.sqlite import SQLiteEventLogStore

__all__ = [
    "AppendResult",
    "EventLogStore",
    "InMemoryEventLogStore",
    "SQLiteEventLogStore",
]
