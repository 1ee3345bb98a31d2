"""
SQLite event log implementation.

Durable event log using SQLite with async support via aiosqlite.

This implementation is suitable for:
- Single-instance deployments
- Development and testing environments (with ':memory:')
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import aiosqlite

from shipments.domain.events import (
    EventRegistry,
    ShipmentEvent,
    ShipmentEventType,
    default_registry,
)
from shipments.exceptions import PersistenceError
from shipments.observability import (
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_EVENT_COUNT,
    ATTR_EVENT_TYPE,
    ATTR_ORDER_ID,
    ATTR_QUERY_LIMIT,
    ATTR_QUERY_OFFSET,
    ATTR_SHIPMENT_ID,
    Tracer,
    create_tracer,
)
from shipments.stores.interface import AppendResult, EventLogStore, validate_time_range

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS shipment_events (
    sequence INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id TEXT NOT NULL UNIQUE,
    event_type TEXT NOT NULL,
    shipment_id TEXT NOT NULL,
    order_id TEXT NOT NULL,
    occurred_at TEXT NOT NULL,
    payload TEXT NOT NULL,
    stored_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_shipment_events_shipment
    ON shipment_events (shipment_id, occurred_at, sequence);
CREATE INDEX IF NOT EXISTS idx_shipment_events_order
    ON shipment_events (order_id, occurred_at, sequence);
CREATE INDEX IF NOT EXISTS idx_shipment_events_type
    ON shipment_events (event_type, occurred_at, sequence);
CREATE INDEX IF NOT EXISTS idx_shipment_events_occurred
    ON shipment_events (occurred_at, sequence);
"""

_CHRONOLOGICAL = "ORDER BY occurred_at ASC, sequence ASC"
_COLUMNS = "event_type, payload"


def format_timestamp(value: datetime) -> str:
    """
    Render a timestamp as fixed-width UTC ISO 8601 text.

    Stored timestamps must compare lexically in chronological order, so
    naive values are taken as UTC and microseconds are always written.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


class SQLiteEventLogStore(EventLogStore):
    """
    SQLite implementation of the event log.

    Events are persisted to the ``shipment_events`` table. ``event_id``
    carries a UNIQUE constraint and inserts use
    ``ON CONFLICT(event_id) DO NOTHING``, so re-appending an event is a
    counted no-op. The AUTOINCREMENT ``sequence`` column orders events
    that share a timestamp.

    SQLite-specific adaptations:
    - UUIDs stored as TEXT (36 characters, hyphenated format)
    - Timestamps stored as fixed-width UTC ISO 8601 TEXT
    - Event payload stored as JSON TEXT

    Example:
        >>> store = SQLiteEventLogStore(":memory:")
        >>> async with store:
        ...     await store.initialize()
        ...     result = await store.append(shipment.uncommitted_events)
    """

    def __init__(
        self,
        database: str,
        event_registry: EventRegistry | None = None,
        *,
        wal_mode: bool = True,
        busy_timeout: int = 5000,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the SQLite event log.

        Args:
            database: Path to SQLite database file or ':memory:' for in-memory
            event_registry: Registry used to rebuild events (defaults to module registry)
            wal_mode: If True, enable WAL mode for better concurrency (default: True)
            busy_timeout: Timeout in milliseconds when database is locked (default: 5000)
            tracer: Optional custom Tracer instance
            enable_tracing: If True, emit OpenTelemetry spans. Ignored if tracer is provided.
        """
        self._database = database
        self._event_registry = event_registry or default_registry
        self._wal_mode = wal_mode
        self._busy_timeout = busy_timeout
        self._connection: aiosqlite.Connection | None = None
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def database(self) -> str:
        return self._database

    async def __aenter__(self) -> SQLiteEventLogStore:
        await self._connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    async def _connect(self) -> None:
        if self._connection is not None:
            return

        try:
            self._connection = await aiosqlite.connect(self._database)
            await self._connection.execute(f"PRAGMA busy_timeout = {self._busy_timeout}")
            if self._wal_mode:
                await self._connection.execute("PRAGMA journal_mode = WAL")
        except aiosqlite.Error as e:
            raise PersistenceError("connect", str(e)) from e

        self._connection.row_factory = aiosqlite.Row

        logger.debug(
            "Connected to SQLite database: %s (wal_mode=%s, busy_timeout=%d)",
            self._database,
            self._wal_mode,
            self._busy_timeout,
        )

    async def close(self) -> None:
        """
        Close the database connection.

        Safe to call multiple times.
        """
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.debug("Closed SQLite database connection: %s", self._database)

    async def initialize(self) -> None:
        """
        Create the event table and indexes if they don't exist.

        This method is idempotent and connects first when needed.
        """
        await self._connect()
        conn = self._ensure_connected()
        try:
            await conn.executescript(SCHEMA)
            await conn.commit()
        except aiosqlite.Error as e:
            raise PersistenceError("initialize", str(e)) from e

        logger.info("Initialized SQLite event log schema: %s", self._database)

    def _ensure_connected(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError(
                "Not connected to database. Use 'async with store:' or call 'initialize()' first."
            )
        return self._connection

    def _span_attributes(self, operation: str, **extra: Any) -> dict[str, Any]:
        return {
            ATTR_DB_SYSTEM: "sqlite",
            ATTR_DB_NAME: self._database,
            ATTR_DB_OPERATION: operation,
            **extra,
        }

    async def append(self, events: Sequence[ShipmentEvent]) -> AppendResult:
        """
        Append events in a single transaction.

        Raises:
            PersistenceError: If the insert fails; nothing from the batch is kept
        """
        if not events:
            return AppendResult()

        with self._tracer.span(
            "shipments.event_log.append",
            self._span_attributes(
                "INSERT",
                **{
                    ATTR_EVENT_COUNT: len(events),
                    ATTR_EVENT_TYPE: ",".join(e.event_type.value for e in events),
                },
            ),
        ):
            return await self._do_append(events)

    async def _do_append(self, events: Sequence[ShipmentEvent]) -> AppendResult:
        conn = self._ensure_connected()
        appended = 0
        duplicates = 0
        stored_at = format_timestamp(datetime.now(UTC))

        try:
            for event in events:
                cursor = await conn.execute(
                    """
                    INSERT INTO shipment_events (
                        event_id, event_type, shipment_id, order_id,
                        occurred_at, payload, stored_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(event_id) DO NOTHING
                    """,
                    (
                        str(event.event_id),
                        event.event_type.value,
                        event.shipment_id,
                        event.order_id,
                        format_timestamp(event.occurred_at),
                        json.dumps(event.to_dict()),
                        stored_at,
                    ),
                )
                if cursor.rowcount == 0:
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
                else:
                    appended += 1
            await conn.commit()
        except aiosqlite.Error as e:
            await conn.rollback()
            raise PersistenceError("append", str(e)) from e

        logger.debug(
            "Appended %d events to %s (%d duplicates)",
            appended,
            self._database,
            duplicates,
        )
        return AppendResult(appended=appended, duplicates=duplicates)

    async def _fetch_events(
        self, operation: str, query: str, params: Sequence[Any] = ()
    ) -> list[ShipmentEvent]:
        conn = self._ensure_connected()
        try:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(operation, str(e)) from e
        return [self._deserialize(row) for row in rows]

    def _deserialize(self, row: aiosqlite.Row) -> ShipmentEvent:
        return self._event_registry.deserialize(json.loads(row["payload"]))

    async def replay(self, shipment_id: str) -> list[ShipmentEvent]:
        with self._tracer.span(
            "shipments.event_log.replay",
            self._span_attributes("SELECT", **{ATTR_SHIPMENT_ID: shipment_id}),
        ):
            return await self._fetch_events(
                "replay",
                f"SELECT {_COLUMNS} FROM shipment_events WHERE shipment_id = ? {_CHRONOLOGICAL}",
                (shipment_id,),
            )

    async def get_events_by_order_id(self, order_id: str) -> list[ShipmentEvent]:
        with self._tracer.span(
            "shipments.event_log.get_by_order",
            self._span_attributes("SELECT", **{ATTR_ORDER_ID: order_id}),
        ):
            return await self._fetch_events(
                "get_events_by_order_id",
                f"SELECT {_COLUMNS} FROM shipment_events WHERE order_id = ? {_CHRONOLOGICAL}",
                (order_id,),
            )

    async def get_events_by_type(
        self, event_type: ShipmentEventType | str
    ) -> list[ShipmentEvent]:
        wanted = ShipmentEventType(event_type)
        return await self._fetch_events(
            "get_events_by_type",
            f"SELECT {_COLUMNS} FROM shipment_events WHERE event_type = ? {_CHRONOLOGICAL}",
            (wanted.value,),
        )

    async def get_events_by_time_range(
        self, start: datetime, end: datetime
    ) -> list[ShipmentEvent]:
        validate_time_range(start, end)
        return await self._fetch_events(
            "get_events_by_time_range",
            f"""
            SELECT {_COLUMNS} FROM shipment_events
            WHERE occurred_at >= ? AND occurred_at <= ?
            {_CHRONOLOGICAL}
            """,
            (format_timestamp(start), format_timestamp(end)),
        )

    async def event_exists(self, event_id: UUID) -> bool:
        conn = self._ensure_connected()
        try:
            cursor = await conn.execute(
                "SELECT 1 FROM shipment_events WHERE event_id = ?",
                (str(event_id),),
            )
            return await cursor.fetchone() is not None
        except aiosqlite.Error as e:
            raise PersistenceError("event_exists", str(e)) from e

    async def get_all_events(self, limit: int = 100, offset: int = 0) -> list[ShipmentEvent]:
        with self._tracer.span(
            "shipments.event_log.get_all",
            self._span_attributes(
                "SELECT", **{ATTR_QUERY_LIMIT: limit, ATTR_QUERY_OFFSET: offset}
            ),
        ):
            return await self._fetch_events(
                "get_all_events",
                f"""
                SELECT {_COLUMNS} FROM shipment_events
                ORDER BY occurred_at DESC, sequence DESC
                LIMIT ? OFFSET ?
                """,
                (limit, offset),
            )

    async def _scalar(self, operation: str, query: str, params: Sequence[Any] = ()) -> int:
        conn = self._ensure_connected()
        try:
            cursor = await conn.execute(query, params)
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(operation, str(e)) from e
        return int(row[0]) if row else 0

    async def count_events(self) -> int:
        return await self._scalar("count_events", "SELECT COUNT(*) FROM shipment_events")

    async def count_events_for_shipment(self, shipment_id: str) -> int:
        return await self._scalar(
            "count_events_for_shipment",
            "SELECT COUNT(*) FROM shipment_events WHERE shipment_id = ?",
            (shipment_id,),
        )

    async def get_last_event(self, shipment_id: str) -> ShipmentEvent | None:
        events = await self._fetch_events(
            "get_last_event",
            f"""
            SELECT {_COLUMNS} FROM shipment_events
            WHERE shipment_id = ?
            ORDER BY occurred_at DESC, sequence DESC
            LIMIT 1
            """,
            (shipment_id,),
        )
        return events[0] if events else None

    async def get_shipment_ids(self) -> list[str]:
        conn = self._ensure_connected()
        try:
            cursor = await conn.execute(
                """
                SELECT shipment_id FROM shipment_events
                GROUP BY shipment_id
                ORDER BY MIN(sequence)
                """
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError("get_shipment_ids", str(e)) from e
        return [row["shipment_id"] for row in rows]


__all__ = ["SQLiteEventLogStore", "format_timestamp", "SCHEMA"]
