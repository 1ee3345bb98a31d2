"""
SQLite projection store.

Stores shipment projections in the ``shipment_projections`` table.

SQLite-specific adaptations:
- Timestamps stored as fixed-width UTC ISO 8601 TEXT so they sort lexically
- Customer, line items and tracking stored as JSON TEXT
- Uses UPSERT with ON CONFLICT syntax (SQLite 3.24+)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

import aiosqlite

from shipments.domain.status import ShipmentStatus
from shipments.exceptions import PersistenceError
from shipments.observability import (
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_QUERY_LIMIT,
    ATTR_QUERY_OFFSET,
    ATTR_SHIPMENT_ID,
    ATTR_SHIPMENT_STATUS,
    Tracer,
    create_tracer,
)
from shipments.projections.record import ShipmentProjection
from shipments.stores.sqlite import format_timestamp

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS shipment_projections (
    shipment_id TEXT PRIMARY KEY,
    order_id TEXT NOT NULL,
    customer_id TEXT NOT NULL,
    status TEXT NOT NULL,
    kind TEXT NOT NULL,
    related_shipment_id TEXT,
    customer TEXT NOT NULL,
    line_items TEXT NOT NULL,
    tracking TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_shipment_projections_order
    ON shipment_projections (order_id);
CREATE INDEX IF NOT EXISTS idx_shipment_projections_customer
    ON shipment_projections (customer_id);
CREATE INDEX IF NOT EXISTS idx_shipment_projections_status
    ON shipment_projections (status, updated_at);
"""

_FIELDS = (
    "shipment_id",
    "order_id",
    "customer_id",
    "status",
    "kind",
    "related_shipment_id",
    "customer",
    "line_items",
    "tracking",
    "created_at",
    "updated_at",
)
_JSON_FIELDS = frozenset({"customer", "line_items", "tracking"})
_SELECT = f"SELECT {', '.join(_FIELDS)} FROM shipment_projections"


class SQLiteProjectionStore:
    """
    SQLite implementation of ``ProjectionStore``.

    Works on a caller-owned aiosqlite connection; call ``initialize()`` once
    to create the table.

    Example:
        >>> async with aiosqlite.connect("shipments.db") as db:
        ...     store = SQLiteProjectionStore(db)
        ...     await store.initialize()
        ...     await store.upsert(ShipmentProjection.from_aggregate(shipment))
    """

    def __init__(
        self,
        connection: aiosqlite.Connection,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._connection = connection

    async def initialize(self) -> None:
        """Create the projection table and indexes. Idempotent."""
        try:
            await self._connection.executescript(SCHEMA)
            await self._connection.commit()
        except aiosqlite.Error as e:
            raise PersistenceError("initialize", str(e)) from e
        logger.info("Initialized SQLite projection schema")

    async def upsert(self, projection: ShipmentProjection) -> None:
        with self._tracer.span(
            "shipments.projection.upsert",
            {
                ATTR_SHIPMENT_ID: projection.shipment_id,
                ATTR_SHIPMENT_STATUS: projection.status.value,
                ATTR_DB_SYSTEM: "sqlite",
                ATTR_DB_OPERATION: "UPSERT",
            },
        ):
            try:
                await self._connection.execute(self._upsert_query(), self._to_values(projection))
                await self._connection.commit()
            except aiosqlite.Error as e:
                await self._connection.rollback()
                raise PersistenceError("upsert projection", str(e)) from e

    async def get(self, shipment_id: str) -> ShipmentProjection | None:
        rows = await self._fetch(
            "get projection", f"{_SELECT} WHERE shipment_id = ?", (shipment_id,)
        )
        return rows[0] if rows else None

    async def find_by_order_id(self, order_id: str) -> list[ShipmentProjection]:
        return await self._fetch(
            "find_by_order_id",
            f"{_SELECT} WHERE order_id = ? ORDER BY created_at DESC",
            (order_id,),
        )

    async def find_by_customer_id(self, customer_id: str) -> list[ShipmentProjection]:
        return await self._fetch(
            "find_by_customer_id",
            f"{_SELECT} WHERE customer_id = ? ORDER BY created_at DESC",
            (customer_id,),
        )

    async def find_by_status(self, status: ShipmentStatus | str) -> list[ShipmentProjection]:
        wanted = ShipmentStatus.parse(status)
        return await self._fetch(
            "find_by_status",
            f"{_SELECT} WHERE status = ? ORDER BY updated_at DESC",
            (wanted.value,),
        )

    async def list_all(self, limit: int = 50, offset: int = 0) -> list[ShipmentProjection]:
        with self._tracer.span(
            "shipments.projection.list_all",
            {ATTR_QUERY_LIMIT: limit, ATTR_QUERY_OFFSET: offset, ATTR_DB_SYSTEM: "sqlite"},
        ):
            return await self._fetch(
                "list_all",
                f"{_SELECT} ORDER BY created_at DESC LIMIT ? OFFSET ?",
                (limit, offset),
            )

    async def count(self) -> int:
        return await self._scalar("count", "SELECT COUNT(*) FROM shipment_projections")

    async def count_by_status(self, status: ShipmentStatus | str) -> int:
        wanted = ShipmentStatus.parse(status)
        return await self._scalar(
            "count_by_status",
            "SELECT COUNT(*) FROM shipment_projections WHERE status = ?",
            (wanted.value,),
        )

    async def count_by_all_statuses(self) -> dict[ShipmentStatus, int]:
        counts = dict.fromkeys(ShipmentStatus, 0)
        try:
            cursor = await self._connection.execute(
                "SELECT status, COUNT(*) FROM shipment_projections GROUP BY status"
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError("count_by_all_statuses", str(e)) from e
        for status, total in rows:
            counts[ShipmentStatus(status)] = int(total)
        return counts

    async def delete(self, shipment_id: str) -> bool:
        try:
            cursor = await self._connection.execute(
                "DELETE FROM shipment_projections WHERE shipment_id = ?",
                (shipment_id,),
            )
            await self._connection.commit()
        except aiosqlite.Error as e:
            raise PersistenceError("delete projection", str(e)) from e
        return cursor.rowcount > 0

    async def rebuild_all(self, projections: Sequence[ShipmentProjection]) -> None:
        """Replace every projection in a single transaction."""
        with self._tracer.span(
            "shipments.projection.rebuild_all",
            {ATTR_DB_SYSTEM: "sqlite", ATTR_DB_OPERATION: "REPLACE"},
        ):
            try:
                await self._connection.execute("DELETE FROM shipment_projections")
                query = self._upsert_query()
                for projection in projections:
                    await self._connection.execute(query, self._to_values(projection))
                await self._connection.commit()
            except aiosqlite.Error as e:
                await self._connection.rollback()
                raise PersistenceError("rebuild projections", str(e)) from e

        logger.info("Rebuilt %d shipment projections", len(projections))

    @staticmethod
    def _upsert_query() -> str:
        columns = ", ".join(_FIELDS)
        placeholders = ", ".join("?" * len(_FIELDS))
        update_clause = ", ".join(f"{f} = excluded.{f}" for f in _FIELDS if f != "shipment_id")
        return f"""
            INSERT INTO shipment_projections ({columns})
            VALUES ({placeholders})
            ON CONFLICT(shipment_id) DO UPDATE SET {update_clause}
        """

    @staticmethod
    def _to_values(projection: ShipmentProjection) -> tuple[Any, ...]:
        data = projection.model_dump(mode="json")
        data["created_at"] = format_timestamp(projection.created_at)
        data["updated_at"] = format_timestamp(projection.updated_at)
        return tuple(
            json.dumps(data[name]) if name in _JSON_FIELDS else data[name] for name in _FIELDS
        )

    @staticmethod
    def _row_to_projection(row: Sequence[Any]) -> ShipmentProjection:
        data: dict[str, Any] = {}
        for i, name in enumerate(_FIELDS):
            value = row[i]
            if name in _JSON_FIELDS:
                value = json.loads(value)
            data[name] = value
        return ShipmentProjection.model_validate(data)

    async def _fetch(
        self, operation: str, query: str, params: Sequence[Any] = ()
    ) -> list[ShipmentProjection]:
        try:
            cursor = await self._connection.execute(query, params)
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(operation, str(e)) from e
        return [self._row_to_projection(row) for row in rows]

    async def _scalar(self, operation: str, query: str, params: Sequence[Any] = ()) -> int:
        try:
            cursor = await self._connection.execute(query, params)
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(operation, str(e)) from e
        return int(row[0]) if row else 0


__all__ = ["SQLiteProjectionStore", "SCHEMA"]
