"""
Explicit wiring of a shipment service process.

``ShipmentApplication`` builds every client once from ``ShipmentSettings``
and hands each component the handles it needs. There are no module-level
singletons: tests and embedding code create as many independent
applications as they like.

Example:
    >>> async with ShipmentApplication(ShipmentSettings()) as app:
    ...     app.start_consumers()
    ...     await app.wait_closed()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiosqlite

from shipments.application.service import ShipmentService
from shipments.config import ShipmentSettings
from shipments.exceptions import PersistenceError
from shipments.messaging.consumers import (
    ORDER_REFUND_ROUTING_KEY,
    PAYMENT_APPROVED_ROUTING_KEY,
    PaymentApprovedHandler,
    RefundProcessedHandler,
)
from shipments.messaging.publisher import NotificationPublisher
from shipments.messaging.rabbitmq import (
    RabbitMQConnection,
    RabbitMQConsumer,
    RabbitMQTransport,
)
from shipments.messaging.transport import MessageTransport
from shipments.projections.sqlite import SQLiteProjectionStore
from shipments.repository import ShipmentRepository
from shipments.stores.sqlite import SQLiteEventLogStore

logger = logging.getLogger(__name__)

IN_MEMORY_DATABASE = ":memory:"


class ShipmentApplication:
    """
    Owns the database and broker connections of one process.

    When ``transport`` is given, no broker connection is opened and no
    consumers are created; notifications go to that transport instead.

    The event log and the projection store each open their own SQLite
    connection. With ``database_path=":memory:"`` that means two separate
    in-memory databases that share nothing and disappear on ``stop``.
    """

    def __init__(
        self,
        settings: ShipmentSettings | None = None,
        *,
        transport: MessageTransport | None = None,
    ) -> None:
        self._settings = settings or ShipmentSettings()
        self._transport = transport
        self._event_store: SQLiteEventLogStore | None = None
        self._projection_db: aiosqlite.Connection | None = None
        self._rabbitmq: RabbitMQConnection | None = None
        self._service: ShipmentService | None = None
        self._repository: ShipmentRepository | None = None
        self._consumers: list[RabbitMQConsumer] = []
        self._closed = asyncio.Event()

    @property
    def settings(self) -> ShipmentSettings:
        return self._settings

    @property
    def service(self) -> ShipmentService:
        if self._service is None:
            raise RuntimeError("Application not started")
        return self._service

    @property
    def repository(self) -> ShipmentRepository:
        if self._repository is None:
            raise RuntimeError("Application not started")
        return self._repository

    @property
    def consumers(self) -> list[RabbitMQConsumer]:
        return list(self._consumers)

    async def start(self) -> None:
        settings = self._settings
        tracing = settings.enable_tracing
        if settings.database_path == IN_MEMORY_DATABASE:
            logger.warning(
                "Event log and projections use separate in-memory databases; "
                "nothing survives stop",
                extra={"database_path": settings.database_path},
            )

        self._event_store = SQLiteEventLogStore(settings.database_path, enable_tracing=tracing)
        await self._event_store.initialize()

        try:
            self._projection_db = await aiosqlite.connect(settings.database_path)
        except aiosqlite.Error as e:
            raise PersistenceError("connect", str(e)) from e
        projection_store = SQLiteProjectionStore(self._projection_db, enable_tracing=tracing)
        await projection_store.initialize()

        self._repository = ShipmentRepository(
            self._event_store, projection_store, enable_tracing=tracing
        )

        transport = self._transport
        if transport is None:
            self._rabbitmq = RabbitMQConnection(settings.to_rabbitmq_config())
            await self._rabbitmq.connect()
            transport = RabbitMQTransport(self._rabbitmq)

        publisher = NotificationPublisher(
            transport,
            settings.to_notification_policy(),
            enable_tracing=tracing,
        )
        self._service = ShipmentService(self._repository, publisher)

        if self._rabbitmq is not None:
            self._consumers = [
                RabbitMQConsumer(
                    self._rabbitmq,
                    PaymentApprovedHandler(self._service),
                    queue_name=settings.payment_approved_queue,
                    routing_key=PAYMENT_APPROVED_ROUTING_KEY,
                ),
                RabbitMQConsumer(
                    self._rabbitmq,
                    RefundProcessedHandler(self._repository),
                    queue_name=settings.order_refund_queue,
                    routing_key=ORDER_REFUND_ROUTING_KEY,
                ),
            ]

        logger.info(
            "Shipment application started",
            extra={
                "database_path": settings.database_path,
                "consumers": [c.queue_name for c in self._consumers],
            },
        )

    def start_consumers(self) -> list[asyncio.Task[None]]:
        """Start every consumer as a background task."""
        return [consumer.start_consuming_in_background() for consumer in self._consumers]

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def stop(self) -> None:
        """Stop consumers, then close the broker and database connections."""
        for consumer in self._consumers:
            await consumer.stop_consuming()
        self._consumers = []

        if self._rabbitmq is not None:
            await self._rabbitmq.close()
            self._rabbitmq = None
        if self._projection_db is not None:
            await self._projection_db.close()
            self._projection_db = None
        if self._event_store is not None:
            await self._event_store.close()
            self._event_store = None

        self._closed.set()
        logger.info("Shipment application stopped")

    async def __aenter__(self) -> ShipmentApplication:
        try:
            await self.start()
        except BaseException:
            await self.stop()
            raise
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.stop()


__all__ = ["ShipmentApplication"]
