"""
Notification publisher.

Publication happens after the shipment has been persisted and is never
retried. What a failed publish means depends on the notification type:

- best-effort types: logged at WARNING and swallowed
- critical types: logged at ERROR and raised as ``NotificationDeliveryError``
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from shipments.domain.aggregate import Shipment
from shipments.domain.events import ShipmentEvent
from shipments.domain.status import ProductCondition
from shipments.exceptions import NotificationDeliveryError
from shipments.messaging.notifications import (
    DEFAULT_POLICY,
    Notification,
    NotificationPolicy,
    exchange_finalized_notification,
    notification_for_event,
)
from shipments.messaging.transport import MessageTransport
from shipments.observability import (
    ATTR_MESSAGING_DESTINATION,
    ATTR_MESSAGING_OPERATION,
    ATTR_NOTIFICATION_TYPE,
    ATTR_SHIPMENT_ID,
    SpanKindEnum,
    Tracer,
    create_tracer,
)

logger = logging.getLogger(__name__)


class NotificationPublisher:
    """
    Publishes shipment notifications through a transport according to a policy.

    Example:
        >>> publisher = NotificationPublisher(InMemoryTransport())
        >>> events = await repository.save(shipment)
        >>> await publisher.publish_for_events(shipment, events)
    """

    def __init__(
        self,
        transport: MessageTransport,
        policy: NotificationPolicy = DEFAULT_POLICY,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._transport = transport
        self._policy = policy
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def policy(self) -> NotificationPolicy:
        return self._policy

    async def publish(self, notification: Notification) -> bool:
        """
        Publish one notification.

        Returns:
            True if the transport accepted it, False for a swallowed best-effort failure

        Raises:
            NotificationDeliveryError: If a critical notification could not be published
        """
        notification_type = notification.notification_type.value
        log_extra = {
            "notification_type": notification_type,
            "routing_key": notification.routing_key,
            "shipment_id": notification.payload.get("shipmentId")
            or notification.payload.get("originalShipmentId"),
            "order_id": notification.payload.get("orderId"),
        }

        with self._tracer.span_with_kind(
            "shipments.publisher.publish",
            SpanKindEnum.PRODUCER,
            {
                ATTR_NOTIFICATION_TYPE: notification_type,
                ATTR_MESSAGING_DESTINATION: notification.routing_key,
                ATTR_MESSAGING_OPERATION: "publish",
            },
        ):
            try:
                await self._transport.publish(notification)
            except Exception as e:
                if notification.critical:
                    logger.error(
                        "Failed to publish critical notification %s: %s",
                        notification_type,
                        e,
                        exc_info=True,
                        extra=log_extra,
                    )
                    raise NotificationDeliveryError(
                        notification_type, notification.routing_key, str(e)
                    ) from e
                logger.warning(
                    "Failed to publish notification %s: %s",
                    notification_type,
                    e,
                    extra=log_extra,
                )
                return False

        logger.info("Published %s", notification_type, extra=log_extra)
        return True

    async def publish_for_events(
        self, shipment: Shipment, events: Sequence[ShipmentEvent]
    ) -> list[Notification]:
        """
        Publish one notification per persisted event, in order.

        Returns:
            The notifications that were attempted
        """
        notifications = [notification_for_event(shipment, e, self._policy) for e in events]
        with self._tracer.span(
            "shipments.publisher.publish_for_events",
            {ATTR_SHIPMENT_ID: shipment.shipment_id},
        ):
            for notification in notifications:
                await self.publish(notification)
        return notifications

    async def publish_exchange_finalized(
        self,
        original: Shipment,
        replacement: Shipment,
        condition: ProductCondition | None,
    ) -> Notification:
        notification = exchange_finalized_notification(
            original, replacement, condition, self._policy
        )
        await self.publish(notification)
        return notification


__all__ = ["NotificationPublisher"]
