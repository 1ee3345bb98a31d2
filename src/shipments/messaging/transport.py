"""
Message transports for outbound notifications.

A transport only knows how to put a ``Notification`` on the wire; routing,
priority and criticality come from the notification itself.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from shipments.messaging.notifications import Notification, NotificationType

logger = logging.getLogger(__name__)


@runtime_checkable
class MessageTransport(Protocol):
    """
    Protocol for notification transports.

    Implementations:
    - InMemoryTransport: Records notifications in a list, for tests and development
    - RabbitMQTransport: Publishes to a RabbitMQ topic exchange via aio-pika
    """

    async def publish(self, notification: Notification) -> None:
        """
        Publish a notification.

        Raises:
            Exception: Any transport failure; the publisher decides whether it matters
        """
        ...


class InMemoryTransport:
    """
    In-process transport that records every published notification.

    Failures can be injected per notification type to exercise the
    critical versus best-effort publishing paths.

    Example:
        >>> transport = InMemoryTransport()
        >>> transport.fail_on(NotificationType.SHIPPING_DELIVERED)
        >>> await transport.publish(notification)  # raises ConnectionError
    """

    def __init__(self) -> None:
        self.published: list[Notification] = []
        self._failing: dict[NotificationType, Exception] = {}
        self._fail_all: Exception | None = None

    async def publish(self, notification: Notification) -> None:
        error = self._fail_all or self._failing.get(notification.notification_type)
        if error is not None:
            raise error
        self.published.append(notification)
        logger.debug(
            "Recorded %s notification",
            notification.notification_type.value,
            extra={"routing_key": notification.routing_key},
        )

    def fail_on(
        self,
        notification_type: NotificationType,
        error: Exception | None = None,
    ) -> None:
        self._failing[notification_type] = error or ConnectionError("transport unavailable")

    def fail_all(self, error: Exception | None = None) -> None:
        self._fail_all = error or ConnectionError("transport unavailable")

    def reset(self) -> None:
        self.published.clear()
        self._failing.clear()
        self._fail_all = None

    @property
    def published_types(self) -> list[NotificationType]:
        return [n.notification_type for n in self.published]

    def of_type(self, notification_type: NotificationType) -> list[Notification]:
        return [n for n in self.published if n.notification_type is notification_type]


__all__ = ["MessageTransport", "InMemoryTransport"]
