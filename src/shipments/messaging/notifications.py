"""
Outbound notification types, publication policy and payload builders.

Every persisted shipment event maps to exactly one notification published
to the shared topic exchange. ``EXCHANGE_FINALIZED`` has no domain event of
its own; it is built by the exchange completion use case.

Payload keys are camelCase because sibling services consume them.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from shipments.domain.aggregate import Shipment
from shipments.domain.events import ShipmentEvent, ShipmentEventType
from shipments.domain.status import ProductCondition


class NotificationType(str, Enum):
    """Closed set of notifications published by the shipment service."""

    SHIPPING_CREATED = "SHIPPING_CREATED"
    SHIPPING_STATE_CHANGED = "SHIPPING_STATE_CHANGED"
    SHIPPING_DELIVERED = "SHIPPING_DELIVERED"
    SHIPPING_CANCELLED = "SHIPPING_CANCELLED"
    RETURN_INITIATED = "RETURN_INITIATED"
    RETURN_COMPLETED = "RETURN_COMPLETED"
    EXCHANGE_INITIATED = "EXCHANGE_INITIATED"
    EXCHANGE_COMPLETED = "EXCHANGE_COMPLETED"
    EXCHANGE_FINALIZED = "EXCHANGE_FINALIZED"
    SHIPPING_ERROR = "SHIPPING_ERROR"


DEFAULT_ROUTING_KEYS: dict[NotificationType, str] = {
    NotificationType.SHIPPING_CREATED: "shipping.created",
    NotificationType.SHIPPING_STATE_CHANGED: "shipping.state.changed",
    NotificationType.SHIPPING_DELIVERED: "shipping.delivered",
    NotificationType.SHIPPING_CANCELLED: "shipping.cancelled",
    NotificationType.RETURN_INITIATED: "shipping.return.initiated",
    NotificationType.RETURN_COMPLETED: "shipping.return.completed",
    NotificationType.EXCHANGE_INITIATED: "shipping.exchange.initiated",
    NotificationType.EXCHANGE_COMPLETED: "shipping.exchange.completed",
    NotificationType.EXCHANGE_FINALIZED: "shipping.exchange.completed.final",
    NotificationType.SHIPPING_ERROR: "shipping.error",
}

DEFAULT_PRIORITIES: dict[NotificationType, int] = {
    NotificationType.SHIPPING_CREATED: 0,
    NotificationType.SHIPPING_STATE_CHANGED: 0,
    NotificationType.SHIPPING_DELIVERED: 5,
    NotificationType.SHIPPING_CANCELLED: 5,
    NotificationType.RETURN_INITIATED: 6,
    NotificationType.RETURN_COMPLETED: 7,
    NotificationType.EXCHANGE_INITIATED: 6,
    NotificationType.EXCHANGE_COMPLETED: 5,
    NotificationType.EXCHANGE_FINALIZED: 7,
    NotificationType.SHIPPING_ERROR: 9,
}

# Downstream refunds and billing depend on these.
DEFAULT_CRITICAL: frozenset[NotificationType] = frozenset(
    {
        NotificationType.SHIPPING_DELIVERED,
        NotificationType.SHIPPING_CANCELLED,
        NotificationType.RETURN_COMPLETED,
    }
)


@dataclass(frozen=True)
class NotificationPolicy:
    """
    Routing, priority and criticality per notification type.

    A failure to publish a critical notification is surfaced to the caller
    as ``NotificationDeliveryError``; failures on every other type are
    logged and swallowed.

    Example:
        >>> policy = NotificationPolicy().with_overrides(
        ...     critical={NotificationType.SHIPPING_ERROR},
        ... )
        >>> policy.is_critical(NotificationType.SHIPPING_DELIVERED)
        False
    """

    routing_keys: Mapping[NotificationType, str] = field(
        default_factory=lambda: dict(DEFAULT_ROUTING_KEYS)
    )
    priorities: Mapping[NotificationType, int] = field(
        default_factory=lambda: dict(DEFAULT_PRIORITIES)
    )
    critical: frozenset[NotificationType] = DEFAULT_CRITICAL

    def routing_key_for(self, notification_type: NotificationType) -> str:
        return self.routing_keys[notification_type]

    def priority_for(self, notification_type: NotificationType) -> int:
        return self.priorities.get(notification_type, 0)

    def is_critical(self, notification_type: NotificationType) -> bool:
        return notification_type in self.critical

    def with_overrides(
        self,
        *,
        priorities: Mapping[NotificationType, int] | None = None,
        critical: Iterable[NotificationType] | None = None,
    ) -> NotificationPolicy:
        """Copy of this policy with some priorities and/or the critical set replaced."""
        merged = dict(self.priorities)
        merged.update(priorities or {})
        return replace(
            self,
            priorities=merged,
            critical=frozenset(critical) if critical is not None else self.critical,
        )


DEFAULT_POLICY = NotificationPolicy()


@dataclass(frozen=True)
class Notification:
    """A ready-to-publish outbound message."""

    notification_type: NotificationType
    routing_key: str
    priority: int
    critical: bool
    payload: dict[str, Any]

    @property
    def body(self) -> bytes:
        return json.dumps(self.payload).encode("utf-8")


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _customer_ref(shipment: Shipment, *, with_name: bool = True) -> dict[str, str]:
    ref = {"customerId": shipment.customer.customer_id}
    if with_name:
        ref["name"] = shipment.customer.name
    return ref


def _articles(shipment: Shipment) -> list[dict[str, Any]]:
    return [item.model_dump(mode="json", by_alias=True) for item in shipment.line_items]


def _status_change(event: ShipmentEvent) -> dict[str, Any]:
    return {
        "status": event.new_status.value if event.new_status else None,
        "previousStatus": event.previous_status.value if event.previous_status else None,
    }


def _payload_for_event(
    shipment: Shipment, event: ShipmentEvent
) -> tuple[NotificationType, dict[str, Any]]:
    occurred_at = event.occurred_at.isoformat()
    base: dict[str, Any] = {"shipmentId": event.shipment_id, "orderId": event.order_id}
    event_type = event.event_type

    if event_type is ShipmentEventType.SHIPMENT_CREATED:
        return NotificationType.SHIPPING_CREATED, {
            **base,
            "status": event.new_status.value,
            "shipmentKind": shipment.kind.value,
            "customerInfo": shipment.customer.model_dump(mode="json", by_alias=True),
            "articles": _articles(shipment),
        }
    if event_type in (ShipmentEventType.MOVED_TO_PREPARED, ShipmentEventType.MOVED_TO_IN_TRANSIT):
        return NotificationType.SHIPPING_STATE_CHANGED, {
            **base,
            "eventType": event_type.value,
            **_status_change(event),
        }
    if event_type is ShipmentEventType.MOVED_TO_DELIVERED:
        return NotificationType.SHIPPING_DELIVERED, {
            **base,
            **_status_change(event),
            "customerInfo": _customer_ref(shipment),
            "deliveredAt": occurred_at,
        }
    if event_type is ShipmentEventType.SHIPMENT_CANCELLED:
        return NotificationType.SHIPPING_CANCELLED, {
            **base,
            **_status_change(event),
            "cancelledAt": occurred_at,
        }
    if event_type is ShipmentEventType.RETURN_INITIATED:
        return NotificationType.RETURN_INITIATED, {
            **base,
            **_status_change(event),
            "customerInfo": _customer_ref(shipment),
            "articles": _articles(shipment),
            "initiatedAt": occurred_at,
        }
    if event_type is ShipmentEventType.RETURN_COMPLETED:
        return NotificationType.RETURN_COMPLETED, {
            **base,
            **_status_change(event),
            "customerInfo": _customer_ref(shipment, with_name=False),
            "completedAt": occurred_at,
        }
    if event_type is ShipmentEventType.EXCHANGE_INITIATED:
        return NotificationType.EXCHANGE_INITIATED, {
            "originalShipmentId": event.shipment_id,
            "newShipmentId": event.related_shipment_id,
            "orderId": event.order_id,
            **_status_change(event),
            "customerInfo": _customer_ref(shipment),
            "articles": _articles(shipment),
            "initiatedAt": occurred_at,
        }
    if event_type is ShipmentEventType.EXCHANGE_COMPLETED:
        return NotificationType.EXCHANGE_COMPLETED, {
            "newShipmentId": event.shipment_id,
            "originalShipmentId": event.related_shipment_id,
            "orderId": event.order_id,
            "status": event.new_status.value,
            "completedAt": occurred_at,
        }
    if event_type is ShipmentEventType.SHIPMENT_ERROR:
        return NotificationType.SHIPPING_ERROR, {
            **base,
            "errorMessage": event.error_message,
            "occurredAt": occurred_at,
        }
    raise ValueError(f"No notification mapping for event type {event_type.value}")


def build_notification(
    notification_type: NotificationType,
    payload: dict[str, Any],
    policy: NotificationPolicy = DEFAULT_POLICY,
) -> Notification:
    """Stamp ``type`` and ``timestamp`` onto a payload and attach routing from the policy."""
    return Notification(
        notification_type=notification_type,
        routing_key=policy.routing_key_for(notification_type),
        priority=policy.priority_for(notification_type),
        critical=policy.is_critical(notification_type),
        payload={"type": notification_type.value, **payload, "timestamp": _now()},
    )


def notification_for_event(
    shipment: Shipment,
    event: ShipmentEvent,
    policy: NotificationPolicy = DEFAULT_POLICY,
) -> Notification:
    """Build the notification announcing a persisted shipment event."""
    notification_type, payload = _payload_for_event(shipment, event)
    return build_notification(notification_type, payload, policy)


def exchange_finalized_notification(
    original: Shipment,
    replacement: Shipment,
    condition: ProductCondition | None,
    policy: NotificationPolicy = DEFAULT_POLICY,
) -> Notification:
    return build_notification(
        NotificationType.EXCHANGE_FINALIZED,
        {
            "originalShipmentId": original.shipment_id,
            "newShipmentId": replacement.shipment_id,
            "orderId": original.order_id,
            "productCondition": condition.value if condition else None,
            "newShipmentStatus": replacement.status.value,
        },
        policy,
    )


__all__ = [
    "NotificationType",
    "NotificationPolicy",
    "Notification",
    "DEFAULT_POLICY",
    "DEFAULT_ROUTING_KEYS",
    "DEFAULT_PRIORITIES",
    "DEFAULT_CRITICAL",
    "build_notification",
    "notification_for_event",
    "exchange_finalized_notification",
]
