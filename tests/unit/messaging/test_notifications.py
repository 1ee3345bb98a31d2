"""
Unit tests for notification building and the notification policy.
"""

import json

import pytest

from shipments.domain import ProductCondition, ShipmentEventType, ShipmentStatus
from shipments.messaging import (
    Notification,
    NotificationPolicy,
    NotificationType,
    build_notification,
    exchange_finalized_notification,
    notification_for_event,
)
from shipments.messaging.notifications import DEFAULT_CRITICAL, DEFAULT_ROUTING_KEYS
from tests.fixtures import make_shipment, shipment_in


def last_notification(shipment, policy=None):
    event = shipment.uncommitted_events[-1]
    if policy is None:
        return notification_for_event(shipment, event)
    return notification_for_event(shipment, event, policy)


class TestNotificationPolicy:
    def test_every_type_has_a_routing_key(self):
        policy = NotificationPolicy()

        for notification_type in NotificationType:
            assert policy.routing_key_for(notification_type) == DEFAULT_ROUTING_KEYS[
                notification_type
            ]

    def test_default_critical_types(self):
        policy = NotificationPolicy()

        assert policy.critical == DEFAULT_CRITICAL
        assert policy.is_critical(NotificationType.SHIPPING_DELIVERED)
        assert policy.is_critical(NotificationType.SHIPPING_CANCELLED)
        assert policy.is_critical(NotificationType.RETURN_COMPLETED)
        assert not policy.is_critical(NotificationType.SHIPPING_CREATED)

    def test_with_overrides_replaces_critical_and_merges_priorities(self):
        policy = NotificationPolicy().with_overrides(
            priorities={NotificationType.SHIPPING_CREATED: 3},
            critical={NotificationType.SHIPPING_ERROR},
        )

        assert policy.critical == frozenset({NotificationType.SHIPPING_ERROR})
        assert policy.priority_for(NotificationType.SHIPPING_CREATED) == 3
        assert policy.priority_for(NotificationType.SHIPPING_ERROR) == 9

    def test_with_overrides_keeps_critical_when_not_given(self):
        policy = NotificationPolicy().with_overrides(priorities={})

        assert policy.critical == DEFAULT_CRITICAL


class TestBuildNotification:
    def test_stamps_type_and_timestamp(self):
        notification = build_notification(
            NotificationType.SHIPPING_ERROR, {"shipmentId": "ship_1"}
        )

        assert notification.payload["type"] == "SHIPPING_ERROR"
        assert "timestamp" in notification.payload
        assert notification.routing_key == "shipping.error"
        assert notification.priority == 9
        assert notification.critical is False

    def test_body_is_json(self):
        notification = build_notification(NotificationType.SHIPPING_CREATED, {"orderId": "o-1"})

        assert json.loads(notification.body)["orderId"] == "o-1"
        assert isinstance(notification, Notification)


class TestNotificationForEvent:
    def test_created(self):
        shipment = make_shipment(order_id="order-5")

        notification = last_notification(shipment)

        assert notification.notification_type is NotificationType.SHIPPING_CREATED
        assert notification.routing_key == "shipping.created"
        payload = notification.payload
        assert payload["shipmentId"] == shipment.shipment_id
        assert payload["orderId"] == "order-5"
        assert payload["status"] == "PENDING"
        assert payload["shipmentKind"] == "NORMAL"
        assert payload["customerInfo"]["customerId"] == "cust-1"
        assert payload["customerInfo"]["zipCode"] == "1234"
        assert payload["articles"][0] == {"articleId": "article-0", "quantity": 1, "price": 10.0}

    @pytest.mark.parametrize(
        "status,event_type",
        [
            (ShipmentStatus.PREPARED, ShipmentEventType.MOVED_TO_PREPARED),
            (ShipmentStatus.IN_TRANSIT, ShipmentEventType.MOVED_TO_IN_TRANSIT),
        ],
    )
    def test_state_changes(self, status, event_type):
        notification = last_notification(shipment_in(status))

        assert notification.notification_type is NotificationType.SHIPPING_STATE_CHANGED
        assert notification.routing_key == "shipping.state.changed"
        assert notification.payload["eventType"] == event_type.value
        assert notification.payload["status"] == status.value

    def test_delivered_is_critical(self):
        notification = last_notification(shipment_in(ShipmentStatus.DELIVERED))

        assert notification.notification_type is NotificationType.SHIPPING_DELIVERED
        assert notification.critical is True
        assert notification.payload["previousStatus"] == "IN_TRANSIT"
        assert notification.payload["customerInfo"] == {
            "customerId": "cust-1",
            "name": "Ada Lovelace",
        }
        assert "deliveredAt" in notification.payload

    def test_cancelled(self):
        notification = last_notification(shipment_in(ShipmentStatus.CANCELLED))

        assert notification.notification_type is NotificationType.SHIPPING_CANCELLED
        assert notification.routing_key == "shipping.cancelled"
        assert "cancelledAt" in notification.payload

    def test_return_initiated_and_completed(self):
        returning = last_notification(shipment_in(ShipmentStatus.RETURNING))
        returned = last_notification(shipment_in(ShipmentStatus.RETURNED))

        assert returning.notification_type is NotificationType.RETURN_INITIATED
        assert returning.routing_key == "shipping.return.initiated"
        assert len(returning.payload["articles"]) == 2
        assert returned.notification_type is NotificationType.RETURN_COMPLETED
        assert returned.routing_key == "shipping.return.completed"
        assert returned.payload["customerInfo"] == {"customerId": "cust-1"}

    def test_exchange_initiated(self):
        shipment = shipment_in(ShipmentStatus.EXCHANGE_PROCESSED)

        notification = last_notification(shipment)

        assert notification.notification_type is NotificationType.EXCHANGE_INITIATED
        assert notification.payload["originalShipmentId"] == shipment.shipment_id
        assert notification.payload["newShipmentId"] == "ship_1700000000000_replace"
        assert notification.payload["status"] == "EXCHANGE_PROCESSED"

    def test_error(self):
        shipment = make_shipment()
        shipment.record_error("label printer jammed", actor="warehouse_operator")

        notification = last_notification(shipment)

        assert notification.notification_type is NotificationType.SHIPPING_ERROR
        assert notification.payload["errorMessage"] == "label printer jammed"
        assert notification.priority == 9

    def test_policy_controls_criticality(self):
        policy = NotificationPolicy().with_overrides(critical=set())

        notification = last_notification(shipment_in(ShipmentStatus.DELIVERED), policy)

        assert notification.critical is False


class TestExchangeFinalized:
    def test_payload(self):
        original = shipment_in(ShipmentStatus.EXCHANGE_PROCESSED)
        replacement = make_shipment()

        notification = exchange_finalized_notification(
            original, replacement, ProductCondition.GOOD
        )

        assert notification.notification_type is NotificationType.EXCHANGE_FINALIZED
        assert notification.routing_key == "shipping.exchange.completed.final"
        assert notification.payload["originalShipmentId"] == original.shipment_id
        assert notification.payload["newShipmentId"] == replacement.shipment_id
        assert notification.payload["productCondition"] == "good"
        assert notification.payload["newShipmentStatus"] == "PENDING"

    def test_without_condition(self):
        notification = exchange_finalized_notification(make_shipment(), make_shipment(), None)

        assert notification.payload["productCondition"] is None
