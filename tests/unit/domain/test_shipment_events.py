"""
Unit tests for shipment events and the event registry.
"""

from uuid import UUID

import pytest
from pydantic import ValidationError as PydanticValidationError

from shipments.domain.events import (
    EventRegistry,
    EventTypeNotFoundError,
    ExchangeInitiated,
    MovedToDelivered,
    MovedToPrepared,
    ShipmentCreated,
    ShipmentErrorRecorded,
    ShipmentEventType,
    default_registry,
)
from shipments.domain.status import ShipmentStatus
from shipments.exceptions import ValidationError
from tests.fixtures import make_customer, make_line_items


class TestShipmentEvent:
    def test_defaults(self):
        event = MovedToPrepared(shipment_id="ship_1_abc", order_id="order-1")

        assert isinstance(event.event_id, UUID)
        assert event.occurred_at.tzinfo is not None
        assert event.event_type is ShipmentEventType.MOVED_TO_PREPARED
        assert event.new_status is ShipmentStatus.PREPARED

    def test_events_are_frozen(self):
        event = MovedToPrepared(shipment_id="ship_1_abc", order_id="order-1")
        with pytest.raises(PydanticValidationError):
            event.actor = "someone"  # type: ignore[misc]

    def test_helpers(self):
        created = ShipmentCreated(
            shipment_id="ship_1_abc",
            order_id="order-1",
            customer=make_customer(),
            line_items=tuple(make_line_items()),
        )
        delivered = MovedToDelivered(shipment_id="ship_1_abc", order_id="order-1")
        error = ShipmentErrorRecorded(
            shipment_id="ship_1_abc", order_id="order-1", error_message="boom"
        )

        assert created.is_creation_event and created.is_status_change
        assert delivered.is_closing_event
        assert not delivered.new_status.is_terminal
        assert not created.is_closing_event
        assert error.is_error and not error.is_status_change

    def test_str_mentions_type_and_shipment(self):
        event = MovedToPrepared(shipment_id="ship_1_abc", order_id="order-1")
        assert "MOVED_TO_PREPARED" in str(event)
        assert "ship_1_abc" in str(event)


class TestEventRegistry:
    def test_default_registry_covers_every_event_type(self):
        assert set(default_registry.list_types()) == {t.value for t in ShipmentEventType}

    def test_deserialize_round_trips_payload(self):
        event = ExchangeInitiated(
            shipment_id="ship_1_abc",
            order_id="order-1",
            previous_status=ShipmentStatus.DELIVERED,
            related_shipment_id="ship_2_def",
        )

        restored = default_registry.deserialize(event.to_dict())

        assert isinstance(restored, ExchangeInitiated)
        assert restored == event

    def test_unknown_type(self):
        with pytest.raises(EventTypeNotFoundError):
            default_registry.get("PARCEL_LOST")

    def test_invalid_payload_raises_validation_error(self):
        data = MovedToPrepared(shipment_id="ship_1_abc", order_id="order-1").to_dict()
        data["shipment_id"] = ""
        with pytest.raises(ValidationError):
            default_registry.deserialize(data)

    def test_conflicting_registration_rejected(self):
        registry = EventRegistry()
        registry.register(MovedToPrepared)
        registry.register(MovedToPrepared)

        class Impostor(MovedToPrepared):
            pass

        with pytest.raises(ValueError):
            registry.register(Impostor)
        assert len(registry) == 1
        assert "MOVED_TO_PREPARED" in registry
