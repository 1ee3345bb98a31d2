"""
Shipment status state machine.

Defines the closed set of shipment statuses and kinds, the legal
transition table, and the guards used by the aggregate before it emits
an event. All functions here are pure.

Transition table:
    PENDING     -> PREPARED, CANCELLED
    PREPARED    -> IN_TRANSIT, CANCELLED
    IN_TRANSIT  -> DELIVERED
    DELIVERED   -> RETURNING
    RETURNING   -> RETURNED, EXCHANGE_PROCESSED

CANCELLED, RETURNED and EXCHANGE_PROCESSED have no outbound transitions.
"""

from __future__ import annotations

from enum import Enum

from shipments.exceptions import InvalidTransitionError, ValidationError


class ShipmentStatus(str, Enum):
    """Lifecycle status of a shipment."""

    PENDING = "PENDING"
    PREPARED = "PREPARED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    RETURNING = "RETURNING"
    RETURNED = "RETURNED"
    EXCHANGE_PROCESSED = "EXCHANGE_PROCESSED"

    @classmethod
    def parse(cls, value: str | ShipmentStatus) -> ShipmentStatus:
        """
        Parse a status from a string in any letter case.

        Raises:
            ValidationError: If the value is not a known status
        """
        if isinstance(value, ShipmentStatus):
            return value
        try:
            return cls(value.strip().upper())
        except (ValueError, AttributeError) as e:
            allowed = ", ".join(s.value for s in cls)
            raise ValidationError(
                f"Invalid shipment status: {value!r}. Allowed values: {allowed}"
            ) from e

    @property
    def allowed_targets(self) -> frozenset[ShipmentStatus]:
        return TRANSITIONS[self]

    def can_transition_to(self, target: ShipmentStatus) -> bool:
        return target in TRANSITIONS[self]

    @property
    def is_terminal(self) -> bool:
        """True when the status has no outbound transitions."""
        return not TRANSITIONS[self]

    @property
    def is_pending(self) -> bool:
        return self is ShipmentStatus.PENDING

    @property
    def is_prepared(self) -> bool:
        return self is ShipmentStatus.PREPARED

    @property
    def is_in_transit(self) -> bool:
        return self is ShipmentStatus.IN_TRANSIT

    @property
    def is_delivered(self) -> bool:
        return self is ShipmentStatus.DELIVERED

    @property
    def is_cancelled(self) -> bool:
        return self is ShipmentStatus.CANCELLED

    @property
    def is_returning(self) -> bool:
        return self is ShipmentStatus.RETURNING

    @property
    def is_returned(self) -> bool:
        return self is ShipmentStatus.RETURNED

    @property
    def is_exchange_processed(self) -> bool:
        return self is ShipmentStatus.EXCHANGE_PROCESSED


class ShipmentKind(str, Enum):
    """Whether a shipment is an original delivery or an exchange replacement."""

    NORMAL = "NORMAL"
    EXCHANGE = "EXCHANGE"

    @classmethod
    def parse(cls, value: str | ShipmentKind) -> ShipmentKind:
        if isinstance(value, ShipmentKind):
            return value
        try:
            return cls(value.strip().upper())
        except (ValueError, AttributeError) as e:
            allowed = ", ".join(k.value for k in cls)
            raise ValidationError(
                f"Invalid shipment kind: {value!r}. Allowed values: {allowed}"
            ) from e

    @property
    def is_exchange(self) -> bool:
        return self is ShipmentKind.EXCHANGE


class ProductCondition(str, Enum):
    """Condition of a returned product as verified by the warehouse."""

    GOOD = "good"
    DAMAGED = "damaged"
    DEFECTIVE = "defective"

    @property
    def label(self) -> str:
        return _CONDITION_LABELS[self]


_CONDITION_LABELS = {
    ProductCondition.GOOD: "product returned in good condition",
    ProductCondition.DAMAGED: "product returned damaged",
    ProductCondition.DEFECTIVE: "product returned defective",
}


TRANSITIONS: dict[ShipmentStatus, frozenset[ShipmentStatus]] = {
    ShipmentStatus.PENDING: frozenset({ShipmentStatus.PREPARED, ShipmentStatus.CANCELLED}),
    ShipmentStatus.PREPARED: frozenset({ShipmentStatus.IN_TRANSIT, ShipmentStatus.CANCELLED}),
    ShipmentStatus.IN_TRANSIT: frozenset({ShipmentStatus.DELIVERED}),
    ShipmentStatus.DELIVERED: frozenset({ShipmentStatus.RETURNING}),
    ShipmentStatus.RETURNING: frozenset(
        {ShipmentStatus.RETURNED, ShipmentStatus.EXCHANGE_PROCESSED}
    ),
    ShipmentStatus.CANCELLED: frozenset(),
    ShipmentStatus.RETURNED: frozenset(),
    ShipmentStatus.EXCHANGE_PROCESSED: frozenset(),
}

CANCELLABLE_STATUSES = frozenset({ShipmentStatus.PENDING, ShipmentStatus.PREPARED})
EXCHANGEABLE_STATUSES = frozenset({ShipmentStatus.DELIVERED, ShipmentStatus.RETURNING})


def ensure_transition(source: ShipmentStatus, target: ShipmentStatus) -> None:
    """
    Check a transition against the table.

    Raises:
        InvalidTransitionError: If ``target`` is not reachable from ``source``
    """
    if not source.can_transition_to(target):
        raise InvalidTransitionError(source, target)


def can_be_cancelled(status: ShipmentStatus) -> bool:
    """Cancellation is allowed only before the carrier has the parcel."""
    return status in CANCELLABLE_STATUSES


def can_initiate_return(status: ShipmentStatus) -> bool:
    return status.is_delivered


def can_complete_return(status: ShipmentStatus) -> bool:
    return status.is_returning


def can_initiate_exchange(status: ShipmentStatus) -> bool:
    return status in EXCHANGEABLE_STATUSES


def ensure_can_be_cancelled(status: ShipmentStatus) -> None:
    if not can_be_cancelled(status):
        raise InvalidTransitionError(
            status,
            ShipmentStatus.CANCELLED,
            "only PENDING or PREPARED shipments can be cancelled; "
            "shipments in transit or delivered must be returned",
        )


def ensure_can_initiate_return(status: ShipmentStatus) -> None:
    if not can_initiate_return(status):
        raise InvalidTransitionError(
            status,
            ShipmentStatus.RETURNING,
            "a return can only be initiated from DELIVERED",
        )


def ensure_can_complete_return(status: ShipmentStatus) -> None:
    if not can_complete_return(status):
        raise InvalidTransitionError(
            status,
            ShipmentStatus.RETURNED,
            "a return can only be completed from RETURNING",
        )


def ensure_can_initiate_exchange(status: ShipmentStatus) -> None:
    if not can_initiate_exchange(status):
        raise InvalidTransitionError(
            status,
            ShipmentStatus.EXCHANGE_PROCESSED,
            "an exchange can only be initiated from DELIVERED or RETURNING",
        )


__all__ = [
    "ShipmentStatus",
    "ShipmentKind",
    "ProductCondition",
    "TRANSITIONS",
    "CANCELLABLE_STATUSES",
    "EXCHANGEABLE_STATUSES",
    "ensure_transition",
    "can_be_cancelled",
    "can_initiate_return",
    "can_complete_return",
    "can_initiate_exchange",
    "ensure_can_be_cancelled",
    "ensure_can_initiate_return",
    "ensure_can_complete_return",
    "ensure_can_initiate_exchange",
]
