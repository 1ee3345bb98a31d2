"""
Shipment application service.

Each use case follows the same sequence:

1. load the aggregate by replaying its events (or create a new one);
2. run the domain operation, which checks its guard;
3. save through the repository (event log first, then projection);
4. publish one notification per persisted event.

Publication happens after persistence. Best-effort notifications never
fail a use case; a failed critical notification raises
``NotificationDeliveryError`` even though the state change is already
stored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from shipments.application.commands import (
    CancelShipmentCommand,
    CompleteExchangeCommand,
    CompleteReturnCommand,
    CreateShipmentCommand,
    InitiateExchangeCommand,
    InitiateReturnCommand,
    TransitionCommand,
)
from shipments.domain.aggregate import Shipment, generate_shipment_id
from shipments.domain.events import ShipmentEvent, ShipmentEventType
from shipments.domain.status import (
    ProductCondition,
    ShipmentStatus,
    can_be_cancelled,
    can_complete_return,
    can_initiate_exchange,
    can_initiate_return,
)
from shipments.exceptions import (
    InvalidTransitionError,
    ShipmentNotFoundError,
    ValidationError,
)
from shipments.messaging.publisher import NotificationPublisher
from shipments.repository import ShipmentRepository

logger = logging.getLogger(__name__)

DEFAULT_CREATE_ACTOR = "system"
DEFAULT_TRANSITION_ACTOR = "operator"
DEFAULT_CANCEL_ACTOR = "admin"
DEFAULT_CUSTOMER_ACTOR = "customer"
DEFAULT_WAREHOUSE_ACTOR = "warehouse_operator"


class ExchangeStatus(str, Enum):
    """Progress of an exchange, seen from the original shipment."""

    AWAITING_RETURN = "awaiting_return"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PENDING = "pending"


@dataclass(frozen=True)
class ExchangeResult:
    original: Shipment
    replacement: Shipment


@dataclass(frozen=True)
class CompleteExchangeResult:
    """
    Outcome of completing an exchange.

    Attributes:
        original: The original shipment, unchanged by this operation
        replacement: The replacement shipment after the operation
        replacement_prepared: True when this call moved the replacement to PREPARED
        next_action: What the warehouse does next; the replacement is
            always being processed once the exchange completes
    """

    original: Shipment
    replacement: Shipment
    replacement_prepared: bool
    next_action: str = "already_processing"


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


def _describe(
    description: str | None,
    base: str,
    *,
    reason: str | None = None,
    condition: ProductCondition | None = None,
    notes: str | None = None,
) -> str:
    """An explicit description wins; otherwise compose one from the optional details."""
    if description:
        return description
    text = base
    if reason:
        text += f". Reason: {reason}"
    if condition is not None:
        text += f". Condition: {condition.label}"
    if notes:
        text += f". Notes: {notes}"
    return text


class ShipmentService:
    """
    Use cases and queries over shipments.

    Example:
        >>> service = ShipmentService(repository, publisher)
        >>> shipment = await service.create_shipment(
        ...     CreateShipmentCommand(order_id="order-1", customer=customer, line_items=items)
        ... )
        >>> await service.move_to_prepared(TransitionCommand(shipment_id=shipment.id))
    """

    def __init__(
        self,
        repository: ShipmentRepository,
        publisher: NotificationPublisher,
    ) -> None:
        self._repository = repository
        self._publisher = publisher

    @property
    def repository(self) -> ShipmentRepository:
        return self._repository

    @property
    def publisher(self) -> NotificationPublisher:
        return self._publisher

    async def _commit(self, shipment: Shipment) -> list[ShipmentEvent]:
        events = await self._repository.save(shipment)
        await self._publisher.publish_for_events(shipment, events)
        return events

    # ------------------------------------------------------------------
    # Use cases
    # ------------------------------------------------------------------

    async def create_shipment(self, command: CreateShipmentCommand) -> Shipment:
        """
        Create the shipment for a paid order.

        An order gets one NORMAL shipment. When it already has one, that
        shipment is returned and nothing new is stored; if the earlier
        attempt stopped before its projection was written, the projection
        is written now and the creation notification is sent.
        """
        existing = await self._repository.find_created_for_order(command.order_id)
        if existing is not None:
            return await self._resume_creation(existing)

        shipment = Shipment.create(
            command.order_id,
            command.customer,
            command.line_items,
            actor=command.actor or DEFAULT_CREATE_ACTOR,
            description=command.description or f"Shipment created at {_timestamp()}",
        )
        await self._commit(shipment)
        logger.info(
            "Created shipment %s for order %s",
            shipment.shipment_id,
            shipment.order_id,
            extra={"shipment_id": shipment.shipment_id, "order_id": shipment.order_id},
        )
        return shipment

    async def _resume_creation(self, shipment: Shipment) -> Shipment:
        log_extra = {"shipment_id": shipment.shipment_id, "order_id": shipment.order_id}
        if await self._repository.exists(shipment.shipment_id):
            logger.info(
                "Order %s already has shipment %s",
                shipment.order_id,
                shipment.shipment_id,
                extra=log_extra,
            )
            return shipment

        logger.warning(
            "Shipment %s for order %s has no projection, completing its creation",
            shipment.shipment_id,
            shipment.order_id,
            extra=log_extra,
        )
        await self._repository.save(shipment)
        history = await self._repository.get_events(shipment.shipment_id)
        await self._publisher.publish_for_events(shipment, history[:1])
        return shipment

    async def move_to_prepared(self, command: TransitionCommand) -> Shipment:
        shipment = await self._repository.load_by_id(command.shipment_id)
        shipment.move_to_prepared(
            command.actor or DEFAULT_TRANSITION_ACTOR,
            command.description or f"Package prepared and ready for pickup at {_timestamp()}",
        )
        await self._commit(shipment)
        return shipment

    async def move_to_in_transit(self, command: TransitionCommand) -> Shipment:
        shipment = await self._repository.load_by_id(command.shipment_id)
        shipment.move_to_in_transit(
            command.actor or DEFAULT_TRANSITION_ACTOR,
            command.description or f"Package picked up by carrier at {_timestamp()}",
        )
        await self._commit(shipment)
        return shipment

    async def move_to_delivered(self, command: TransitionCommand) -> Shipment:
        shipment = await self._repository.load_by_id(command.shipment_id)
        shipment.move_to_delivered(
            command.actor or DEFAULT_TRANSITION_ACTOR,
            command.description or f"Package delivered to customer at {_timestamp()}",
        )
        await self._commit(shipment)
        return shipment

    async def cancel_shipment(self, command: CancelShipmentCommand) -> Shipment:
        shipment = await self._repository.load_by_id(command.shipment_id)
        shipment.cancel(
            command.actor or DEFAULT_CANCEL_ACTOR,
            _describe(
                command.description,
                f"Shipment cancelled at {_timestamp()}",
                reason=command.reason,
            ),
        )
        await self._commit(shipment)
        logger.info(
            "Cancelled shipment %s",
            shipment.shipment_id,
            extra={"shipment_id": shipment.shipment_id, "reason": command.reason},
        )
        return shipment

    async def initiate_return(self, command: InitiateReturnCommand) -> Shipment:
        shipment = await self._repository.load_by_id(command.shipment_id)
        base = (
            f"Return initiated at {_timestamp()}"
            if command.reason
            else f"Return for refund initiated at {_timestamp()}"
        )
        shipment.initiate_return(
            command.actor or DEFAULT_CUSTOMER_ACTOR,
            _describe(command.description, base, reason=command.reason),
        )
        await self._commit(shipment)
        return shipment

    async def complete_return(self, command: CompleteReturnCommand) -> Shipment:
        shipment = await self._repository.load_by_id(command.shipment_id)
        shipment.complete_return(
            command.actor or DEFAULT_WAREHOUSE_ACTOR,
            _describe(
                command.description,
                f"Return completed at {_timestamp()}",
                condition=command.product_condition,
                notes=command.notes,
            ),
        )
        await self._commit(shipment)
        return shipment

    async def initiate_exchange(self, command: InitiateExchangeCommand) -> ExchangeResult:
        """
        Close out a shipment in favour of a new EXCHANGE shipment.

        The original ends in EXCHANGE_PROCESSED. From DELIVERED it passes
        through RETURNING first; that implicit return is stored but no
        return notification is sent for it. The replacement is created in
        PENDING with the original customer and either the new line items
        or the original ones.

        The replacement is saved before the original, and nothing is
        published until both are stored. If saving the original fails,
        it keeps its previous status and the call can be retried; the
        replacement left behind is a PENDING shipment the original does not
        point to.
        """
        original = await self._repository.load_by_id(command.shipment_id)
        actor = command.actor or DEFAULT_CUSTOMER_ACTOR
        replacement_id = generate_shipment_id()
        original.initiate_exchange(
            replacement_id,
            actor,
            _describe(
                command.description,
                f"Exchange initiated at {_timestamp()}. New shipment: {replacement_id}",
                reason=command.reason,
            ),
        )
        replacement = Shipment.create_for_exchange(
            original.shipment_id,
            original.order_id,
            original.customer,
            command.new_line_items or original.line_items,
            shipment_id=replacement_id,
            actor=actor,
            description=f"Exchange shipment created from {original.shipment_id}",
        )

        replacement_events = await self._repository.save(replacement)
        original_events = await self._repository.save(original)
        await self._publisher.publish_for_events(
            original,
            [e for e in original_events if e.event_type is not ShipmentEventType.RETURN_INITIATED],
        )
        await self._publisher.publish_for_events(replacement, replacement_events)
        logger.info(
            "Initiated exchange of %s, replacement %s",
            original.shipment_id,
            replacement.shipment_id,
            extra={
                "shipment_id": original.shipment_id,
                "related_shipment_id": replacement.shipment_id,
                "order_id": original.order_id,
            },
        )
        return ExchangeResult(original=original, replacement=replacement)

    async def complete_exchange(self, command: CompleteExchangeCommand) -> CompleteExchangeResult:
        """
        Confirm the returned product and release the replacement shipment.

        Only a good (or unreported) product condition is handled: a PENDING
        replacement is moved to PREPARED. What should happen to the original
        and the replacement for a damaged or defective product is undecided,
        so those conditions raise ``NotImplementedError`` before anything
        changes.

        Raises:
            ShipmentNotFoundError: If either shipment does not exist
            ValidationError: If the shipments are not linked by an exchange
            InvalidTransitionError: If either shipment is in the wrong status
            NotImplementedError: For damaged or defective products
        """
        original = await self._repository.load_by_id(command.original_shipment_id)
        replacement = await self._repository.load_by_id(command.new_shipment_id)

        if replacement.related_shipment_id != original.shipment_id:
            raise ValidationError(
                f"Shipment {replacement.shipment_id} is not linked to {original.shipment_id}"
            )
        if not replacement.kind.is_exchange:
            raise ValidationError(
                f"Shipment {replacement.shipment_id} is not an exchange shipment"
            )
        if not (original.status.is_returning or original.status.is_exchange_processed):
            raise InvalidTransitionError(
                original.status,
                ShipmentStatus.EXCHANGE_PROCESSED,
                "the original shipment must be RETURNING or EXCHANGE_PROCESSED",
            )
        if not (
            replacement.status.is_pending
            or replacement.status.is_prepared
            or replacement.status.is_in_transit
        ):
            raise InvalidTransitionError(
                replacement.status,
                ShipmentStatus.PREPARED,
                "the replacement shipment must be PENDING, PREPARED or IN_TRANSIT",
            )

        condition = command.product_condition
        if condition is not None and condition is not ProductCondition.GOOD:
            raise NotImplementedError(
                f"Completing an exchange for a {condition.value} product is not supported"
            )

        prepared = False
        if replacement.status.is_pending:
            replacement.move_to_prepared(
                command.actor or DEFAULT_WAREHOUSE_ACTOR,
                _describe(
                    command.description,
                    f"Exchange completed at {_timestamp()}, new product prepared",
                    condition=condition,
                    notes=command.notes,
                ),
            )
            await self._commit(replacement)
            prepared = True

        await self._publisher.publish_exchange_finalized(original, replacement, condition)
        return CompleteExchangeResult(
            original=original,
            replacement=replacement,
            replacement_prepared=prepared,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_shipment(self, shipment_id: str) -> Shipment | None:
        """Read from the projection."""
        return await self._repository.find_by_id(shipment_id)

    async def get_shipment_from_events(self, shipment_id: str) -> Shipment:
        """Rebuild from the event log, bypassing the projection."""
        return await self._repository.load_by_id(shipment_id)

    async def list_by_order(self, order_id: str) -> list[Shipment]:
        return await self._repository.find_by_order_id(order_id)

    async def list_by_customer(self, customer_id: str) -> list[Shipment]:
        return await self._repository.find_by_customer_id(customer_id)

    async def list_by_status(self, status: ShipmentStatus | str) -> list[Shipment]:
        return await self._repository.find_by_status(status)

    async def list_all(self, limit: int = 50, offset: int = 0) -> list[Shipment]:
        return await self._repository.list_all(limit, offset)

    async def get_shipment_events(self, shipment_id: str) -> list[ShipmentEvent]:
        return await self._repository.get_events(shipment_id)

    async def count_shipments(self) -> int:
        return await self._repository.count()

    async def count_by_status(self, status: ShipmentStatus | str) -> int:
        return await self._repository.count_by_status(status)

    async def can_be_cancelled(self, shipment_id: str) -> bool:
        shipment = await self._repository.find_by_id(shipment_id)
        return shipment is not None and can_be_cancelled(shipment.status)

    async def can_initiate_return(self, shipment_id: str) -> bool:
        shipment = await self._repository.find_by_id(shipment_id)
        return shipment is not None and can_initiate_return(shipment.status)

    async def can_initiate_exchange(self, shipment_id: str) -> bool:
        shipment = await self._repository.find_by_id(shipment_id)
        return shipment is not None and can_initiate_exchange(shipment.status)

    async def can_complete_return(self, shipment_id: str) -> bool:
        shipment = await self._repository.find_by_id(shipment_id)
        return shipment is not None and can_complete_return(shipment.status)

    async def get_exchange_status(self, original_shipment_id: str) -> ExchangeStatus:
        """
        Report the progress of the exchange started from ``original_shipment_id``.

        Raises:
            ShipmentNotFoundError: If the original or its replacement does not exist
            ValidationError: If the original has no replacement shipment
        """
        original = await self._repository.find_by_id(original_shipment_id)
        if original is None:
            raise ShipmentNotFoundError(original_shipment_id)
        if original.related_shipment_id is None:
            raise ValidationError(
                f"Shipment {original_shipment_id} has no related exchange shipment"
            )
        replacement = await self._repository.find_by_id(original.related_shipment_id)
        if replacement is None:
            raise ShipmentNotFoundError(original.related_shipment_id)

        if original.status.is_exchange_processed:
            if replacement.status.is_delivered:
                return ExchangeStatus.COMPLETED
            if replacement.status.is_in_transit or replacement.status.is_prepared:
                return ExchangeStatus.IN_PROGRESS
        if original.status.is_returning and replacement.status.is_pending:
            return ExchangeStatus.AWAITING_RETURN
        return ExchangeStatus.PENDING


__all__ = [
    "ShipmentService",
    "ExchangeResult",
    "CompleteExchangeResult",
    "ExchangeStatus",
]
