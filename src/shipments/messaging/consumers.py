"""
Handlers for inbound notifications from the sibling services.

A handler decodes one JSON payload and runs it against the service or the
repository. It raises on failure and leaves acknowledgement, retry and
dead-lettering to ``RabbitMQConsumer``:

- ``MessageProcessingError`` for malformed payloads (dead-lettered at once)
- any other exception is retried up to ``max_retries``
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from shipments.application.commands import CreateShipmentCommand
from shipments.domain.aggregate import Shipment
from shipments.domain.status import ShipmentStatus
from shipments.exceptions import MessageProcessingError

if TYPE_CHECKING:
    from shipments.application.service import ShipmentService
    from shipments.repository import ShipmentRepository

logger = logging.getLogger(__name__)

PAYMENT_APPROVED_ROUTING_KEY = "order.payment.approved"
PAYMENT_APPROVED_QUEUE = "delivery.payment_approved"
ORDER_REFUND_ROUTING_KEY = "order.refund.processed"
ORDER_REFUND_QUEUE = "delivery.order_refund"

DEFAULT_CUSTOMER_NAME = "Customer"
DEFAULT_CITY = "Unknown city"
DEFAULT_ZIP_CODE = "0000"
DEFAULT_PHONE = "No phone"
DEFAULT_ADDRESS = "Address not specified"


@runtime_checkable
class MessageHandler(Protocol):
    """Processes one decoded inbound message."""

    @property
    def message_type(self) -> str:
        """Name of the handled message type, used in logs and errors."""
        ...

    async def handle(self, payload: dict[str, Any]) -> Any:
        """
        Process the payload.

        Raises:
            MessageProcessingError: If the payload is malformed
        """
        ...


class _InboundModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


class InboundCustomerInfo(_InboundModel):
    customer_id: str = Field(..., min_length=1)
    name: str | None = None
    address: str = Field(..., min_length=1)
    city: str | None = None
    zip_code: str | None = None
    phone: str | None = None


class InboundArticle(_InboundModel):
    article_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("articleId", "article_id", "id")
    )
    quantity: int
    price: float


class PaymentApprovedMessage(_InboundModel):
    """
    ``order.payment.approved`` payload.

    The customer comes either as a ``customerInfo`` object or in the legacy
    flat form ``customerId`` plus ``address``.
    """

    order_id: str = Field(..., min_length=1)
    customer_id: str | None = None
    customer_info: InboundCustomerInfo | None = None
    address: str | None = None
    articles: list[InboundArticle] = Field(..., min_length=1)
    payment_method: str | None = None
    total_amount: float | None = None
    timestamp: str | None = None

    @model_validator(mode="after")
    def _has_customer(self) -> PaymentApprovedMessage:
        if self.customer_info is None and not (self.customer_id and self.address):
            raise ValueError("customer information is missing")
        return self

    def customer_payload(self) -> dict[str, str]:
        info = self.customer_info
        if info is not None:
            return {
                "customer_id": info.customer_id,
                "name": info.name or DEFAULT_CUSTOMER_NAME,
                "address": info.address,
                "city": info.city or DEFAULT_CITY,
                "zip_code": info.zip_code or DEFAULT_ZIP_CODE,
                "phone": info.phone or DEFAULT_PHONE,
            }
        return {
            "customer_id": self.customer_id or "unknown",
            "name": DEFAULT_CUSTOMER_NAME,
            "address": self.address or DEFAULT_ADDRESS,
            "city": DEFAULT_CITY,
            "zip_code": DEFAULT_ZIP_CODE,
            "phone": DEFAULT_PHONE,
        }


class RefundProcessedMessage(_InboundModel):
    """``order.refund.processed`` payload."""

    order_id: str = Field(..., min_length=1)
    customer_id: str | None = None
    refund_amount: float | None = None
    reason: str | None = None
    timestamp: str | None = None


def _decode(model: type[_InboundModel], message_type: str, payload: dict[str, Any]) -> Any:
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise MessageProcessingError(message_type, str(e)) from e


class PaymentApprovedHandler:
    """Creates a NORMAL shipment for every approved payment."""

    message_type = "PAYMENT_APPROVED"

    def __init__(self, service: ShipmentService) -> None:
        self._service = service

    async def handle(self, payload: dict[str, Any]) -> Shipment:
        message: PaymentApprovedMessage = _decode(
            PaymentApprovedMessage, self.message_type, payload
        )
        logger.info(
            "Processing payment approval for order %s",
            message.order_id,
            extra={"order_id": message.order_id, "routing_key": PAYMENT_APPROVED_ROUTING_KEY},
        )
        command = CreateShipmentCommand(
            order_id=message.order_id,
            customer=message.customer_payload(),
            line_items=[article.model_dump() for article in message.articles],
            actor="system",
            description=(
                "Shipment created from approved payment at "
                f"{datetime.now(UTC).isoformat()}"
            ),
        )
        return await self._service.create_shipment(command)


class RefundAction(str, Enum):
    """What a refund means for a shipment in a given status."""

    CANCEL = "cancel"
    RETURN_ON_ARRIVAL = "return_on_arrival"
    INITIATE_RETURN = "initiate_return"
    ALREADY_RETURNING = "already_returning"
    ALREADY_RETURNED = "already_returned"
    ALREADY_CANCELLED = "already_cancelled"
    NONE = "none"


REFUND_ACTIONS: dict[ShipmentStatus, RefundAction] = {
    ShipmentStatus.PENDING: RefundAction.CANCEL,
    ShipmentStatus.PREPARED: RefundAction.CANCEL,
    ShipmentStatus.IN_TRANSIT: RefundAction.RETURN_ON_ARRIVAL,
    ShipmentStatus.DELIVERED: RefundAction.INITIATE_RETURN,
    ShipmentStatus.RETURNING: RefundAction.ALREADY_RETURNING,
    ShipmentStatus.RETURNED: RefundAction.ALREADY_RETURNED,
    ShipmentStatus.CANCELLED: RefundAction.ALREADY_CANCELLED,
    ShipmentStatus.EXCHANGE_PROCESSED: RefundAction.NONE,
}


@dataclass(frozen=True)
class RefundDecision:
    shipment_id: str
    status: ShipmentStatus
    action: RefundAction


class RefundProcessedHandler:
    """
    Inspects the shipments of a refunded order.

    The handler only reports what each shipment needs. It emits no events;
    acting on the decision is left to an operator.
    """

    message_type = "ORDER_REFUND"

    def __init__(self, repository: ShipmentRepository) -> None:
        self._repository = repository

    async def inspect(self, order_id: str) -> list[RefundDecision]:
        shipments = await self._repository.find_by_order_id(order_id)
        return [
            RefundDecision(s.shipment_id, s.status, REFUND_ACTIONS[s.status]) for s in shipments
        ]

    async def handle(self, payload: dict[str, Any]) -> list[RefundDecision]:
        message: RefundProcessedMessage = _decode(
            RefundProcessedMessage, self.message_type, payload
        )
        log_extra = {
            "order_id": message.order_id,
            "routing_key": ORDER_REFUND_ROUTING_KEY,
            "reason": message.reason,
            "refund_amount": message.refund_amount,
        }
        decisions = await self.inspect(message.order_id)
        if not decisions:
            logger.warning(
                "No shipments found for refunded order %s", message.order_id, extra=log_extra
            )
            return decisions

        for decision in decisions:
            logger.info(
                "Refund for order %s: shipment %s in %s needs %s",
                message.order_id,
                decision.shipment_id,
                decision.status.value,
                decision.action.value,
                extra={
                    **log_extra,
                    "shipment_id": decision.shipment_id,
                    "status": decision.status.value,
                    "action": decision.action.value,
                },
            )
        return decisions


__all__ = [
    "MessageHandler",
    "PaymentApprovedHandler",
    "PaymentApprovedMessage",
    "RefundProcessedHandler",
    "RefundProcessedMessage",
    "RefundAction",
    "RefundDecision",
    "REFUND_ACTIONS",
    "PAYMENT_APPROVED_ROUTING_KEY",
    "PAYMENT_APPROVED_QUEUE",
    "ORDER_REFUND_ROUTING_KEY",
    "ORDER_REFUND_QUEUE",
]
