"""
Command models for the application service.

Commands are the validation boundary of the package: every use case takes
one, and constructing a command with bad input raises the package
``ValidationError`` (carrying pydantic's error list) instead of pydantic's
own exception. Field names accept both snake_case and the camelCase used
on the wire.

Example:
    >>> command = CancelShipmentCommand(shipmentId=shipment.id, reason="Customer request")
    >>> command.shipment_id == shipment.id
    True
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from shipments.domain.status import ProductCondition
from shipments.domain.values import CustomerInfo, LineItem
from shipments.exceptions import ValidationError

# Generated ids, or 24-char hex ids imported from the legacy document store.
SHIPMENT_ID_PATTERN = r"^(ship_\d+_[a-z0-9]+|[0-9a-fA-F]{24})$"

MAX_DESCRIPTION_LENGTH = 500
MAX_REASON_LENGTH = 500
MAX_NOTES_LENGTH = 1000
MAX_LINE_ITEMS = 50


class Command(BaseModel):
    """Base class translating pydantic validation failures to ``ValidationError``."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid {type(self).__name__}",
                errors=e.errors(include_url=False, include_context=False),
            ) from e

    @classmethod
    def parse(cls, data: Mapping[str, Any]) -> Command:
        """Build the command from a request or message body."""
        return cls(**dict(data))


class CreateShipmentCommand(Command):
    order_id: str = Field(..., min_length=1)
    customer: CustomerInfo = Field(..., alias="customerInfo")
    line_items: list[LineItem] = Field(
        ..., alias="articles", min_length=1, max_length=MAX_LINE_ITEMS
    )
    actor: str | None = None
    description: str | None = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)


class TransitionCommand(Command):
    """Moves one shipment forward: prepared, in transit or delivered."""

    shipment_id: str = Field(..., pattern=SHIPMENT_ID_PATTERN)
    actor: str | None = None
    description: str | None = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)


class CancelShipmentCommand(TransitionCommand):
    reason: str | None = Field(default=None, max_length=MAX_REASON_LENGTH)


class InitiateReturnCommand(TransitionCommand):
    reason: str | None = Field(default=None, max_length=MAX_REASON_LENGTH)


class CompleteReturnCommand(TransitionCommand):
    product_condition: ProductCondition | None = None
    notes: str | None = Field(default=None, max_length=MAX_NOTES_LENGTH)


class InitiateExchangeCommand(TransitionCommand):
    """Starts an exchange. Without ``new_line_items`` the original items are re-sent."""

    new_line_items: list[LineItem] | None = Field(
        default=None, alias="newArticles", min_length=1, max_length=MAX_LINE_ITEMS
    )
    reason: str | None = Field(default=None, max_length=MAX_REASON_LENGTH)


class CompleteExchangeCommand(Command):
    original_shipment_id: str = Field(..., pattern=SHIPMENT_ID_PATTERN)
    new_shipment_id: str = Field(..., pattern=SHIPMENT_ID_PATTERN)
    product_condition: ProductCondition | None = None
    notes: str | None = Field(default=None, max_length=MAX_NOTES_LENGTH)
    actor: str | None = None
    description: str | None = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)

    @model_validator(mode="after")
    def _distinct_shipments(self) -> CompleteExchangeCommand:
        if self.original_shipment_id == self.new_shipment_id:
            raise ValueError("original and new shipment must be different")
        return self


__all__ = [
    "Command",
    "CreateShipmentCommand",
    "TransitionCommand",
    "CancelShipmentCommand",
    "InitiateReturnCommand",
    "CompleteReturnCommand",
    "InitiateExchangeCommand",
    "CompleteExchangeCommand",
    "SHIPMENT_ID_PATTERN",
]
