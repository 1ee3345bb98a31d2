"""Application layer: command models and the shipment service."""

from shipments.application.commands import (
    CancelShipmentCommand,
    Command,
    CompleteExchangeCommand,
    CompleteReturnCommand,
    CreateShipmentCommand,
    InitiateExchangeCommand,
    InitiateReturnCommand,
    TransitionCommand,
)
from shipments.application.service import (
    CompleteExchangeResult,
    ExchangeResult,
    ExchangeStatus,
    ShipmentService,
)

__all__ = [
    "Command",
    "CreateShipmentCommand",
    "TransitionCommand",
    "CancelShipmentCommand",
    "InitiateReturnCommand",
    "CompleteReturnCommand",
    "InitiateExchangeCommand",
    "CompleteExchangeCommand",
    "ShipmentService",
    "ExchangeResult",
    "CompleteExchangeResult",
    "ExchangeStatus",
]
