"""
Shared test fixtures for the shipments package.

Usage:
    from tests.fixtures import (
        make_customer,
        make_line_items,
        make_shipment,
        shipment_in,
        payment_approved_payload,
    )
"""

from tests.fixtures.shipments import (
    make_customer,
    make_line_items,
    make_shipment,
    payment_approved_payload,
    shipment_in,
)

__all__ = [
    "make_customer",
    "make_line_items",
    "make_shipment",
    "shipment_in",
    "payment_approved_payload",
]
