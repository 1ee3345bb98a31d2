"""
Observability utilities for the shipments package.

Example:
    >>> from shipments.observability import create_tracer
    >>> tracer = create_tracer(__name__, enable_tracing=False)
    >>> with tracer.span("shipments.example"):
    ...     pass
"""

from shipments.observability.attributes import (
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_DUPLICATE_COUNT,
    ATTR_ERROR_TYPE,
    ATTR_EVENT_COUNT,
    ATTR_EVENT_ID,
    ATTR_EVENT_TYPE,
    ATTR_MESSAGING_DESTINATION,
    ATTR_MESSAGING_OPERATION,
    ATTR_MESSAGING_SYSTEM,
    ATTR_NOTIFICATION_TYPE,
    ATTR_ORDER_ID,
    ATTR_QUERY_LIMIT,
    ATTR_QUERY_OFFSET,
    ATTR_RETRY_COUNT,
    ATTR_SHIPMENT_ID,
    ATTR_SHIPMENT_STATUS,
)
from shipments.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    SpanKindEnum,
    Tracer,
    create_tracer,
)

__all__ = [
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "SpanKindEnum",
    "create_tracer",
    "ATTR_SHIPMENT_ID",
    "ATTR_ORDER_ID",
    "ATTR_SHIPMENT_STATUS",
    "ATTR_EVENT_ID",
    "ATTR_EVENT_TYPE",
    "ATTR_EVENT_COUNT",
    "ATTR_DUPLICATE_COUNT",
    "ATTR_QUERY_LIMIT",
    "ATTR_QUERY_OFFSET",
    "ATTR_DB_SYSTEM",
    "ATTR_DB_NAME",
    "ATTR_DB_OPERATION",
    "ATTR_MESSAGING_SYSTEM",
    "ATTR_MESSAGING_DESTINATION",
    "ATTR_MESSAGING_OPERATION",
    "ATTR_NOTIFICATION_TYPE",
    "ATTR_RETRY_COUNT",
    "ATTR_ERROR_TYPE",
]
