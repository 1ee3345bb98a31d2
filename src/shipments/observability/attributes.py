"""
Standard span attribute names used across the shipments package.

Shipment attributes use the ``shipments.`` namespace; database and
messaging attributes follow the OpenTelemetry semantic conventions.
"""

# Shipment
ATTR_SHIPMENT_ID = "shipments.shipment.id"
"""Shipment identifier."""

ATTR_ORDER_ID = "shipments.order.id"
"""Correlated order identifier."""

ATTR_SHIPMENT_STATUS = "shipments.shipment.status"
"""Current status of a shipment."""

# Event
ATTR_EVENT_ID = "shipments.event.id"
ATTR_EVENT_TYPE = "shipments.event.type"
ATTR_EVENT_COUNT = "shipments.event.count"
ATTR_DUPLICATE_COUNT = "shipments.event.duplicates"

# Projection queries
ATTR_QUERY_LIMIT = "shipments.query.limit"
ATTR_QUERY_OFFSET = "shipments.query.offset"

# Database (OTEL semantic)
ATTR_DB_SYSTEM = "db.system"
ATTR_DB_NAME = "db.name"
ATTR_DB_OPERATION = "db.operation"

# Messaging (OTEL semantic)
ATTR_MESSAGING_SYSTEM = "messaging.system"
ATTR_MESSAGING_DESTINATION = "messaging.destination"
ATTR_MESSAGING_OPERATION = "messaging.operation"

# Message handling
ATTR_NOTIFICATION_TYPE = "shipments.notification.type"
ATTR_RETRY_COUNT = "shipments.retry.count"
ATTR_ERROR_TYPE = "shipments.error.type"

__all__ = [
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
