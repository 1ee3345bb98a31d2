"""
Messaging: outbound notifications, inbound handlers and the RabbitMQ adapter.

The publisher and handlers depend only on ``MessageTransport`` and
``MessageHandler``; ``shipments.messaging.rabbitmq`` provides the aio-pika
implementations.
"""

from shipments.messaging.notifications import (
    DEFAULT_POLICY,
    Notification,
    NotificationPolicy,
    NotificationType,
    build_notification,
    exchange_finalized_notification,
    notification_for_event,
)
from shipments.messaging.transport import InMemoryTransport, MessageTransport
from shipments.messaging.publisher import NotificationPublisher
from shipments.messaging.consumers import (
    ORDER_REFUND_QUEUE,
    ORDER_REFUND_ROUTING_KEY,
    PAYMENT_APPROVED_QUEUE,
    PAYMENT_APPROVED_ROUTING_KEY,
    MessageHandler,
    PaymentApprovedHandler,
    RefundAction,
    RefundDecision,
    RefundProcessedHandler,
)
from shipments.messaging.rabbitmq import (
    ConsumerStats,
    RabbitMQConfig,
    RabbitMQConnection,
    RabbitMQConsumer,
    RabbitMQTransport,
)

__all__ = [
    "NotificationType",
    "NotificationPolicy",
    "Notification",
    "DEFAULT_POLICY",
    "build_notification",
    "notification_for_event",
    "exchange_finalized_notification",
    "MessageTransport",
    "InMemoryTransport",
    "NotificationPublisher",
    "MessageHandler",
    "PaymentApprovedHandler",
    "RefundProcessedHandler",
    "RefundAction",
    "RefundDecision",
    "PAYMENT_APPROVED_ROUTING_KEY",
    "PAYMENT_APPROVED_QUEUE",
    "ORDER_REFUND_ROUTING_KEY",
    "ORDER_REFUND_QUEUE",
    "RabbitMQConfig",
    "RabbitMQConnection",
    "RabbitMQTransport",
    "RabbitMQConsumer",
    "ConsumerStats",
]
