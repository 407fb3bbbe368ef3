# Application layer: consumer orchestration over domain and infrastructure ports.

from billing_pipeline.application.channel import Channel, ChannelRegistry, DeliveryMessage
from billing_pipeline.application.consumers import DEFAULT_REGISTRATIONS, ConsumerRegistration
from billing_pipeline.application.exceptions import (
    ApplicationError,
    ConfigurationError,
    HandlerTimeoutError,
    IdempotencyStoreError,
    MessagingFailureError,
    ReplayError,
)
from billing_pipeline.application.idempotency import Claim, IdempotencyStore

__all__ = [
    "ApplicationError",
    "Channel",
    "ChannelRegistry",
    "Claim",
    "ConfigurationError",
    "ConsumerRegistration",
    "DEFAULT_REGISTRATIONS",
    "DeliveryMessage",
    "HandlerTimeoutError",
    "IdempotencyStore",
    "IdempotencyStoreError",
    "MessagingFailureError",
    "ReplayError",
]
