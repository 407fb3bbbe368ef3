"""Domain layer: models, schemas, validators, exceptions. Pure business logic only."""

from billing_pipeline.domain.exceptions import (
    DomainError,
    DomainValidationError,
    InvalidEnvelopeError,
    InvalidStatusTransitionError,
    InvalidTenantError,
)
from billing_pipeline.domain.models import (
    BillingCycle,
    EventType,
    IdempotencyRecord,
    IdempotencyStatus,
    SubscriptionCreatedEvent,
)
from billing_pipeline.domain.schemas import EventEnvelopeSchema

__all__ = [
    "BillingCycle",
    "DomainError",
    "DomainValidationError",
    "EventEnvelopeSchema",
    "EventType",
    "IdempotencyRecord",
    "IdempotencyStatus",
    "InvalidEnvelopeError",
    "InvalidStatusTransitionError",
    "InvalidTenantError",
    "SubscriptionCreatedEvent",
]
