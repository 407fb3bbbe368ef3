"""Domain models. Pure business entities."""

from billing_pipeline.domain.models.event import (
    BillingCycle,
    EventType,
    SubscriptionCreatedEvent,
    add_billing_period,
)
from billing_pipeline.domain.models.idempotency import (
    IdempotencyRecord,
    IdempotencyStatus,
    build_idempotency_key,
    validate_transition,
)
from billing_pipeline.domain.models.invoice import (
    InvoiceDraft,
    InvoiceStatus,
    LineItem,
    generate_invoice_number,
    invoice_for_subscription,
    validate_invoice_transition,
)

__all__ = [
    "BillingCycle",
    "EventType",
    "IdempotencyRecord",
    "IdempotencyStatus",
    "InvoiceDraft",
    "InvoiceStatus",
    "LineItem",
    "SubscriptionCreatedEvent",
    "add_billing_period",
    "build_idempotency_key",
    "generate_invoice_number",
    "invoice_for_subscription",
    "validate_invoice_transition",
    "validate_transition",
]
