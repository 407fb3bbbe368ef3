"""Pydantic schemas for the event envelope wire format. Strict validation, no DB or infrastructure."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator
from pydantic.alias_generators import to_camel

from billing_pipeline.domain.models.event import BillingCycle, EventType, SubscriptionCreatedEvent


class EventEnvelopeSchema(BaseModel):
    """
    JSON body of a subscription.created delivery. camelCase on the wire, snake_case in Python.
    Unknown keys are ignored so producers can add fields without breaking consumers.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    event_type: EventType
    tenant_id: str = Field(..., min_length=1, description="Tenant identifier; resolved upstream by auth")
    subscription_id: str = Field(..., min_length=1)
    plan_id: str = Field(..., min_length=1)
    billing_cycle: BillingCycle
    amount: Decimal = Field(..., ge=0)
    currency: str = Field("usd", min_length=3, max_length=3)
    period_start: datetime
    period_end: datetime
    timestamp: datetime
    tenant_name: Optional[str] = None
    tenant_email: Optional[str] = None
    user_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("tenant_id", "subscription_id", "plan_id")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @field_validator("currency")
    @classmethod
    def currency_lowercase(cls, v: str) -> str:
        return v.lower()

    @model_validator(mode="after")
    def period_must_be_ordered(self) -> "EventEnvelopeSchema":
        if self.period_end <= self.period_start:
            raise ValueError("periodEnd must be after periodStart")
        return self

    @field_serializer("amount")
    def serialize_amount(self, v: Decimal) -> float:
        # Wire format carries amount as a JSON number.
        return float(v)

    def to_domain(self) -> SubscriptionCreatedEvent:
        return SubscriptionCreatedEvent(
            tenant_id=self.tenant_id,
            subscription_id=self.subscription_id,
            plan_id=self.plan_id,
            billing_cycle=self.billing_cycle,
            amount=self.amount,
            currency=self.currency,
            period_start=self.period_start,
            period_end=self.period_end,
            timestamp=self.timestamp,
            event_type=self.event_type,
            tenant_name=self.tenant_name,
            tenant_email=self.tenant_email,
            user_id=self.user_id,
            metadata=dict(self.metadata),
        )

    @classmethod
    def from_domain(cls, event: SubscriptionCreatedEvent) -> "EventEnvelopeSchema":
        return cls(
            event_type=event.event_type,
            tenant_id=event.tenant_id,
            subscription_id=event.subscription_id,
            plan_id=event.plan_id,
            billing_cycle=event.billing_cycle,
            amount=event.amount,
            currency=event.currency,
            period_start=event.period_start,
            period_end=event.period_end,
            timestamp=event.timestamp,
            tenant_name=event.tenant_name,
            tenant_email=event.tenant_email,
            user_id=event.user_id,
            metadata=dict(event.metadata),
        )

    def to_body(self) -> str:
        """Serialize for raw delivery: the JSON body is the envelope, nothing wraps it."""
        return self.model_dump_json(by_alias=True, exclude_none=True)
