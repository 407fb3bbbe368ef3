"""Domain model for subscription events. Pure business semantics; no ORM or infrastructure."""

import calendar
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class EventType(str, Enum):
    """Business events published on the fan-out exchange."""

    SUBSCRIPTION_CREATED = "subscription.created"


class BillingCycle(str, Enum):
    """Supported billing cycles and their length in months."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"

    @property
    def months(self) -> int:
        return _CYCLE_MONTHS[self]


_CYCLE_MONTHS: Dict[BillingCycle, int] = {
    BillingCycle.MONTHLY: 1,
    BillingCycle.QUARTERLY: 3,
    BillingCycle.ANNUAL: 12,
}


@dataclass(frozen=True)
class SubscriptionCreatedEvent:
    """
    Envelope published once per created subscription.
    Frozen: consumers only read it, nothing downstream may mutate it.
    """

    tenant_id: str
    subscription_id: str
    plan_id: str
    billing_cycle: BillingCycle
    amount: Decimal
    currency: str
    period_start: datetime
    period_end: datetime
    timestamp: datetime
    event_type: EventType = EventType.SUBSCRIPTION_CREATED
    tenant_name: Optional[str] = None
    tenant_email: Optional[str] = None
    user_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def business_entity_id(self) -> str:
        """Entity the event is about; part of every consumer's idempotency key."""
        return self.subscription_id


def add_billing_period(start: datetime, cycle: BillingCycle) -> datetime:
    """Period end for a cycle starting at start; day clamped to the target month's length."""
    month_index = start.month - 1 + cycle.months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)
