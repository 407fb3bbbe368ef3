"""Invoice domain model: numbering, line items, due dates, status lifecycle."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from billing_pipeline.domain.exceptions import InvalidStatusTransitionError
from billing_pipeline.domain.models.event import SubscriptionCreatedEvent

PAYMENT_TERMS_DAYS = 30


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    ISSUED = "issued"
    PAID = "paid"
    OVERDUE = "overdue"
    VOID = "void"


_STATUS_TRANSITIONS: Dict[InvoiceStatus, FrozenSet[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.ISSUED, InvoiceStatus.VOID}),
    InvoiceStatus.ISSUED: frozenset({InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.VOID}),
    InvoiceStatus.OVERDUE: frozenset({InvoiceStatus.PAID, InvoiceStatus.VOID}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.VOID: frozenset(),
}


def validate_invoice_transition(current: InvoiceStatus, new: InvoiceStatus) -> None:
    allowed = _STATUS_TRANSITIONS.get(current, frozenset())
    if new not in allowed:
        raise InvalidStatusTransitionError(
            f"Invalid invoice status transition from {current.value} to {new.value}"
        )


def generate_invoice_number(now: datetime, short_id: Optional[str] = None) -> str:
    """INV-YYYYMMDD-XXXXXXXX; the suffix is the first 8 hex chars of a uuid4, upper-cased."""
    suffix = (short_id or uuid.uuid4().hex[:8]).upper()
    return f"INV-{now.strftime('%Y%m%d')}-{suffix}"


def due_date_from(issued_at: datetime) -> datetime:
    return issued_at + timedelta(days=PAYMENT_TERMS_DAYS)


@dataclass(frozen=True)
class LineItem:
    description: str
    quantity: int
    unit_price: Decimal
    amount: Decimal
    period_start: datetime
    period_end: datetime

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready form stored in invoices.line_items."""
        return {
            "description": self.description,
            "quantity": self.quantity,
            "unitPrice": float(self.unit_price),
            "amount": float(self.amount),
            "periodStart": self.period_start.isoformat(),
            "periodEnd": self.period_end.isoformat(),
        }


@dataclass(frozen=True)
class InvoiceDraft:
    """Invoice computed from a subscription event, ready to persist."""

    tenant_id: str
    subscription_id: str
    invoice_number: str
    status: InvoiceStatus
    amount: Decimal
    currency: str
    due_date: datetime
    line_items: List[LineItem] = field(default_factory=list)


def invoice_for_subscription(
    event: SubscriptionCreatedEvent,
    now: datetime,
    short_id: Optional[str] = None,
) -> InvoiceDraft:
    """First-period invoice for a new subscription: one line item, issued, due in 30 days."""
    item = LineItem(
        description=f"{event.plan_id} plan - {event.billing_cycle.value} subscription",
        quantity=1,
        unit_price=event.amount,
        amount=event.amount,
        period_start=event.period_start,
        period_end=event.period_end,
    )
    return InvoiceDraft(
        tenant_id=event.tenant_id,
        subscription_id=event.subscription_id,
        invoice_number=generate_invoice_number(now, short_id),
        status=InvoiceStatus.ISSUED,
        amount=event.amount,
        currency=event.currency,
        due_date=due_date_from(now),
        line_items=[item],
    )
