"""Invoice numbering, due dates, line items and status transitions."""

import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from billing_pipeline.domain.exceptions import InvalidStatusTransitionError
from billing_pipeline.domain.models.invoice import (
    InvoiceStatus,
    generate_invoice_number,
    invoice_for_subscription,
    validate_invoice_transition,
)

NOW = datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc)


def test_invoice_number_format():
    number = generate_invoice_number(NOW)
    assert re.fullmatch(r"INV-20250115-[0-9A-F]{8}", number)


def test_invoice_number_uses_given_suffix():
    assert generate_invoice_number(NOW, "ab12cd34") == "INV-20250115-AB12CD34"


def test_invoice_for_subscription(envelope_factory):
    event = envelope_factory().to_domain()
    draft = invoice_for_subscription(event, now=NOW, short_id="deadbeef")
    assert draft.status == InvoiceStatus.ISSUED
    assert draft.amount == Decimal("9900")
    assert draft.due_date == NOW + timedelta(days=30)
    assert draft.invoice_number == "INV-20250115-DEADBEEF"
    assert len(draft.line_items) == 1
    item = draft.line_items[0].to_dict()
    assert item["quantity"] == 1
    assert item["amount"] == 9900.0
    assert item["description"] == "pro plan - monthly subscription"


def test_paid_invoice_cannot_be_voided():
    validate_invoice_transition(InvoiceStatus.ISSUED, InvoiceStatus.PAID)
    with pytest.raises(InvalidStatusTransitionError):
        validate_invoice_transition(InvoiceStatus.PAID, InvoiceStatus.VOID)
