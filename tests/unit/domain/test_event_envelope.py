"""Envelope schema: camelCase wire format, validation rules, billing period arithmetic."""

import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from billing_pipeline.domain.models.event import BillingCycle, add_billing_period
from billing_pipeline.domain.schemas.event import EventEnvelopeSchema


def test_body_is_camel_case_json(envelope_factory):
    body = json.loads(envelope_factory().to_body())
    assert body["eventType"] == "subscription.created"
    assert body["tenantId"] == "tenant-a"
    assert body["subscriptionId"] == "sub-001"
    assert body["billingCycle"] == "monthly"
    assert body["amount"] == 9900.0
    assert "periodStart" in body and "periodEnd" in body


def test_parse_from_wire_ignores_unknown_fields(body_factory):
    data = json.loads(body_factory())
    data["somethingNew"] = {"x": 1}
    envelope = EventEnvelopeSchema.model_validate(data)
    assert envelope.subscription_id == "sub-001"
    assert envelope.amount == Decimal("9900")


def test_currency_defaults_and_is_lowercased(envelope_factory):
    assert envelope_factory(currency="EUR").currency == "eur"
    data = json.loads(envelope_factory().to_body())
    del data["currency"]
    assert EventEnvelopeSchema.model_validate(data).currency == "usd"


def test_period_end_must_follow_start(envelope_factory):
    start = datetime(2025, 3, 1, tzinfo=timezone.utc)
    with pytest.raises(ValidationError):
        envelope_factory(period_start=start, period_end=start)


def test_negative_amount_rejected(envelope_factory):
    with pytest.raises(ValidationError):
        envelope_factory(amount=Decimal("-1"))


def test_blank_tenant_rejected(envelope_factory):
    with pytest.raises(ValidationError):
        envelope_factory(tenant_id="   ")


def test_envelope_is_immutable(envelope_factory):
    envelope = envelope_factory()
    with pytest.raises(ValidationError):
        envelope.tenant_id = "tenant-b"


def test_domain_round_trip_keeps_identity(envelope_factory):
    envelope = envelope_factory()
    event = envelope.to_domain()
    assert event.business_entity_id == "sub-001"
    assert EventEnvelopeSchema.from_domain(event) == envelope


@pytest.mark.parametrize(
    "start,cycle,expected",
    [
        (datetime(2025, 1, 15), BillingCycle.MONTHLY, datetime(2025, 2, 15)),
        (datetime(2025, 1, 31), BillingCycle.MONTHLY, datetime(2025, 2, 28)),
        (datetime(2024, 1, 31), BillingCycle.MONTHLY, datetime(2024, 2, 29)),
        (datetime(2025, 11, 30), BillingCycle.QUARTERLY, datetime(2026, 2, 28)),
        (datetime(2025, 6, 1), BillingCycle.ANNUAL, datetime(2026, 6, 1)),
    ],
)
def test_add_billing_period(start, cycle, expected):
    assert add_billing_period(start, cycle) == expected
