"""Body decoding, entity id fallback and envelope validation."""

import json

import pytest

from billing_pipeline.domain.exceptions import InvalidEnvelopeError, InvalidTenantError
from billing_pipeline.domain.validators.cache import ValidatorCache
from billing_pipeline.domain.validators.event_validator import (
    business_entity_id,
    decode_body,
    parse_envelope,
    validate_tenant_id,
)


def test_decode_body_rejects_non_json():
    with pytest.raises(InvalidEnvelopeError):
        decode_body("not json")


def test_decode_body_rejects_non_object():
    with pytest.raises(InvalidEnvelopeError):
        decode_body("[1, 2]")


def test_business_entity_id_fallbacks():
    assert business_entity_id({"subscriptionId": "sub-1", "id": "x"}) == "sub-1"
    assert business_entity_id({"id": "evt-7"}) == "evt-7"
    assert business_entity_id({}) == "unknown"


def test_parse_envelope_returns_domain_event(body_factory):
    event = parse_envelope(decode_body(body_factory()), ValidatorCache())
    assert event.tenant_id == "tenant-a"
    assert event.billing_cycle.months == 1


def test_parse_envelope_unknown_event_type(body_factory):
    data = json.loads(body_factory())
    data["eventType"] = "subscription.deleted"
    with pytest.raises(InvalidEnvelopeError):
        parse_envelope(data, ValidatorCache())


def test_parse_envelope_schema_violation(body_factory):
    data = json.loads(body_factory())
    del data["planId"]
    with pytest.raises(InvalidEnvelopeError) as exc_info:
        parse_envelope(data, ValidatorCache())
    assert "subscription.created" in exc_info.value.message


def test_validate_tenant_id():
    validate_tenant_id("tenant-a")
    with pytest.raises(InvalidTenantError):
        validate_tenant_id("")
    with pytest.raises(InvalidTenantError):
        validate_tenant_id(None)
