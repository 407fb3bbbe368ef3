"""Validators for envelope rules. Pure functions, no infrastructure or DB access."""

import json
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from billing_pipeline.domain.exceptions import InvalidEnvelopeError, InvalidTenantError
from billing_pipeline.domain.models.event import SubscriptionCreatedEvent
from billing_pipeline.domain.validators.cache import ValidatorCache


def validate_tenant_id(tenant_id: Optional[str]) -> None:
    """Enforce tenant constraint: must not be empty. Raises InvalidTenantError if invalid."""
    if not tenant_id or not tenant_id.strip():
        raise InvalidTenantError("tenant_id must not be empty")


def decode_body(body: Union[str, bytes]) -> Dict[str, Any]:
    """JSON-decode a raw delivery body into a dict. Raises InvalidEnvelopeError otherwise."""
    try:
        data = json.loads(body)
    except (TypeError, ValueError) as e:
        raise InvalidEnvelopeError(f"Body is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InvalidEnvelopeError("Body must be a JSON object")
    return data


def business_entity_id(data: Dict[str, Any]) -> str:
    """subscriptionId, falling back to id, for building keys before full validation."""
    return str(data.get("subscriptionId") or data.get("id") or "unknown")


def parse_envelope(
    data: Dict[str, Any],
    cache: ValidatorCache,
) -> SubscriptionCreatedEvent:
    """
    Validate a decoded body against the schema for its eventType.
    Raises InvalidEnvelopeError on unknown type or schema violation.
    """
    event_type = data.get("eventType")
    if not isinstance(event_type, str):
        raise InvalidEnvelopeError("eventType is required")
    adapter = cache.get(event_type)
    try:
        envelope = adapter.validate_python(data)
    except ValidationError as e:
        raise InvalidEnvelopeError(f"Invalid {event_type} envelope: {e.error_count()} error(s)") from e
    validate_tenant_id(envelope.tenant_id)
    return envelope.to_domain()
