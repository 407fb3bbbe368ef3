from billing_pipeline.domain.validators.cache import ValidatorCache
from billing_pipeline.domain.validators.event_validator import (
    business_entity_id,
    decode_body,
    parse_envelope,
    validate_tenant_id,
)

__all__ = [
    "ValidatorCache",
    "business_entity_id",
    "decode_body",
    "parse_envelope",
    "validate_tenant_id",
]
