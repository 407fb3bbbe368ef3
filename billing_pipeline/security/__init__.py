"""Security layer: tenant isolation checks."""

from billing_pipeline.security.exceptions import SecurityError, TenantIsolationError
from billing_pipeline.security.tenant_context import TenantContext

__all__ = [
    "SecurityError",
    "TenantContext",
    "TenantIsolationError",
]
