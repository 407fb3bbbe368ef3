"""Strict tenant isolation checks. No cross-tenant access. No FastAPI, no database."""

from billing_pipeline.security.exceptions import TenantIsolationError


class TenantContext:
    """Validate that a row's tenant matches the tenant the unit of work is scoped to."""

    @staticmethod
    def validate_access(resource_tenant: str, scope_tenant: str) -> None:
        """
        If mismatch, raise TenantIsolationError.
        No cross-tenant access allowed.
        """
        if not resource_tenant or not scope_tenant:
            raise TenantIsolationError(
                "Tenant isolation: resource_tenant and scope_tenant must be non-empty"
            )
        if resource_tenant != scope_tenant:
            raise TenantIsolationError(
                f"Tenant isolation: access denied. "
                f"Resource tenant '{resource_tenant}' does not match scope tenant '{scope_tenant}'"
            )
