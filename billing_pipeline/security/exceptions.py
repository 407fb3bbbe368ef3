"""Security-layer exceptions. Typed, no HTTP."""


class SecurityError(Exception):
    """Base for all security-layer errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class TenantIsolationError(SecurityError):
    """Raised when a row's tenant does not match the active tenant scope (cross-tenant access)."""
