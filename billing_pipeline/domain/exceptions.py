"""Domain-specific exceptions. Pure domain layer, no infrastructure."""


class DomainError(Exception):
    """Base for all domain-layer errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class DomainValidationError(DomainError):
    """Raised when domain validation rules are violated."""


class InvalidStatusTransitionError(DomainError):
    """Raised when an idempotency record status transition is not allowed."""


class InvalidTenantError(DomainError):
    """Raised when tenant_id is invalid (e.g. empty)."""


class InvalidEnvelopeError(DomainError):
    """Raised when a delivered body cannot be parsed into an event envelope."""
