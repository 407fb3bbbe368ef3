"""Application-layer exceptions. Do not reuse domain exceptions."""


class ApplicationError(Exception):
    """Base for all application-layer errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(ApplicationError):
    """Raised when a consumer registration or channel reference is invalid."""


class MessagingFailureError(ApplicationError):
    """Raised when publishing to, receiving from, or acknowledging on a channel fails."""


class IdempotencyStoreError(ApplicationError):
    """Raised when the idempotency store cannot be reached or returns an inconsistent state."""


class HandlerTimeoutError(ApplicationError):
    """Raised when a business handler exceeds its consumer's processing timeout."""


class ReplayError(ApplicationError):
    """Raised when a dead-letter replay request is rejected before any message is touched."""
