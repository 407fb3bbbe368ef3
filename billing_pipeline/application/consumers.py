"""Consumer registrations: per-consumer batching, retry and timeout settings."""

from datetime import timedelta
from decimal import Decimal
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Visibility must cover the handler plus claim, complete and ack round trips.
VISIBILITY_TO_TIMEOUT_RATIO = 6


class ConsumerRegistration(BaseModel):
    """
    Immutable description of one consumer: which channel it reads, how many messages
    per batch, how many receives before dead-lettering, and how long a handler may run.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    batch_size: int = Field(1, ge=1, le=10)
    max_receive_count: int = Field(3, ge=1)
    visibility_timeout: float = Field(30.0, gt=0)
    processing_timeout: float = Field(5.0, gt=0)
    needs_transactional_store: bool = False
    concurrency: int = Field(1, ge=1)
    stale_after_seconds: Optional[float] = Field(None, gt=0)

    @model_validator(mode="after")
    def visibility_covers_processing(self) -> "ConsumerRegistration":
        # Decimal of the shortest repr, so 0.3 vs 6 x 0.05 compares exactly.
        visibility = Decimal(str(self.visibility_timeout))
        processing = Decimal(str(self.processing_timeout))
        if visibility < VISIBILITY_TO_TIMEOUT_RATIO * processing:
            raise ValueError(
                f"visibility_timeout ({self.visibility_timeout}s) must be at least "
                f"{VISIBILITY_TO_TIMEOUT_RATIO}x processing_timeout ({self.processing_timeout}s)"
            )
        return self

    @property
    def dead_letter_name(self) -> str:
        return f"{self.name}-dlq"

    @property
    def stale_after(self) -> timedelta:
        """Age after which an unfinished claim is treated as abandoned."""
        seconds = self.stale_after_seconds if self.stale_after_seconds is not None else self.visibility_timeout
        return timedelta(seconds=seconds)


GENERATE_INVOICE = ConsumerRegistration(
    name="generate-invoice",
    batch_size=1,
    max_receive_count=5,
    visibility_timeout=60,
    processing_timeout=10,
    needs_transactional_store=True,
)

SEND_NOTIFICATION = ConsumerRegistration(
    name="send-notification",
    batch_size=5,
    max_receive_count=3,
    visibility_timeout=30,
    processing_timeout=5,
    needs_transactional_store=False,
)

AUDIT_LOG = ConsumerRegistration(
    name="audit-log",
    batch_size=10,
    max_receive_count=5,
    visibility_timeout=30,
    processing_timeout=5,
    needs_transactional_store=True,
)

DEFAULT_REGISTRATIONS: Dict[str, ConsumerRegistration] = {
    r.name: r for r in (GENERATE_INVOICE, SEND_NOTIFICATION, AUDIT_LOG)
}
