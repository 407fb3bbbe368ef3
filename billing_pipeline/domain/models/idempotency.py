"""Idempotency record lifecycle. One record per (consumer, entity, message) key."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, FrozenSet, Optional

from billing_pipeline.domain.exceptions import InvalidStatusTransitionError


class IdempotencyStatus(str, Enum):
    """Claim state of a message for one consumer."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Allowed status transitions: from_status -> set of valid next statuses
_STATUS_TRANSITIONS: Dict[IdempotencyStatus, FrozenSet[IdempotencyStatus]] = {
    IdempotencyStatus.PROCESSING: frozenset({IdempotencyStatus.COMPLETED, IdempotencyStatus.FAILED}),
    IdempotencyStatus.COMPLETED: frozenset(),
    IdempotencyStatus.FAILED: frozenset(),
}


def validate_transition(current: IdempotencyStatus, new: IdempotencyStatus) -> None:
    """Validate that transition from current to new is allowed. Raises if invalid."""
    allowed = _STATUS_TRANSITIONS.get(current, frozenset())
    if new not in allowed:
        raise InvalidStatusTransitionError(
            f"Invalid status transition from {current.value} to {new.value}"
        )


def build_idempotency_key(consumer: str, business_entity_id: str, message_id: str) -> str:
    """consumer:businessEntityId:messageId: unique per consumer, entity and delivery series."""
    return f"{consumer}:{business_entity_id}:{message_id}"


def stale_cutoff(now: datetime, stale_after: timedelta) -> datetime:
    """A processing claim taken at or before this instant is abandoned and may be taken over."""
    return now - stale_after


@dataclass(frozen=True)
class IdempotencyRecord:
    """Snapshot of a stored record. Presence of the row is the claim."""

    idempotency_key: str
    consumer: str
    status: IdempotencyStatus
    processed_at: datetime
    completed_at: Optional[datetime] = None
    claim_token: Optional[str] = None

    def is_stale(self, now: datetime, stale_after: timedelta) -> bool:
        """A processing record with no terminal transition inside the window is abandoned."""
        return self.status == IdempotencyStatus.PROCESSING and self.processed_at <= stale_cutoff(now, stale_after)
