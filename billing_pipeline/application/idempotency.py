"""Idempotency store protocol. Application layer depends on this; infrastructure implements it."""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Protocol

from billing_pipeline.domain.models.idempotency import IdempotencyRecord, IdempotencyStatus


@dataclass(frozen=True)
class Claim:
    """Outcome of a claim attempt. claimed=False means another attempt owns or finished the key."""

    key: str
    claimed: bool
    token: Optional[str] = None
    existing_status: Optional[IdempotencyStatus] = None
    took_over: bool = False


class IdempotencyStore(Protocol):
    """
    Durable ledger of (consumer, message) pairs. claim() must be atomic: of any number
    of concurrent callers on the same key exactly one gets claimed=True.
    """

    async def claim(
        self,
        key: str,
        consumer: str,
        stale_after: Optional[timedelta] = None,
    ) -> Claim:
        """Insert a processing record. A processing record older than stale_after is taken over."""
        ...

    async def complete(self, key: str, token: Optional[str] = None) -> None:
        """Transition processing -> completed. Raises IdempotencyStoreError if the claim was lost."""
        ...

    async def release(self, key: str, token: Optional[str] = None) -> bool:
        """Delete a processing record so redelivery can claim the key again. True if deleted."""
        ...

    async def get(self, key: str) -> Optional[IdempotencyRecord]:
        ...

    async def prune(self, older_than: timedelta) -> int:
        """Delete records processed before now - older_than. Housekeeping, not on the hot path."""
        ...
