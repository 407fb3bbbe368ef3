"""What a business handler receives for one delivery."""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from billing_pipeline.domain.models.event import SubscriptionCreatedEvent


@dataclass(frozen=True)
class HandlerContext:
    """
    event: validated envelope. payload: the decoded body as delivered.
    session: tenant-scoped transaction for consumers that need one, else None.
    """

    event: SubscriptionCreatedEvent
    payload: Dict[str, Any]
    message_id: str
    consumer: str
    idempotency_key: str
    session: Optional[AsyncSession] = None

    def require_session(self) -> AsyncSession:
        if self.session is None:
            raise RuntimeError(f"Consumer {self.consumer} has no transactional store")
        return self.session


Handler = Callable[[HandlerContext], Awaitable[None]]
