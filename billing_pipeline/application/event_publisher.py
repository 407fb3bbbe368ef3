"""Producer side: build a subscription.created envelope and hand it to the fan-out broker once."""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional, Protocol, Union

from pydantic import ValidationError

from billing_pipeline.application.exceptions import MessagingFailureError
from billing_pipeline.application.fanout import FanOutResult
from billing_pipeline.domain.exceptions import DomainValidationError
from billing_pipeline.domain.models.event import BillingCycle, EventType, add_billing_period
from billing_pipeline.domain.schemas.event import EventEnvelopeSchema


class Broker(Protocol):
    async def publish(self, envelope: EventEnvelopeSchema) -> FanOutResult: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventPublisher:
    """Called after the subscription row is committed. Publishes exactly once per call."""

    def __init__(
        self,
        broker: Broker,
        clock: Callable[[], datetime] = _utcnow,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._broker = broker
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    def build_envelope(
        self,
        *,
        tenant_id: str,
        subscription_id: str,
        plan_id: str,
        billing_cycle: Union[BillingCycle, str],
        amount: Union[Decimal, int, float, str],
        currency: str = "usd",
        period_start: Optional[datetime] = None,
        tenant_name: Optional[str] = None,
        tenant_email: Optional[str] = None,
        user_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> EventEnvelopeSchema:
        now = self._clock()
        start = period_start or now
        try:
            cycle = BillingCycle(billing_cycle)
            return EventEnvelopeSchema(
                event_type=EventType.SUBSCRIPTION_CREATED,
                tenant_id=tenant_id,
                subscription_id=subscription_id,
                plan_id=plan_id,
                billing_cycle=cycle,
                amount=Decimal(str(amount)),
                currency=currency,
                period_start=start,
                period_end=add_billing_period(start, cycle),
                timestamp=now,
                tenant_name=tenant_name,
                tenant_email=tenant_email,
                user_id=user_id,
                metadata=metadata or {},
            )
        except (ValueError, InvalidOperation, ValidationError) as e:
            raise DomainValidationError(f"Invalid subscription.created envelope: {e}") from e

    async def publish_subscription_created(self, **fields: Any) -> FanOutResult:
        """
        Raises DomainValidationError for invalid fields and MessagingFailureError when
        no channel accepted the envelope. A partial delivery is returned, not raised.
        """
        envelope = self.build_envelope(**fields)
        result = await self._broker.publish(envelope)
        extra = {
            "tenant_id": envelope.tenant_id,
            "subscription_id": envelope.subscription_id,
            "delivered": sorted(result.delivered),
            "failed": sorted(result.failed),
        }
        if not result.delivered:
            self._logger.error("event_publish_failed", extra=extra)
            raise MessagingFailureError(
                f"subscription.created for {envelope.subscription_id} was not delivered to any channel"
            )
        if result.failed:
            self._logger.warning("event_publish_partial", extra=extra)
        else:
            self._logger.info("event_published", extra=extra)
        return result
