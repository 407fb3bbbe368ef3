"""Fan-out broker: one published envelope, one independent delivery per registered channel."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from billing_pipeline.application.channel import Channel
from billing_pipeline.application.exceptions import ConfigurationError
from billing_pipeline.domain.schemas.event import EventEnvelopeSchema
from billing_pipeline.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)


@dataclass
class FanOutResult:
    """Per-channel outcome. delivered maps channel -> message id; failed maps channel -> error text."""

    delivered: Dict[str, str] = field(default_factory=dict)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def fully_delivered(self) -> bool:
        return not self.failed


def envelope_attributes(envelope: EventEnvelopeSchema) -> Dict[str, str]:
    """Transport attributes carried beside the raw body; used for routing and logging only."""
    return {
        "eventType": envelope.event_type.value,
        "tenantId": envelope.tenant_id,
    }


class FanOutBroker:
    """
    Copies each envelope onto every registered channel. No ordering across channels,
    no deduplication, no business logic. A failing channel is reported in the
    result and never prevents delivery to the others.
    """

    def __init__(
        self,
        channels: Iterable[Channel] = (),
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self._channels: Dict[str, Channel] = {}
        self._metrics = metrics
        for channel in channels:
            self.register(channel)

    def register(self, channel: Channel) -> None:
        if channel.name in self._channels:
            raise ConfigurationError(f"Channel {channel.name!r} already subscribed")
        self._channels[channel.name] = channel

    def channels(self) -> List[str]:
        return list(self._channels)

    async def _deliver(self, channel: Channel, body: str, attributes: Dict[str, str]) -> str:
        return await channel.send(body, attributes=dict(attributes))

    async def publish(self, envelope: EventEnvelopeSchema) -> FanOutResult:
        body = envelope.to_body()
        attributes = envelope_attributes(envelope)
        channels = list(self._channels.values())
        outcomes = await asyncio.gather(
            *(self._deliver(channel, body, attributes) for channel in channels),
            return_exceptions=True,
        )

        result = FanOutResult()
        for channel, outcome in zip(channels, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                result.failed[channel.name] = str(outcome)
                logger.error(
                    "fanout_delivery_failed",
                    extra={
                        "channel": channel.name,
                        "tenant_id": envelope.tenant_id,
                        "event_type": envelope.event_type.value,
                        "error": str(outcome),
                    },
                )
                if self._metrics is not None:
                    self._metrics.increment("fanout_delivery_failed", channel=channel.name)
            else:
                result.delivered[channel.name] = outcome
                if self._metrics is not None:
                    self._metrics.increment("fanout_delivered", channel=channel.name)

        logger.info(
            "event_fanned_out",
            extra={
                "tenant_id": envelope.tenant_id,
                "event_type": envelope.event_type.value,
                "delivered": len(result.delivered),
                "failed": len(result.failed),
            },
        )
        return result
