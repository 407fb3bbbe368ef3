# billing_pipeline/infrastructure/messaging/rabbitmq_broker.py

import logging
import uuid
from typing import Iterable, List, Optional

import aio_pika

from billing_pipeline.application.fanout import FanOutResult, envelope_attributes
from billing_pipeline.domain.schemas.event import EventEnvelopeSchema
from billing_pipeline.infrastructure.messaging.rabbitmq_connection import RabbitMQConnection
from billing_pipeline.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)


class RabbitMQFanOutBroker:
    """
    Publishes each envelope once to a durable fanout exchange; the exchange copies it
    into every bound consumer queue. The broker confirms the publish as a whole, so
    all bound consumers either receive the message or all are reported failed.
    """

    def __init__(
        self,
        connection: RabbitMQConnection,
        exchange_name: str,
        consumers: Iterable[str] = (),
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self._connection = connection
        self._exchange_name = exchange_name
        self._consumers: List[str] = list(consumers)
        self._metrics = metrics

    def channels(self) -> List[str]:
        return list(self._consumers)

    async def publish(self, envelope: EventEnvelopeSchema) -> FanOutResult:
        message_id = str(uuid.uuid4())
        result = FanOutResult()
        try:
            await self._connection.connect()
            exchange = await self._connection.channel.get_exchange(self._exchange_name, ensure=True)
            await exchange.publish(
                aio_pika.Message(
                    body=envelope.to_body().encode(),
                    message_id=message_id,
                    content_type="application/json",
                    delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
                    headers=envelope_attributes(envelope),
                ),
                routing_key="",
            )
        except Exception as e:
            logger.error(
                "fanout_delivery_failed",
                extra={"exchange": self._exchange_name, "tenant_id": envelope.tenant_id, "error": str(e)},
            )
            for name in self._consumers:
                result.failed[name] = str(e)
                if self._metrics is not None:
                    self._metrics.increment("fanout_delivery_failed", channel=name)
            return result

        for name in self._consumers:
            result.delivered[name] = message_id
            if self._metrics is not None:
                self._metrics.increment("fanout_delivered", channel=name)
        logger.info(
            "event_fanned_out",
            extra={
                "exchange": self._exchange_name,
                "tenant_id": envelope.tenant_id,
                "event_type": envelope.event_type.value,
                "delivered": len(result.delivered),
            },
        )
        return result
