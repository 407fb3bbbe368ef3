"""
RabbitMQ per-consumer channel: quorum queue with a delivery limit, a retry queue
that holds nacked messages for the visibility timeout, and a dead-letter queue.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Mapping, Optional, Tuple

import aio_pika
from aio_pika.abc import AbstractIncomingMessage, AbstractQueue

from billing_pipeline.application.channel import DeliveryMessage
from billing_pipeline.application.consumers import ConsumerRegistration
from billing_pipeline.application.exceptions import MessagingFailureError
from billing_pipeline.infrastructure.messaging.rabbitmq_connection import RabbitMQConnection

logger = logging.getLogger(__name__)

DAY_MS = 24 * 3600 * 1000

# Receives before the message was parked in the retry queue; x-delivery-count restarts on republish.
RECEIVE_COUNT_HEADER = "x-receive-count"


def dead_letter_exchange(exchange_name: str) -> str:
    return f"{exchange_name}.dlx"


def dead_letter_queue(queue_name: str) -> str:
    return f"{queue_name}-dlq"


def retry_queue(queue_name: str) -> str:
    return f"{queue_name}-retry"


def _attributes(headers: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    # Broker bookkeeping (x-delivery-count, x-death, x-first-death-*) is not an envelope attribute.
    return {str(k): str(v) for k, v in (headers or {}).items() if not str(k).startswith("x-")}


class RabbitMQChannel:
    """
    Implements Channel over one durable queue. Messages are pulled with basic.get
    so receive() can honour max_messages and a long-poll wait. Unacked deliveries
    are tracked by receipt until ack() or nack(). Receipts are unique per delivery,
    so a delivery tag reused after a reconnect never resolves to an older delivery.

    nack() republishes the message to the retry queue, whose TTL is the visibility
    timeout and whose dead-letter route is this queue, then acks the original.
    A message nacked on its max_receive_count-th receive is rejected instead and
    the queue's dead-letter exchange moves it to the DLQ.
    """

    def __init__(
        self,
        connection: RabbitMQConnection,
        queue_name: str,
        *,
        retry_queue_name: Optional[str] = None,
        max_receive_count: Optional[int] = None,
        poll_interval: float = 0.2,
    ) -> None:
        self.name = queue_name
        self._connection = connection
        self._retry_queue_name = retry_queue_name
        self._max_receive_count = max_receive_count
        self._poll_interval = poll_interval
        self._queue: Optional[AbstractQueue] = None
        self._in_flight: Dict[str, AbstractIncomingMessage] = {}

    async def _get_queue(self) -> AbstractQueue:
        if self._queue is None:
            await self._connection.connect()
            self._queue = await self._connection.channel.get_queue(self.name, ensure=True)
        return self._queue

    async def _publish(self, routing_key: str, body: bytes, message_id: str, headers: Dict[str, Any]) -> None:
        await self._connection.connect()
        try:
            await self._connection.channel.default_exchange.publish(
                aio_pika.Message(
                    body=body,
                    message_id=message_id,
                    content_type="application/json",
                    delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
                    headers=headers,
                ),
                routing_key=routing_key,
            )
        except aio_pika.exceptions.AMQPError as e:
            raise MessagingFailureError(f"Send to {routing_key} failed: {e}") from e

    async def send(
        self,
        body: str,
        attributes: Optional[Dict[str, str]] = None,
        message_id: Optional[str] = None,
    ) -> str:
        message_id = message_id or str(uuid.uuid4())
        await self._publish(self.name, body.encode(), message_id, dict(attributes or {}))
        return message_id

    def _to_delivery(self, incoming: AbstractIncomingMessage) -> DeliveryMessage:
        headers = dict(incoming.headers or {})
        # Quorum queues count prior deliveries in x-delivery-count; the retry hop carries the rest.
        prior = int(headers.get(RECEIVE_COUNT_HEADER, 0) or 0) + int(headers.get("x-delivery-count", 0) or 0)
        receipt = str(uuid.uuid4())
        self._in_flight[receipt] = incoming
        return DeliveryMessage(
            message_id=incoming.message_id or receipt,
            body=incoming.body.decode(),
            attributes=_attributes(headers),
            receive_count=prior + 1,
            receipt=receipt,
        )

    async def receive(self, max_messages: int = 10, wait_seconds: float = 0.0) -> List[DeliveryMessage]:
        queue = await self._get_queue()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_seconds
        batch: List[DeliveryMessage] = []
        while len(batch) < max_messages:
            incoming = await queue.get(no_ack=False, fail=False)
            if incoming is not None:
                batch.append(self._to_delivery(incoming))
                continue
            if batch or loop.time() >= deadline:
                break
            await asyncio.sleep(min(self._poll_interval, max(0.0, deadline - loop.time())))
        return batch

    async def ack(self, message: DeliveryMessage) -> None:
        incoming = self._in_flight.pop(message.receipt or "", None)
        if incoming is None:
            logger.debug("stale_ack_ignored", extra={"channel": self.name, "message_id": message.message_id})
            return
        await incoming.ack()

    async def nack(self, message: DeliveryMessage) -> None:
        incoming = self._in_flight.pop(message.receipt or "", None)
        if incoming is None:
            return
        if self._max_receive_count is not None and message.receive_count >= self._max_receive_count:
            await incoming.reject(requeue=False)
            logger.warning(
                "message_dead_lettered",
                extra={
                    "channel": self.name,
                    "message_id": message.message_id,
                    "receive_count": message.receive_count,
                },
            )
            return
        if self._retry_queue_name is None:
            await incoming.nack(requeue=True)
            return
        headers: Dict[str, Any] = dict(_attributes(incoming.headers))
        headers[RECEIVE_COUNT_HEADER] = message.receive_count
        try:
            await self._publish(self._retry_queue_name, incoming.body, message.message_id, headers)
        except MessagingFailureError as e:
            # Immediate redelivery; x-delivery-limit still bounds the attempts.
            logger.warning(
                "retry_park_failed",
                extra={"channel": self.name, "message_id": message.message_id, "error": str(e)},
            )
            await incoming.nack(requeue=True)
            return
        await incoming.ack()

    async def depth(self) -> int:
        await self._connection.connect()
        names = [self.name] if self._retry_queue_name is None else [self.name, self._retry_queue_name]
        total = 0
        # Parked retries are still held for this consumer.
        for name in names:
            queue = await self._connection.channel.declare_queue(name, passive=True)
            total += queue.declaration_result.message_count or 0
        return total


async def declare_consumer_topology(
    connection: RabbitMQConnection,
    exchange_name: str,
    registration: ConsumerRegistration,
    *,
    retention_days: int = 4,
    dlq_retention_days: int = 14,
) -> Tuple[RabbitMQChannel, RabbitMQChannel]:
    """
    Declare fanout exchange -> consumer queue -> (delivery limit) -> DLX -> DLQ,
    plus consumer queue <- (visibility timeout TTL) <- retry queue.
    Returns (channel, dead_letter_channel).
    """
    await connection.connect()
    channel = connection.channel
    exchange = await channel.declare_exchange(exchange_name, aio_pika.ExchangeType.FANOUT, durable=True)
    dlx = await channel.declare_exchange(
        dead_letter_exchange(exchange_name), aio_pika.ExchangeType.DIRECT, durable=True
    )

    dlq_name = dead_letter_queue(registration.name)
    dlq = await channel.declare_queue(
        dlq_name,
        durable=True,
        arguments={
            "x-queue-type": "quorum",
            "x-message-ttl": dlq_retention_days * DAY_MS,
        },
    )
    await dlq.bind(dlx, routing_key=registration.name)

    retry_name = retry_queue(registration.name)
    await channel.declare_queue(
        retry_name,
        durable=True,
        arguments={
            "x-queue-type": "quorum",
            "x-message-ttl": int(registration.visibility_timeout * 1000),
            # Default exchange: expired messages go straight back to the consumer queue.
            "x-dead-letter-exchange": "",
            "x-dead-letter-routing-key": registration.name,
        },
    )

    queue = await channel.declare_queue(
        registration.name,
        durable=True,
        arguments={
            "x-queue-type": "quorum",
            # Limit counts redeliveries, so N receives means N - 1 returns.
            "x-delivery-limit": registration.max_receive_count - 1,
            "x-dead-letter-exchange": dead_letter_exchange(exchange_name),
            "x-dead-letter-routing-key": registration.name,
            "x-message-ttl": retention_days * DAY_MS,
        },
    )
    await queue.bind(exchange)
    logger.info(
        "consumer_topology_declared",
        extra={
            "consumer": registration.name,
            "exchange": exchange_name,
            "retry_queue": retry_name,
            "dead_letter_queue": dlq_name,
        },
    )
    consumer_channel = RabbitMQChannel(
        connection,
        registration.name,
        retry_queue_name=retry_name,
        max_receive_count=registration.max_receive_count,
    )
    return consumer_channel, RabbitMQChannel(connection, dlq_name)
