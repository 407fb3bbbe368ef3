# billing_pipeline/infrastructure/messaging/rabbitmq_connection.py

import logging
from typing import Any, Optional

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractRobustConnection

from billing_pipeline.application.exceptions import MessagingFailureError

logger = logging.getLogger(__name__)


class RabbitMQConnection:
    """
    One robust connection and one confirming channel per process.
    Call connect() before use and close() on shutdown.
    """

    def __init__(self, url: str, *, prefetch_count: int = 10, **connect_kwargs: Any) -> None:
        self._url = url
        self._prefetch_count = prefetch_count
        self._connect_kwargs = connect_kwargs
        self._connection: Optional[AbstractRobustConnection] = None
        self._channel: Optional[AbstractChannel] = None

    async def connect(self) -> None:
        """Establish connection and channel. No-op if already connected."""
        if self._connection is not None and not self._connection.is_closed:
            return
        try:
            self._connection = await aio_pika.connect_robust(self._url, **self._connect_kwargs)
            self._channel = await self._connection.channel(publisher_confirms=True)
            await self._channel.set_qos(prefetch_count=self._prefetch_count)
        except (ConnectionError, OSError, ValueError) as e:
            raise MessagingFailureError(f"RabbitMQ connect failed: {e}") from e
        logger.info("rabbitmq_connected")

    @property
    def channel(self) -> AbstractChannel:
        if self._channel is None:
            raise MessagingFailureError("Not connected; call connect() first")
        return self._channel

    async def close(self) -> None:
        if self._channel is not None:
            await self._channel.close()
            self._channel = None
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def health_check(self) -> bool:
        if self._connection is None or self._channel is None:
            return False
        return not self._connection.is_closed
