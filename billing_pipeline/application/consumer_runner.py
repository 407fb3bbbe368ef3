"""Poll loops that feed a channel's deliveries to its ConsumerWorker."""

import asyncio
import logging
from typing import List, Optional

from billing_pipeline.application.channel import Channel, DeliveryMessage
from billing_pipeline.application.consumer_worker import BatchResult, ConsumerWorker

logger = logging.getLogger(__name__)

# Pause after a receive error so a broken channel is not hammered.
ERROR_BACKOFF_SECONDS = 1.0


class ConsumerRunner:
    """
    Runs registration.concurrency independent poll loops against one channel.
    Each loop: receive a batch, process it, ack the acknowledged, nack the failed.
    Nacked messages come back after the channel's visibility timeout.
    """

    def __init__(
        self,
        channel: Channel,
        worker: ConsumerWorker,
        *,
        wait_seconds: float = 20.0,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        self._channel = channel
        self._worker = worker
        self._wait_seconds = wait_seconds
        self._stop = stop_event or asyncio.Event()

    def stop(self) -> None:
        self._stop.set()

    async def run_once(self) -> BatchResult:
        """Receive and settle a single batch. Returns an empty result if nothing arrived."""
        messages = await self._channel.receive(
            max_messages=self._worker.registration.batch_size,
            wait_seconds=self._wait_seconds,
        )
        if not messages:
            return BatchResult()
        result = await self._worker.process_batch(messages)
        await self._settle(messages, result)
        return result

    async def _settle(self, messages: List[DeliveryMessage], result: BatchResult) -> None:
        failed = set(result.failed)
        for message in messages:
            if message.message_id in failed:
                await self._channel.nack(message)
            else:
                await self._channel.ack(message)

    async def _loop(self, index: int) -> None:
        logger.info("poll_loop_started", extra={"consumer": self._worker.name, "loop": index})
        while not self._stop.is_set():
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "poll_loop_error",
                    extra={"consumer": self._worker.name, "loop": index, "error": str(e)},
                )
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=ERROR_BACKOFF_SECONDS)
                except asyncio.TimeoutError:
                    pass
        logger.info("poll_loop_stopped", extra={"consumer": self._worker.name, "loop": index})

    async def run(self) -> None:
        """Run until stop() is called or the stop event is set."""
        loops = [
            asyncio.create_task(self._loop(i))
            for i in range(self._worker.registration.concurrency)
        ]
        try:
            await asyncio.gather(*loops)
        finally:
            for task in loops:
                task.cancel()
