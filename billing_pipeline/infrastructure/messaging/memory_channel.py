"""In-process channel with visibility timeout, receive counting and dead-letter redrive."""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from billing_pipeline.application.channel import DeliveryMessage

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 4 * 24 * 3600
DLQ_RETENTION_SECONDS = 14 * 24 * 3600


@dataclass
class _StoredMessage:
    message_id: str
    body: str
    attributes: Dict[str, str]
    sent_at: float
    receive_count: int = 0
    visible_at: float = 0.0
    receipt: Optional[str] = None
    seq: int = 0


@dataclass
class _ChannelStats:
    sent: int = 0
    received: int = 0
    acked: int = 0
    dead_lettered: int = 0
    expired: int = 0
    stale_acks: int = 0


class InMemoryChannel:
    """
    Implements Channel for tests and single-process runs.

    A received message is invisible until visibility_timeout elapses; if it is not
    acked by then it is delivered again. Once a message has been received
    max_receive_count times, the next receive moves it to dead_letter instead.
    Receivers long-poll: they wait on a condition and re-check every poll_interval.
    """

    def __init__(
        self,
        name: str,
        *,
        visibility_timeout: float = 30.0,
        max_receive_count: Optional[int] = None,
        dead_letter: Optional["InMemoryChannel"] = None,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        poll_interval: float = 0.05,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_receive_count is not None and dead_letter is None:
            raise ValueError("max_receive_count requires a dead_letter channel")
        self.name = name
        self.visibility_timeout = visibility_timeout
        self.max_receive_count = max_receive_count
        self.dead_letter = dead_letter
        self.retention_seconds = retention_seconds
        self._poll_interval = poll_interval
        self._clock = clock
        self._messages: List[_StoredMessage] = []
        self._condition = asyncio.Condition()
        self._seq = 0
        self.stats = _ChannelStats()

    def _append(self, stored: _StoredMessage) -> None:
        self._seq += 1
        stored.seq = self._seq
        self._messages.append(stored)
        self.stats.sent += 1

    async def send(
        self,
        body: str,
        attributes: Optional[Dict[str, str]] = None,
        message_id: Optional[str] = None,
    ) -> str:
        message_id = message_id or str(uuid.uuid4())
        async with self._condition:
            self._append(
                _StoredMessage(
                    message_id=message_id,
                    body=body,
                    attributes=dict(attributes or {}),
                    sent_at=self._clock(),
                )
            )
            self._condition.notify_all()
        return message_id

    def _dead_letter(self, stored: _StoredMessage) -> None:
        self._messages.remove(stored)
        self.stats.dead_lettered += 1
        # Body, attributes and message id survive the move so a replay is indistinguishable.
        self.dead_letter._append(
            _StoredMessage(
                message_id=stored.message_id,
                body=stored.body,
                attributes=dict(stored.attributes),
                sent_at=self._clock(),
            )
        )
        logger.warning(
            "message_dead_lettered",
            extra={
                "channel": self.name,
                "dead_letter_channel": self.dead_letter.name,
                "message_id": stored.message_id,
                "receive_count": stored.receive_count,
            },
        )

    def _collect(self, max_messages: int) -> List[DeliveryMessage]:
        now = self._clock()
        batch: List[DeliveryMessage] = []
        for stored in list(self._messages):
            if now - stored.sent_at > self.retention_seconds:
                self._messages.remove(stored)
                self.stats.expired += 1
                continue
            if len(batch) >= max_messages:
                break
            if stored.visible_at > now:
                continue
            if self.max_receive_count is not None and stored.receive_count >= self.max_receive_count:
                self._dead_letter(stored)
                continue
            stored.receive_count += 1
            stored.receipt = str(uuid.uuid4())
            stored.visible_at = now + self.visibility_timeout
            self.stats.received += 1
            batch.append(
                DeliveryMessage(
                    message_id=stored.message_id,
                    body=stored.body,
                    attributes=dict(stored.attributes),
                    receive_count=stored.receive_count,
                    receipt=stored.receipt,
                )
            )
        return batch

    async def receive(self, max_messages: int = 10, wait_seconds: float = 0.0) -> List[DeliveryMessage]:
        if max_messages < 1:
            raise ValueError("max_messages must be >= 1")
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_seconds
        async with self._condition:
            while True:
                batch = self._collect(max_messages)
                remaining = deadline - loop.time()
                if batch or remaining <= 0:
                    return batch
                try:
                    await asyncio.wait_for(
                        self._condition.wait(),
                        timeout=min(remaining, self._poll_interval),
                    )
                except asyncio.TimeoutError:
                    pass

    def _find(self, message: DeliveryMessage) -> Optional[_StoredMessage]:
        for stored in self._messages:
            if stored.receipt is not None and stored.receipt == message.receipt:
                return stored
        return None

    async def ack(self, message: DeliveryMessage) -> None:
        async with self._condition:
            stored = self._find(message)
            if stored is None:
                self.stats.stale_acks += 1
                logger.debug(
                    "stale_ack_ignored",
                    extra={"channel": self.name, "message_id": message.message_id},
                )
                return
            self._messages.remove(stored)
            self.stats.acked += 1

    async def nack(self, message: DeliveryMessage) -> None:
        async with self._condition:
            stored = self._find(message)
            if stored is not None:
                # Restart the visibility window: redelivery waits a full timeout.
                stored.visible_at = self._clock() + self.visibility_timeout

    async def depth(self) -> int:
        return len(self._messages)

    def visible_count(self) -> int:
        now = self._clock()
        return sum(1 for m in self._messages if m.visible_at <= now)
