"""Per-consumer channel protocol. Application layer depends on this; infrastructure implements it."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

from billing_pipeline.application.exceptions import ConfigurationError


@dataclass(frozen=True)
class DeliveryMessage:
    """
    One delivery of an envelope on one channel. message_id is stable across
    redeliveries and replays; receipt identifies this particular receive.
    """

    message_id: str
    body: str
    attributes: Dict[str, str] = field(default_factory=dict)
    receive_count: int = 1
    receipt: Optional[str] = None


class Channel(Protocol):
    """
    Queue for one consumer. available -> in-flight -> acknowledged, or visible
    again once the visibility timeout elapses. After max_receive_count receives
    without an ack the message moves to the dead-letter channel.
    """

    name: str

    async def send(
        self,
        body: str,
        attributes: Optional[Dict[str, str]] = None,
        message_id: Optional[str] = None,
    ) -> str:
        """Enqueue body; returns the message id (generated unless given)."""
        ...

    async def receive(self, max_messages: int = 10, wait_seconds: float = 0.0) -> List[DeliveryMessage]:
        """Long-poll up to wait_seconds for at most max_messages."""
        ...

    async def ack(self, message: DeliveryMessage) -> None:
        """Remove the message. A receipt from an expired receive is ignored."""
        ...

    async def nack(self, message: DeliveryMessage) -> None:
        """Give the message back for redelivery after its visibility timeout."""
        ...

    async def depth(self) -> int:
        """Approximate number of messages held (visible and in flight)."""
        ...


class ChannelRegistry:
    """Resolves channel references (consumer queues and their dead-letter queues) by name."""

    def __init__(self) -> None:
        self._channels: Dict[str, Channel] = {}

    def register(self, channel: Channel) -> Channel:
        if channel.name in self._channels:
            raise ConfigurationError(f"Channel {channel.name!r} is already registered")
        self._channels[channel.name] = channel
        return channel

    def get(self, ref: str) -> Channel:
        try:
            return self._channels[ref]
        except KeyError:
            raise ConfigurationError(f"Unknown channel reference: {ref!r}") from None

    def names(self) -> List[str]:
        return sorted(self._channels)

    def __contains__(self, ref: str) -> bool:
        return ref in self._channels
