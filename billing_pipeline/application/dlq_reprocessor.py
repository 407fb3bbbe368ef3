"""Operator-invoked replay of dead-lettered messages back onto their consumer channel."""

import logging
from dataclasses import asdict, dataclass
from typing import Optional

from billing_pipeline.application.channel import ChannelRegistry
from billing_pipeline.application.exceptions import ConfigurationError, ReplayError
from billing_pipeline.config.settings import AppSettings
from billing_pipeline.domain.schemas.operations import ReplayResponse
from billing_pipeline.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 10
DEFAULT_HARD_CAP = 1000


@dataclass(frozen=True)
class ReplayResult:
    total_processed: int
    total_replayed: int
    total_failed: int
    remaining: Optional[int] = None

    def to_response(self) -> ReplayResponse:
        return ReplayResponse(**asdict(self))


class DeadLetterReprocessor:
    """
    Moves messages from a dead-letter channel back onto a target channel.

    Send first, delete second: a message is acked on the DLQ only after the
    re-send succeeded. Body, attributes and message id are preserved, so if the
    reprocessor dies between send and delete, the copy sent again on the next run
    is recognised by the consumer's idempotency key. A failed delete is logged
    and the message still counts as replayed. A failed send leaves the
    message in the DLQ; it is invisible for the DLQ's visibility timeout, which
    keeps one run from retrying it in a loop.
    """

    def __init__(
        self,
        registry: ChannelRegistry,
        *,
        batch_size: int = MAX_BATCH_SIZE,
        hard_cap: int = DEFAULT_HARD_CAP,
        default_max: Optional[int] = None,
        receive_wait_seconds: float = 1.0,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        if not 1 <= batch_size <= MAX_BATCH_SIZE:
            raise ConfigurationError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}")
        self._registry = registry
        self._batch_size = batch_size
        self._hard_cap = hard_cap
        self._default_max = default_max
        self._receive_wait_seconds = receive_wait_seconds
        self._metrics = metrics

    @classmethod
    def from_settings(
        cls,
        registry: ChannelRegistry,
        settings: AppSettings,
        metrics: Optional[MetricsCollector] = None,
    ) -> "DeadLetterReprocessor":
        return cls(
            registry,
            batch_size=settings.dlq_replay_batch_size,
            hard_cap=settings.dlq_replay_hard_cap,
            default_max=settings.dlq_replay_default_max,
            metrics=metrics,
        )

    def _limit(self, max_messages: Optional[int]) -> int:
        if max_messages is None:
            return min(self._default_max or self._hard_cap, self._hard_cap)
        if max_messages < 1:
            raise ReplayError("maxMessages must be at least 1")
        if max_messages > self._hard_cap:
            raise ReplayError(f"maxMessages {max_messages} exceeds the replay cap of {self._hard_cap}")
        return max_messages

    async def replay(
        self,
        dlq_ref: str,
        target_ref: str,
        max_messages: Optional[int] = None,
    ) -> ReplayResult:
        limit = self._limit(max_messages)
        if dlq_ref == target_ref:
            raise ReplayError("dlqRef and targetChannelRef must differ")
        try:
            dlq = self._registry.get(dlq_ref)
            target = self._registry.get(target_ref)
        except ConfigurationError as e:
            raise ReplayError(e.message) from e

        depth_before = await dlq.depth()
        logger.info(
            "dlq_replay_started",
            extra={"dlq": dlq_ref, "target": target_ref, "limit": limit, "depth": depth_before},
        )

        processed = replayed = failed = 0
        while processed < limit:
            batch = await dlq.receive(
                max_messages=min(self._batch_size, limit - processed),
                wait_seconds=self._receive_wait_seconds,
            )
            if not batch:
                break
            for message in batch:
                processed += 1
                try:
                    await target.send(message.body, attributes=message.attributes, message_id=message.message_id)
                except Exception as e:
                    failed += 1
                    logger.error(
                        "dlq_replay_send_failed",
                        extra={"dlq": dlq_ref, "message_id": message.message_id, "error": str(e)},
                    )
                    self._count("dlq_replay_failed", dlq_ref)
                    continue
                replayed += 1
                self._count("dlq_replayed", dlq_ref)
                try:
                    await dlq.ack(message)
                except Exception as e:
                    # The copy is already on the target; the original reappears after the
                    # DLQ visibility timeout and a later run sends a duplicate the consumer absorbs.
                    logger.warning(
                        "dlq_replay_delete_failed",
                        extra={"dlq": dlq_ref, "message_id": message.message_id, "error": str(e)},
                    )
                    self._count("dlq_replay_delete_failed", dlq_ref)
                    continue
                logger.debug("dlq_message_replayed", extra={"message_id": message.message_id})

        remaining = await dlq.depth()
        result = ReplayResult(
            total_processed=processed,
            total_replayed=replayed,
            total_failed=failed,
            remaining=remaining,
        )
        logger.info(
            "dlq_replay_complete",
            extra={"dlq": dlq_ref, "target": target_ref, "depth_before": depth_before, **asdict(result)},
        )
        return result

    def _count(self, name: str, dlq_ref: str) -> None:
        if self._metrics is not None:
            self._metrics.increment(name, dlq=dlq_ref)
