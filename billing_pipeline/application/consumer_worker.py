"""Idempotent batch processor: claim, run the handler under tenant scope, complete or release."""

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence

from billing_pipeline.application.channel import DeliveryMessage
from billing_pipeline.application.consumers import ConsumerRegistration
from billing_pipeline.application.exceptions import ConfigurationError, HandlerTimeoutError
from billing_pipeline.application.handlers.base import Handler, HandlerContext
from billing_pipeline.application.idempotency import IdempotencyStore
from billing_pipeline.core.context import consumer_ctx, message_id_ctx, tenant_id_ctx
from billing_pipeline.domain.models.event import SubscriptionCreatedEvent
from billing_pipeline.domain.models.idempotency import build_idempotency_key
from billing_pipeline.domain.schemas.operations import BatchResponse
from billing_pipeline.domain.validators.cache import ValidatorCache
from billing_pipeline.domain.validators.event_validator import (
    business_entity_id,
    decode_body,
    parse_envelope,
)
from billing_pipeline.infrastructure.database.tenant_scope import TenantScope
from billing_pipeline.observability.metrics import MetricsCollector


@dataclass
class BatchResult:
    """Message ids to remove from the channel and message ids to leave for redelivery."""

    acknowledged: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        return BatchResponse(failed_message_ids=list(self.failed)).model_dump(by_alias=True)


class ConsumerWorker:
    """
    One consumer's processing step. Stateless across attempts: every retry is a
    channel redelivery, nothing is retried inline.

    Per message: parse -> key -> claim -> handler (tenant scope, timeout) -> complete.
    A lost claim race means the message is a duplicate and is acknowledged.
    Any failure releases the claim and reports the message as failed.
    """

    def __init__(
        self,
        registration: ConsumerRegistration,
        store: IdempotencyStore,
        handler: Handler,
        validator_cache: ValidatorCache,
        tenant_scope: Optional[TenantScope] = None,
        metrics: Optional[MetricsCollector] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if registration.needs_transactional_store and tenant_scope is None:
            raise ConfigurationError(f"Consumer {registration.name} needs a tenant scope")
        self.registration = registration
        self._store = store
        self._handler = handler
        self._validator_cache = validator_cache
        self._tenant_scope = tenant_scope
        self._metrics = metrics
        self._logger = logger or logging.getLogger(__name__)

    @property
    def name(self) -> str:
        return self.registration.name

    async def process_batch(self, messages: Sequence[DeliveryMessage]) -> BatchResult:
        """Process every message independently; one failure never changes another's outcome."""
        outcomes = await asyncio.gather(*(self._process_message(m) for m in messages))
        result = BatchResult()
        for message, ok in zip(messages, outcomes):
            (result.acknowledged if ok else result.failed).append(message.message_id)
        self._logger.info(
            "batch_processed",
            extra={
                "consumer": self.name,
                "batch_size": len(messages),
                "acknowledged": len(result.acknowledged),
                "failed": len(result.failed),
            },
        )
        return result

    async def _process_message(self, message: DeliveryMessage) -> bool:
        message_token = message_id_ctx.set(message.message_id)
        consumer_token = consumer_ctx.set(self.name)
        try:
            return await self._process(message)
        finally:
            consumer_ctx.reset(consumer_token)
            message_id_ctx.reset(message_token)

    async def _process(self, message: DeliveryMessage) -> bool:
        log_extra: Dict[str, Any] = {
            "message_id": message.message_id,
            "consumer": self.name,
            "receive_count": message.receive_count,
        }

        # Step 1 - Parse and key
        try:
            payload = decode_body(message.body)
            key = build_idempotency_key(self.name, business_entity_id(payload), message.message_id)
            log_extra["idempotency_key"] = key
            event = parse_envelope(payload, self._validator_cache)
        except Exception as e:
            self._logger.error("message_rejected", extra={**log_extra, "error": str(e)})
            self._count("messages_failed", reason="invalid_envelope")
            return False

        # Step 2 - Claim
        try:
            claim = await self._store.claim(key, self.name, stale_after=self.registration.stale_after)
        except Exception as e:
            self._logger.error("claim_failed", extra={**log_extra, "error": str(e)})
            self._count("messages_failed", reason="claim_failed")
            return False
        if not claim.claimed:
            status = claim.existing_status.value if claim.existing_status else None
            self._logger.info("message_duplicate", extra={**log_extra, "existing_status": status})
            self._count("messages_duplicate")
            return True
        self._logger.info("message_claimed", extra={**log_extra, "took_over": claim.took_over})

        # Step 3 - Execute
        started = time.perf_counter()
        try:
            await self._execute(event, payload, message, key)
        except Exception as e:
            self._logger.error(
                "message_failed",
                extra={**log_extra, "tenant_id": event.tenant_id, "error": str(e), "error_type": type(e).__name__},
            )
            await self._release(key, claim.token, log_extra)
            self._count("messages_failed", reason=type(e).__name__)
            return False
        finally:
            if self._metrics is not None:
                self._metrics.observe_latency(
                    "handler_latency", (time.perf_counter() - started) * 1000, consumer=self.name
                )

        # Step 4 - Complete. Side effects are committed; keep the claim even if this fails
        # so a redelivery is suppressed as a duplicate instead of repeating them.
        try:
            await self._store.complete(key, claim.token)
        except Exception as e:
            self._logger.error("complete_failed", extra={**log_extra, "error": str(e)})
            self._count("messages_failed", reason="complete_failed")
            return False

        self._logger.info("message_processed", extra={**log_extra, "tenant_id": event.tenant_id})
        self._count("messages_processed")
        return True

    async def _execute(
        self,
        event: SubscriptionCreatedEvent,
        payload: Dict[str, Any],
        message: DeliveryMessage,
        key: str,
    ) -> None:
        try:
            await asyncio.wait_for(
                self._run_handler(event, payload, message, key),
                timeout=self.registration.processing_timeout,
            )
        except asyncio.TimeoutError:
            raise HandlerTimeoutError(
                f"{self.name} exceeded {self.registration.processing_timeout}s"
            ) from None

    async def _run_handler(
        self,
        event: SubscriptionCreatedEvent,
        payload: Dict[str, Any],
        message: DeliveryMessage,
        key: str,
    ) -> None:
        ctx = HandlerContext(
            event=event,
            payload=payload,
            message_id=message.message_id,
            consumer=self.name,
            idempotency_key=key,
        )
        if not self.registration.needs_transactional_store:
            token = tenant_id_ctx.set(event.tenant_id)
            try:
                await self._handler(ctx)
            finally:
                tenant_id_ctx.reset(token)
            return
        async with self._tenant_scope.session(event.tenant_id) as session:
            await self._handler(replace(ctx, session=session))

    async def _release(self, key: str, token: Optional[str], log_extra: Dict[str, Any]) -> None:
        try:
            released = await self._store.release(key, token)
        except Exception as e:
            # The claim goes stale and is taken over once stale_after elapses.
            self._logger.error("release_failed", extra={**log_extra, "error": str(e)})
            return
        if not released:
            self._logger.warning("release_skipped", extra=log_extra)

    def _count(self, name: str, **dimensions: str) -> None:
        if self._metrics is not None:
            self._metrics.increment(name, consumer=self.name, **dimensions)
