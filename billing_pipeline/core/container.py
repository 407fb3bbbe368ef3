"""Process context: every long-lived resource handle, built once and passed down explicitly."""

import logging
from datetime import timedelta
from typing import Dict, List, Optional, Union

from billing_pipeline.application.channel import ChannelRegistry
from billing_pipeline.application.consumer_runner import ConsumerRunner
from billing_pipeline.application.consumer_worker import ConsumerWorker
from billing_pipeline.application.consumers import DEFAULT_REGISTRATIONS, ConsumerRegistration
from billing_pipeline.application.dlq_reprocessor import DeadLetterReprocessor
from billing_pipeline.application.event_publisher import EventPublisher
from billing_pipeline.application.exceptions import ConfigurationError
from billing_pipeline.application.fanout import FanOutBroker
from billing_pipeline.application.handlers import (
    AuditLogHandler,
    EmailSender,
    GenerateInvoiceHandler,
    Handler,
    SendNotificationHandler,
)
from billing_pipeline.application.idempotency import IdempotencyStore
from billing_pipeline.config.settings import AppSettings
from billing_pipeline.domain.validators.cache import ValidatorCache
from billing_pipeline.infrastructure.cache.idempotency_store_redis import RedisIdempotencyStore
from billing_pipeline.infrastructure.cache.redis_client import RedisClient
from billing_pipeline.infrastructure.database.idempotency_store import SqlIdempotencyStore
from billing_pipeline.infrastructure.database.session import Database
from billing_pipeline.infrastructure.database.tenant_scope import TenantScope
from billing_pipeline.infrastructure.messaging.memory_channel import (
    DLQ_RETENTION_SECONDS,
    InMemoryChannel,
)
from billing_pipeline.infrastructure.messaging.rabbitmq_broker import RabbitMQFanOutBroker
from billing_pipeline.infrastructure.messaging.rabbitmq_channel import declare_consumer_topology
from billing_pipeline.infrastructure.messaging.rabbitmq_connection import RabbitMQConnection
from billing_pipeline.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 3600


class Container:
    """
    Owns the database pool, the idempotency store, the channels and the
    per-consumer workers of one process. Construct, await start(), use, await close().
    """

    def __init__(
        self,
        settings: AppSettings,
        *,
        registrations: Optional[Dict[str, ConsumerRegistration]] = None,
        database: Optional[Database] = None,
        store: Optional[IdempotencyStore] = None,
        email_sender: Optional[EmailSender] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.settings = settings
        self.registrations = dict(registrations or DEFAULT_REGISTRATIONS)
        self.metrics = metrics or MetricsCollector(
            namespace=settings.metrics_namespace,
            default_dimensions={"environment": settings.environment},
        )
        self.validator_cache = ValidatorCache(ttl_seconds=settings.validator_cache_ttl_seconds)
        self.database = database or Database.from_settings(settings)
        self.tenant_scope = TenantScope(self.database)
        self.redis: Optional[RedisClient] = None
        self.store = store or self._build_store()
        self.rabbitmq: Optional[RabbitMQConnection] = None
        self.registry = ChannelRegistry()
        self.broker: Union[FanOutBroker, RabbitMQFanOutBroker, None] = None
        self._email_sender = email_sender
        self.workers: Dict[str, ConsumerWorker] = {}
        self._started = False

    def _build_store(self) -> IdempotencyStore:
        stale_after = timedelta(minutes=5)
        if self.settings.idempotency_backend == "redis":
            self.redis = RedisClient(self.settings.redis_url)
            return RedisIdempotencyStore(
                self.redis,
                stale_after=stale_after,
                retention=timedelta(days=self.settings.idempotency_retention_days),
            )
        return SqlIdempotencyStore(self.database, stale_after=stale_after)

    def _build_handler(self, name: str) -> Handler:
        if name == "generate-invoice":
            return GenerateInvoiceHandler(metrics=self.metrics)
        if name == "send-notification":
            return SendNotificationHandler(
                environment=self.settings.environment,
                sender=self._email_sender,
                sender_email=self.settings.sender_email,
            )
        if name == "audit-log":
            return AuditLogHandler()
        raise ConfigurationError(f"No handler for consumer {name!r}")

    async def _start_memory_channels(self) -> None:
        retention = self.settings.message_retention_days * DAY_SECONDS
        channels = []
        for registration in self.registrations.values():
            dlq = InMemoryChannel(
                registration.dead_letter_name,
                visibility_timeout=registration.visibility_timeout,
                retention_seconds=min(self.settings.dlq_retention_days * DAY_SECONDS, DLQ_RETENTION_SECONDS),
            )
            channel = InMemoryChannel(
                registration.name,
                visibility_timeout=registration.visibility_timeout,
                max_receive_count=registration.max_receive_count,
                dead_letter=dlq,
                retention_seconds=retention,
            )
            self.registry.register(channel)
            self.registry.register(dlq)
            channels.append(channel)
        self.broker = FanOutBroker(channels, metrics=self.metrics)

    async def _start_rabbitmq_channels(self) -> None:
        self.rabbitmq = RabbitMQConnection(self.settings.rabbitmq_url)
        for registration in self.registrations.values():
            channel, dlq = await declare_consumer_topology(
                self.rabbitmq,
                self.settings.exchange_name,
                registration,
                retention_days=self.settings.message_retention_days,
                dlq_retention_days=self.settings.dlq_retention_days,
            )
            self.registry.register(channel)
            self.registry.register(dlq)
        self.broker = RabbitMQFanOutBroker(
            self.rabbitmq,
            self.settings.exchange_name,
            consumers=list(self.registrations),
            metrics=self.metrics,
        )

    async def start(self) -> "Container":
        if self._started:
            return self
        if self.settings.channel_backend == "memory":
            await self._start_memory_channels()
        else:
            await self._start_rabbitmq_channels()
        for name, registration in self.registrations.items():
            self.workers[name] = ConsumerWorker(
                registration=registration,
                store=self.store,
                handler=self._build_handler(name),
                validator_cache=self.validator_cache,
                tenant_scope=self.tenant_scope,
                metrics=self.metrics,
            )
        self._started = True
        logger.info(
            "container_started",
            extra={"channel_backend": self.settings.channel_backend, "consumers": sorted(self.registrations)},
        )
        return self

    def worker(self, name: str) -> ConsumerWorker:
        try:
            return self.workers[name]
        except KeyError:
            raise ConfigurationError(f"Unknown consumer: {name!r}") from None

    def runner(self, name: str) -> ConsumerRunner:
        return ConsumerRunner(
            self.registry.get(name),
            self.worker(name),
            wait_seconds=self.settings.receive_wait_seconds,
        )

    def runners(self, names: Optional[List[str]] = None) -> List[ConsumerRunner]:
        return [self.runner(name) for name in (names or list(self.registrations))]

    def publisher(self) -> EventPublisher:
        if self.broker is None:
            raise ConfigurationError("Container not started")
        return EventPublisher(self.broker)

    def reprocessor(self) -> DeadLetterReprocessor:
        return DeadLetterReprocessor.from_settings(self.registry, self.settings, metrics=self.metrics)

    async def close(self) -> None:
        if self.rabbitmq is not None:
            await self.rabbitmq.close()
        if self.redis is not None:
            await self.redis.close()
        await self.database.dispose()
        self._started = False
        logger.info("container_closed")
