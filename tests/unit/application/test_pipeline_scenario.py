"""End to end over in-memory channels: publish once, three consumers, redelivery, dead-letter and replay."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from billing_pipeline.application.consumers import DEFAULT_REGISTRATIONS, ConsumerRegistration
from billing_pipeline.config.settings import AppSettings
from billing_pipeline.core.container import Container
from billing_pipeline.infrastructure.database.models import AuditLog, Invoice, ProcessedEvent

SUBSCRIPTION = {
    "tenant_id": "tenant-a",
    "subscription_id": "sub-001",
    "plan_id": "pro",
    "billing_cycle": "monthly",
    "amount": 9900,
    "tenant_name": "Acme",
    "tenant_email": "billing@acme.test",
    "user_id": "user-1",
}


def _settings(**overrides) -> AppSettings:
    fields = {
        "database_url": "sqlite+aiosqlite://",
        "channel_backend": "memory",
        "environment": "test",
        "receive_wait_seconds": 0,
    }
    fields.update(overrides)
    return AppSettings(**fields)


async def _count(database, model) -> int:
    async with database.session() as session:
        return await session.scalar(select(func.count()).select_from(model))


@pytest.fixture
async def container(database):
    c = await Container(_settings(), database=database).start()
    yield c
    await c.close()


@pytest.mark.asyncio
async def test_one_event_reaches_all_three_consumers(container, database):
    result = await container.publisher().publish_subscription_created(**SUBSCRIPTION)
    assert result.fully_delivered

    for name in ("generate-invoice", "send-notification", "audit-log"):
        batch = await container.runner(name).run_once()
        assert batch.failed == []
        assert await container.registry.get(name).depth() == 0

    async with database.session() as session:
        invoice = (await session.scalars(select(Invoice))).one()
        audit = (await session.scalars(select(AuditLog))).one()
        keys = sorted((await session.scalars(select(ProcessedEvent.idempotency_key))).all())
    assert float(invoice.amount) == 9900.0
    assert invoice.line_items[0]["description"] == "pro plan - monthly subscription"
    assert audit.entity_id == "sub-001"
    assert [k.split(":")[0] for k in keys] == ["audit-log", "generate-invoice", "send-notification"]
    assert container.metrics.counter_value("messages_processed") == 3


@pytest.mark.asyncio
async def test_redelivered_copy_does_not_double_invoice(container, database):
    result = await container.publisher().publish_subscription_created(**SUBSCRIPTION)
    message_id = result.delivered["generate-invoice"]
    # Every channel carries the same body; borrow it from the audit copy.
    [copy] = await container.registry.get("audit-log").receive()
    channel = container.registry.get("generate-invoice")
    # Broker duplicate: same body, same message id, delivered twice.
    await channel.send(copy.body, copy.attributes, message_id=message_id)

    runner = container.runner("generate-invoice")
    first = await runner.run_once()
    second = await runner.run_once()

    assert first.acknowledged == [message_id]
    assert second.acknowledged == [message_id]
    assert await channel.depth() == 0
    assert await _count(database, Invoice) == 1
    assert container.metrics.counter_value("messages_duplicate", consumer="generate-invoice") == 1


@pytest.mark.asyncio
async def test_failing_notification_dead_letters_then_replays(database):
    sender = AsyncMock()
    sender.send = AsyncMock(side_effect=[RuntimeError("smtp down"), RuntimeError("smtp down"), None])
    registrations = dict(DEFAULT_REGISTRATIONS)
    registrations["send-notification"] = ConsumerRegistration(
        name="send-notification",
        batch_size=5,
        max_receive_count=2,
        visibility_timeout=0.3,
        processing_timeout=0.05,
    )
    container = await Container(
        _settings(environment="prod"),
        registrations=registrations,
        database=database,
        email_sender=sender,
    ).start()
    try:
        await container.publisher().publish_subscription_created(**SUBSCRIPTION)
        runner = container.runner("send-notification")
        dlq = container.registry.get("send-notification-dlq")

        for _ in range(10):
            await runner.run_once()
            if await dlq.depth():
                break
            await asyncio.sleep(0.31)

        assert await dlq.depth() == 1
        assert await container.registry.get("send-notification").depth() == 0
        assert sender.send.await_count == 2

        replay = await container.reprocessor().replay("send-notification-dlq", "send-notification")
        assert (replay.total_replayed, replay.remaining) == (1, 0)

        outcome = await runner.run_once()
        assert len(outcome.acknowledged) == 1
        assert sender.send.await_count == 3
    finally:
        await container.close()
