"""Admin API: /health, /channels, POST /dlq/replay, correlation header, error mapping."""

import logging

import pytest


@pytest.mark.asyncio
async def test_health_reports_consumers(async_client):
    r = await async_client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["channel_backend"] == "memory"
    assert data["consumers"] == ["audit-log", "generate-invoice", "send-notification"]
    assert data["correlation_id"] == r.headers["X-Correlation-ID"]


@pytest.mark.asyncio
async def test_correlation_id_preserved(async_client):
    r = await async_client.get("/health", headers={"X-Correlation-ID": "corr-123"})
    assert r.headers["X-Correlation-ID"] == "corr-123"
    assert r.json()["correlation_id"] == "corr-123"


@pytest.mark.asyncio
async def test_channels_show_depths(async_client, container):
    await container.registry.get("audit-log-dlq").send("{}", message_id="m-1")
    r = await async_client.get("/channels")
    assert r.status_code == 200
    by_name = {c["name"]: c for c in r.json()["channels"]}
    assert by_name["audit-log"]["deadLetter"] == "audit-log-dlq"
    assert by_name["audit-log"]["deadLetterDepth"] == 1
    assert by_name["generate-invoice"]["batchSize"] == 1
    assert by_name["send-notification"]["maxReceiveCount"] == 3


@pytest.mark.asyncio
async def test_replay_moves_messages(async_client, container, operator_headers, caplog):
    dlq = container.registry.get("audit-log-dlq")
    for i in range(3):
        await dlq.send("{}", message_id=f"m-{i}")

    with caplog.at_level(logging.INFO, logger="billing_pipeline.api.middleware"):
        r = await async_client.post(
            "/dlq/replay",
            json={"dlqRef": "audit-log-dlq", "targetChannelRef": "audit-log", "maxMessages": 2},
            headers=operator_headers,
        )

    assert r.status_code == 200
    assert r.json() == {"totalProcessed": 2, "totalReplayed": 2, "totalFailed": 0, "remaining": 1}
    assert await container.registry.get("audit-log").depth() == 2
    [audit] = [rec for rec in caplog.records if rec.getMessage() == "request_audit"]
    assert audit.operator_id == "ops-alice"
    assert audit.status_code == 200


@pytest.mark.asyncio
async def test_replay_unknown_channel_is_400(async_client):
    r = await async_client.post(
        "/dlq/replay",
        json={"dlqRef": "missing-dlq", "targetChannelRef": "audit-log"},
    )
    assert r.status_code == 400
    assert "missing-dlq" in r.json()["detail"]


@pytest.mark.asyncio
async def test_replay_above_cap_is_400(async_client):
    r = await async_client.post(
        "/dlq/replay",
        json={"dlqRef": "audit-log-dlq", "targetChannelRef": "audit-log", "maxMessages": 5000},
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_replay_request_validated(async_client):
    r = await async_client.post("/dlq/replay", json={"dlqRef": "audit-log-dlq", "maxMessages": 0})
    assert r.status_code == 422
