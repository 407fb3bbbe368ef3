"""Shared fixtures: in-memory Redis, SQLite database, envelopes, a controllable clock."""

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from billing_pipeline.domain.models.event import BillingCycle, EventType
from billing_pipeline.domain.schemas.event import EventEnvelopeSchema
from billing_pipeline.infrastructure.database.schema import init_schema
from billing_pipeline.infrastructure.database.session import Database


class FakeRedis:
    """In-memory stand-in for RedisClient. TTLs are recorded, not enforced, except via expire()."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self._ttl: dict[str, int] = {}

    async def set_nx_ex(self, key: str, value: str, ttl: int) -> bool:
        if key in self._store:
            return False
        self._store[key] = value
        self._ttl[key] = ttl
        return True

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set_if_field(self, key: str, field: str, expected: str, value: str, ttl: int) -> bool:
        current = self._store.get(key)
        if current is None or json.loads(current).get(field) != expected:
            return False
        self._store[key] = value
        self._ttl[key] = ttl
        return True

    async def delete_if_field(self, key: str, field: str, expected: str) -> bool:
        current = self._store.get(key)
        if current is None or json.loads(current).get(field) != expected:
            return False
        del self._store[key]
        self._ttl.pop(key, None)
        return True

    async def close(self) -> None:
        pass

    def expire(self, key: str) -> None:
        """Simulate TTL expiry of one key."""
        self._store.pop(key, None)
        self._ttl.pop(key, None)


class FakeClock:
    """Callable returning a settable aware datetime."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def database(tmp_path):
    """File-backed SQLite so concurrent sessions use separate connections."""
    db = Database.from_url(f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}")
    await init_schema(db)
    yield db
    await db.dispose()


@pytest.fixture
def envelope_factory():
    def make(**overrides) -> EventEnvelopeSchema:
        fields = {
            "event_type": EventType.SUBSCRIPTION_CREATED,
            "tenant_id": "tenant-a",
            "subscription_id": "sub-001",
            "plan_id": "pro",
            "billing_cycle": BillingCycle.MONTHLY,
            "amount": Decimal("9900"),
            "currency": "usd",
            "period_start": datetime(2025, 1, 15, tzinfo=timezone.utc),
            "period_end": datetime(2025, 2, 15, tzinfo=timezone.utc),
            "timestamp": datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc),
            "tenant_name": "Acme",
            "tenant_email": "billing@acme.test",
            "user_id": "user-1",
        }
        fields.update(overrides)
        return EventEnvelopeSchema(**fields)

    return make


@pytest.fixture
def body_factory(envelope_factory):
    def make(**overrides) -> str:
        return envelope_factory(**overrides).to_body()

    return make
