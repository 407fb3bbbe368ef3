"""Redis-backed idempotency store. SET NX is the lock; key expiry is the staleness bound."""

import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from redis.exceptions import RedisError

from billing_pipeline.application.exceptions import IdempotencyStoreError
from billing_pipeline.application.idempotency import Claim
from billing_pipeline.domain.exceptions import InvalidStatusTransitionError
from billing_pipeline.domain.models.idempotency import (
    IdempotencyRecord,
    IdempotencyStatus,
    validate_transition,
)
from billing_pipeline.infrastructure.cache.redis_client import RedisClient

logger = logging.getLogger(__name__)

IDEMPOTENCY_PREFIX = "idempotency:"
DEFAULT_STALE_AFTER = timedelta(minutes=5)
DEFAULT_RETENTION = timedelta(days=7)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _seconds(delta: timedelta) -> int:
    return max(1, int(delta.total_seconds()))


class RedisIdempotencyStore:
    """
    Implements IdempotencyStore. A processing claim lives for stale_after seconds, so a
    crashed worker's claim expires on its own; a completed record lives for the retention window.
    """

    def __init__(
        self,
        redis_client: RedisClient,
        *,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._redis = redis_client
        self._stale_after = stale_after
        self._retention = retention
        self._clock = clock

    def _key(self, key: str) -> str:
        return f"{IDEMPOTENCY_PREFIX}{key}"

    async def _load(self, key: str) -> Optional[Dict[str, Any]]:
        raw = await self._redis.get(self._key(key))
        return json.loads(raw) if raw else None

    async def claim(
        self,
        key: str,
        consumer: str,
        stale_after: Optional[timedelta] = None,
    ) -> Claim:
        ttl = _seconds(stale_after or self._stale_after)
        try:
            for _ in range(2):
                token = str(uuid.uuid4())
                payload = {
                    "idempotency_key": key,
                    "consumer": consumer,
                    "status": IdempotencyStatus.PROCESSING.value,
                    "claim_token": token,
                    "processed_at": self._clock().isoformat(),
                    "completed_at": None,
                }
                if await self._redis.set_nx_ex(self._key(key), json.dumps(payload), ttl):
                    return Claim(key=key, claimed=True, token=token)
                existing = await self._load(key)
                if existing is not None:
                    return Claim(
                        key=key,
                        claimed=False,
                        existing_status=IdempotencyStatus(existing["status"]),
                    )
        except RedisError as e:
            raise IdempotencyStoreError(f"Claim failed for {key}: {e}") from e
        return Claim(key=key, claimed=False, existing_status=IdempotencyStatus.PROCESSING)

    async def complete(self, key: str, token: Optional[str] = None) -> None:
        try:
            current = await self._load(key)
            if current is None:
                raise IdempotencyStoreError(f"Claim for {key} was lost before completion")
            try:
                validate_transition(IdempotencyStatus(current["status"]), IdempotencyStatus.COMPLETED)
            except InvalidStatusTransitionError as e:
                raise IdempotencyStoreError(e.message) from e
            expected = token or current["claim_token"]
            completed = {
                **current,
                "status": IdempotencyStatus.COMPLETED.value,
                "claim_token": None,
                "completed_at": self._clock().isoformat(),
            }
            replaced = await self._redis.set_if_field(
                self._key(key),
                "claim_token",
                expected,
                json.dumps(completed),
                _seconds(self._retention),
            )
        except RedisError as e:
            raise IdempotencyStoreError(f"Complete failed for {key}: {e}") from e
        if not replaced:
            raise IdempotencyStoreError(f"Claim for {key} was lost before completion")

    async def release(self, key: str, token: Optional[str] = None) -> bool:
        try:
            if token is None:
                current = await self._load(key)
                if current is None or current["status"] != IdempotencyStatus.PROCESSING.value:
                    return False
                token = current["claim_token"]
            return await self._redis.delete_if_field(self._key(key), "claim_token", token)
        except RedisError as e:
            raise IdempotencyStoreError(f"Release failed for {key}: {e}") from e

    async def get(self, key: str) -> Optional[IdempotencyRecord]:
        data = await self._load(key)
        if data is None:
            return None
        return IdempotencyRecord(
            idempotency_key=data["idempotency_key"],
            consumer=data["consumer"],
            status=IdempotencyStatus(data["status"]),
            processed_at=datetime.fromisoformat(data["processed_at"]),
            completed_at=datetime.fromisoformat(data["completed_at"]) if data.get("completed_at") else None,
            claim_token=data.get("claim_token"),
        )

    async def prune(self, older_than: timedelta) -> int:
        # Every key carries a TTL; Redis expires them without a sweep.
        logger.info("idempotency_prune_skipped", extra={"backend": "redis"})
        return 0
