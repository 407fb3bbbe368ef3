"""SQL-backed idempotency store on the processed_events table. The unique constraint is the lock."""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from billing_pipeline.application.exceptions import IdempotencyStoreError
from billing_pipeline.application.idempotency import Claim
from billing_pipeline.domain.models.idempotency import IdempotencyRecord, IdempotencyStatus, stale_cutoff
from billing_pipeline.infrastructure.database.models import ProcessedEvent
from billing_pipeline.infrastructure.database.session import Database

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER = timedelta(minutes=5)

# Insert attempts per claim: a conflicting row may be released between our
# insert and our read, in which case the key is free again.
_CLAIM_ATTEMPTS = 2


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlIdempotencyStore:
    """Implements IdempotencyStore. Uses system sessions: the ledger is not tenant data."""

    def __init__(
        self,
        database: Database,
        *,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._database = database
        self._stale_after = stale_after
        self._clock = clock

    async def claim(
        self,
        key: str,
        consumer: str,
        stale_after: Optional[timedelta] = None,
    ) -> Claim:
        window = stale_after or self._stale_after
        try:
            for _ in range(_CLAIM_ATTEMPTS):
                claim = await self._try_claim(key, consumer, window)
                if claim is not None:
                    return claim
        except SQLAlchemyError as e:
            raise IdempotencyStoreError(f"Claim failed for {key}: {e}") from e
        # The conflicting row kept disappearing and reappearing; treat as held.
        return Claim(key=key, claimed=False, existing_status=IdempotencyStatus.PROCESSING)

    async def _try_claim(self, key: str, consumer: str, window: timedelta) -> Optional[Claim]:
        now = self._clock()
        token = str(uuid.uuid4())
        async with self._database.session() as session:
            try:
                async with session.begin():
                    session.add(
                        ProcessedEvent(
                            idempotency_key=key,
                            consumer=consumer,
                            status=IdempotencyStatus.PROCESSING.value,
                            claim_token=token,
                            processed_at=now,
                        )
                    )
                return Claim(key=key, claimed=True, token=token)
            except IntegrityError:
                pass

            # Atomic takeover of an abandoned claim: only one racer can match the row.
            async with session.begin():
                result = await session.execute(
                    update(ProcessedEvent)
                    .where(
                        ProcessedEvent.idempotency_key == key,
                        ProcessedEvent.status == IdempotencyStatus.PROCESSING.value,
                        ProcessedEvent.processed_at <= stale_cutoff(now, window),
                    )
                    .values(consumer=consumer, claim_token=token, processed_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    logger.warning(
                        "stale_claim_taken_over",
                        extra={"idempotency_key": key, "consumer": consumer},
                    )
                    return Claim(key=key, claimed=True, token=token, took_over=True)
                status = await session.scalar(
                    select(ProcessedEvent.status).where(ProcessedEvent.idempotency_key == key)
                )
        if status is None:
            return None
        return Claim(key=key, claimed=False, existing_status=IdempotencyStatus(status))

    async def complete(self, key: str, token: Optional[str] = None) -> None:
        stmt = update(ProcessedEvent).where(
            ProcessedEvent.idempotency_key == key,
            ProcessedEvent.status == IdempotencyStatus.PROCESSING.value,
        )
        if token is not None:
            stmt = stmt.where(ProcessedEvent.claim_token == token)
        stmt = stmt.values(
            status=IdempotencyStatus.COMPLETED.value,
            completed_at=self._clock(),
        ).execution_options(synchronize_session=False)
        try:
            async with self._database.session() as session:
                async with session.begin():
                    result = await session.execute(stmt)
        except SQLAlchemyError as e:
            raise IdempotencyStoreError(f"Complete failed for {key}: {e}") from e
        if result.rowcount != 1:
            raise IdempotencyStoreError(f"Claim for {key} was lost before completion")

    async def release(self, key: str, token: Optional[str] = None) -> bool:
        stmt = delete(ProcessedEvent).where(
            ProcessedEvent.idempotency_key == key,
            ProcessedEvent.status == IdempotencyStatus.PROCESSING.value,
        )
        if token is not None:
            stmt = stmt.where(ProcessedEvent.claim_token == token)
        try:
            async with self._database.session() as session:
                async with session.begin():
                    result = await session.execute(stmt.execution_options(synchronize_session=False))
        except SQLAlchemyError as e:
            raise IdempotencyStoreError(f"Release failed for {key}: {e}") from e
        return result.rowcount == 1

    async def get(self, key: str) -> Optional[IdempotencyRecord]:
        async with self._database.session() as session:
            row = await session.scalar(
                select(ProcessedEvent).where(ProcessedEvent.idempotency_key == key)
            )
        if row is None:
            return None
        return IdempotencyRecord(
            idempotency_key=row.idempotency_key,
            consumer=row.consumer,
            status=IdempotencyStatus(row.status),
            processed_at=_aware(row.processed_at),
            completed_at=_aware(row.completed_at),
            claim_token=row.claim_token,
        )

    async def prune(self, older_than: timedelta) -> int:
        cutoff = self._clock() - older_than
        async with self._database.session() as session:
            async with session.begin():
                result = await session.execute(
                    delete(ProcessedEvent)
                    .where(ProcessedEvent.processed_at < cutoff)
                    .execution_options(synchronize_session=False)
                )
        logger.info("idempotency_records_pruned", extra={"deleted": result.rowcount})
        return result.rowcount
