"""audit-log: append-only trail entry with the full payload snapshot."""

import logging

from billing_pipeline.application.handlers.base import HandlerContext
from billing_pipeline.infrastructure.database.models import AuditLog

logger = logging.getLogger(__name__)

ENTITY_TYPE = "subscription"


class AuditLogHandler:
    async def __call__(self, ctx: HandlerContext) -> None:
        event = ctx.event
        entry = AuditLog(
            tenant_id=event.tenant_id,
            event_type=event.event_type.value,
            entity_type=ENTITY_TYPE,
            entity_id=event.subscription_id,
            actor_id=event.user_id,
            # Snapshot as delivered, so later changes to the subscription do not rewrite history.
            payload=dict(ctx.payload),
            source_message_id=ctx.message_id,
            created_at=event.timestamp,
        )
        session = ctx.require_session()
        session.add(entry)
        await session.flush()
        logger.info(
            "audit_log_written",
            extra={"audit_id": entry.id, "entity_type": ENTITY_TYPE, "entity_id": event.subscription_id},
        )
