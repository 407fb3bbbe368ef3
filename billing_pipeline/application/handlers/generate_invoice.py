"""generate-invoice: issue the first-period invoice for a new subscription."""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from billing_pipeline.application.handlers.base import HandlerContext
from billing_pipeline.domain.models.invoice import invoice_for_subscription
from billing_pipeline.infrastructure.database.invoice_repository import InvoiceRepository
from billing_pipeline.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)


class GenerateInvoiceHandler:
    """
    Inserts one issued invoice inside the tenant scope. The unique
    (tenant_id, invoice_number) constraint backs the idempotency claim.
    """

    def __init__(
        self,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._metrics = metrics
        self._clock = clock

    async def __call__(self, ctx: HandlerContext) -> None:
        event = ctx.event
        started = self._clock()
        draft = invoice_for_subscription(event, now=started)
        invoice = await InvoiceRepository(ctx.require_session()).add(draft)

        elapsed_ms = (self._clock() - started).total_seconds() * 1000
        if self._metrics is not None:
            self._metrics.put_metric(
                "invoice_amount",
                float(event.amount),
                unit="Count",
                dimensions={"tenant_id": event.tenant_id, "plan_id": event.plan_id},
            )
            self._metrics.observe_latency("invoice_generation", elapsed_ms, plan_id=event.plan_id)
        logger.info(
            "invoice_generated",
            extra={
                "invoice_id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "subscription_id": event.subscription_id,
                "amount": str(event.amount),
                "due_date": draft.due_date.isoformat(),
            },
        )
