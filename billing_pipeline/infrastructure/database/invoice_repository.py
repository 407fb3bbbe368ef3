"""Invoice persistence and the parameterised list query used by the billing dashboard."""

import base64
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import Select, and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from billing_pipeline.domain.exceptions import DomainValidationError
from billing_pipeline.domain.models.invoice import InvoiceDraft, InvoiceStatus
from billing_pipeline.infrastructure.database.models import Invoice

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def encode_cursor(created_at: datetime, invoice_id: str) -> str:
    raw = json.dumps({"createdAt": created_at.isoformat(), "id": invoice_id})
    return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")


def decode_cursor(cursor: str) -> Tuple[datetime, str]:
    """Opaque cursor -> (created_at, id). Raises DomainValidationError when malformed."""
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode()))
        return datetime.fromisoformat(data["createdAt"]), str(data["id"])
    except (ValueError, KeyError, TypeError) as e:
        raise DomainValidationError("Invalid pagination cursor") from e


@dataclass(frozen=True)
class InvoiceFilter:
    """Parameter object for listing invoices. Every field is bound, never formatted into SQL."""

    tenant_id: str
    status: Optional[InvoiceStatus] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    limit: int = DEFAULT_LIMIT
    cursor: Optional[str] = None

    def __post_init__(self) -> None:
        if self.created_from and self.created_to and self.created_from > self.created_to:
            raise DomainValidationError("created_from must not be after created_to")

    @property
    def page_size(self) -> int:
        return min(max(self.limit, 1), MAX_LIMIT)


def build_invoice_query(f: InvoiceFilter) -> Select:
    """
    Newest-first keyset query. Fetches page_size + 1 rows so the caller can tell
    whether another page exists without a COUNT.
    """
    conditions = [Invoice.tenant_id == f.tenant_id]
    if f.status is not None:
        conditions.append(Invoice.status == f.status.value)
    if f.created_from is not None:
        conditions.append(Invoice.created_at >= f.created_from)
    if f.created_to is not None:
        conditions.append(Invoice.created_at <= f.created_to)
    if f.cursor:
        created_at, invoice_id = decode_cursor(f.cursor)
        conditions.append(
            or_(
                Invoice.created_at < created_at,
                and_(Invoice.created_at == created_at, Invoice.id < invoice_id),
            )
        )
    return (
        select(Invoice)
        .where(*conditions)
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .limit(f.page_size + 1)
    )


@dataclass
class InvoicePage:
    invoices: List[Invoice] = field(default_factory=list)
    next_cursor: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None


class InvoiceRepository:
    """Invoice reads and writes on a tenant-scoped session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, draft: InvoiceDraft) -> Invoice:
        orm = Invoice(
            tenant_id=draft.tenant_id,
            subscription_id=draft.subscription_id,
            invoice_number=draft.invoice_number,
            status=draft.status.value,
            amount=draft.amount,
            currency=draft.currency,
            line_items=[item.to_dict() for item in draft.line_items],
            due_date=draft.due_date,
        )
        self._session.add(orm)
        await self._session.flush()
        return orm

    async def list(self, f: InvoiceFilter) -> InvoicePage:
        result = await self._session.execute(build_invoice_query(f))
        rows = list(result.scalars().all())
        if len(rows) <= f.page_size:
            return InvoicePage(invoices=rows)
        rows = rows[: f.page_size]
        last = rows[-1]
        return InvoicePage(invoices=rows, next_cursor=encode_cursor(last.created_at, last.id))

    async def for_subscription(self, subscription_id: str) -> List[Invoice]:
        result = await self._session.execute(
            select(Invoice).where(Invoice.subscription_id == subscription_id)
        )
        return list(result.scalars().all())
