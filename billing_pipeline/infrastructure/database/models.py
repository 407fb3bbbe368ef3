# billing_pipeline/infrastructure/database/models.py

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB

from billing_pipeline.infrastructure.database.session import Base
from billing_pipeline.infrastructure.database.tenancy import TenantScoped

JsonColumn = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


class TenantModel(TenantScoped, Base):
    __abstract__ = True

    id = Column(String(36), primary_key=True, default=_uuid)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

class Invoice(TenantModel):
    """Draft/issued invoice for a subscription billing period. Row-level security on tenant_id."""

    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_number", name="invoices_number_unique"),
        CheckConstraint("amount >= 0", name="invoices_amount_positive"),
        Index("idx_invoices_pagination", "tenant_id", "created_at", "id"),
    )

    subscription_id = Column(String(64), nullable=True, index=True)
    invoice_number = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default="draft")
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="usd")
    line_items = Column(JsonColumn, nullable=False, default=list)
    due_date = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=_utcnow)


class AuditLog(TenantModel):
    """Append-only audit trail with the full event payload snapshot."""

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_audit_logs_tenant_time", "tenant_id", "created_at"),
        Index("idx_audit_logs_entity", "entity_type", "entity_id"),
    )

    event_type = Column(String(100), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(64), nullable=True)
    actor_id = Column(String(64), nullable=True)
    payload = Column(JsonColumn, nullable=False, default=dict)
    source_message_id = Column(String(255), nullable=True)


class ProcessedEvent(Base):
    """Idempotency ledger. System table: keyed by consumer, not by tenant, so no row-level security."""

    __tablename__ = "processed_events"
    __table_args__ = (
        UniqueConstraint("idempotency_key", name="processed_events_key_unique"),
        CheckConstraint(
            "status IN ('processing', 'completed', 'failed')",
            name="processed_events_status_check",
        ),
    )

    id = Column(BigInteger().with_variant(Integer(), "sqlite"), primary_key=True, autoincrement=True)
    idempotency_key = Column(String(512), nullable=False)
    consumer = Column(String(100), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="processing", index=True)
    claim_token = Column(String(36), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
