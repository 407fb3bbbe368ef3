"""Schema bootstrap: tables from the ORM metadata plus PostgreSQL row-level security."""

import logging

from sqlalchemy import text

from billing_pipeline.infrastructure.database import models  # noqa: F401  (registers tables)
from billing_pipeline.infrastructure.database.session import Base, Database
from billing_pipeline.infrastructure.database.tenant_scope import TENANT_SETTING

logger = logging.getLogger(__name__)

TENANT_TABLES = ("invoices", "audit_logs")


def row_level_security_ddl(table: str) -> list[str]:
    # current_setting(..., true) yields NULL when unset, so an unscoped
    # session matches no rows instead of erroring or matching everything.
    policy = f"{table}_tenant_isolation"
    predicate = f"tenant_id = current_setting('{TENANT_SETTING}', true)"
    return [
        f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY",
        f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY",
        f"DROP POLICY IF EXISTS {policy} ON {table}",
        f"CREATE POLICY {policy} ON {table} USING ({predicate}) WITH CHECK ({predicate})",
    ]


async def init_schema(database: Database) -> None:
    """Create tables; on PostgreSQL also install tenant isolation policies. Safe to re-run."""
    async with database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if database.dialect_name == "postgresql":
            for table in TENANT_TABLES:
                for statement in row_level_security_ddl(table):
                    await conn.execute(text(statement))
    logger.info("schema_initialized", extra={"dialect": database.dialect_name})
