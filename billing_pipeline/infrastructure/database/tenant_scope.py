"""Tenant-scoped execution context: one transaction, one tenant, nothing left behind on the pooled connection."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from billing_pipeline.core.context import tenant_id_ctx
from billing_pipeline.domain.validators.event_validator import validate_tenant_id
from billing_pipeline.infrastructure.database.session import Database
from billing_pipeline.infrastructure.database.tenancy import bind_tenant

logger = logging.getLogger(__name__)

T = TypeVar("T")

TENANT_SETTING = "app.tenant_id"


class TenantScope:
    """
    Runs a unit of work confined to one tenant's partition.

    Layer one: the session carries the tenant (ORM guard in tenancy.py) and, on
    PostgreSQL, `set_config('app.tenant_id', ..., true)` sets a transaction-local
    variable that is discarded on commit or rollback, so a pooled connection never
    carries it into its next checkout.
    Layer two: row-level security policies filter on that variable in the database.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    @asynccontextmanager
    async def session(self, tenant_id: str) -> AsyncIterator[AsyncSession]:
        """Session inside a transaction scoped to tenant_id. Commits on success, rolls back on error."""
        validate_tenant_id(tenant_id)
        token = tenant_id_ctx.set(tenant_id)
        try:
            async with self._database.session() as session:
                async with session.begin():
                    bind_tenant(session, tenant_id)
                    if self._database.dialect_name == "postgresql":
                        await session.execute(
                            text("SELECT set_config(:name, :tenant_id, true)"),
                            {"name": TENANT_SETTING, "tenant_id": tenant_id},
                        )
                    yield session
        finally:
            tenant_id_ctx.reset(token)

    async def run(self, tenant_id: str, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Execute fn(session) inside the tenant scope and return its result."""
        async with self.session(tenant_id) as session:
            return await fn(session)

    with_tenant = run
