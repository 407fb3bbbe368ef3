# billing_pipeline/infrastructure/database/session.py

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from billing_pipeline.config.settings import AppSettings
from billing_pipeline.infrastructure.database.tenancy import TenantAwareSession

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """
    Explicitly constructed connection-pool handle. Built once per process by the
    container and passed to every component that needs it; nothing holds it at
    module scope.

    Lifecycle: construct -> session() per unit of work -> dispose() on shutdown.
    The pool is small and does not overflow, so exhaustion makes callers wait
    up to pool_timeout instead of opening more connections.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self.sessionmaker = async_sessionmaker(
            bind=engine,
            expire_on_commit=False,
            autoflush=False,
            class_=AsyncSession,
            sync_session_class=TenantAwareSession,
        )

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        pool_size: int = 2,
        pool_timeout: float = 5.0,
        statement_timeout_ms: Optional[int] = None,
        **engine_kwargs: Any,
    ) -> "Database":
        kwargs: dict[str, Any] = {"echo": False, "pool_pre_ping": True, **engine_kwargs}
        if not url.startswith("sqlite"):
            kwargs.setdefault("pool_size", pool_size)
            kwargs.setdefault("max_overflow", 0)
            kwargs.setdefault("pool_timeout", pool_timeout)
        if statement_timeout_ms and url.startswith("postgresql+asyncpg"):
            kwargs.setdefault(
                "connect_args",
                {"server_settings": {"statement_timeout": str(statement_timeout_ms)}},
            )
        engine = create_async_engine(url, **kwargs)
        logger.info(
            "connection_pool_created",
            extra={"dialect": engine.dialect.name, "pool_size": pool_size},
        )
        return cls(engine)

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "Database":
        return cls.from_url(
            settings.database_url,
            pool_size=settings.db_pool_size,
            pool_timeout=settings.db_pool_timeout,
            statement_timeout_ms=settings.db_statement_timeout_ms,
        )

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def session(self) -> AsyncSession:
        """New session; use as `async with database.session() as session`."""
        return self.sessionmaker()

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("connection_pool_closed")
