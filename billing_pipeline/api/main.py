# billing_pipeline/api/main.py

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from billing_pipeline.api.middleware import AuditTriggerMiddleware, CorrelationIdMiddleware
from billing_pipeline.api.routers import channels, dlq, health
from billing_pipeline.application.exceptions import (
    ApplicationError,
    ConfigurationError,
    MessagingFailureError,
    ReplayError,
)
from billing_pipeline.config.logging import configure_logging
from billing_pipeline.config.settings import get_settings
from billing_pipeline.core.container import Container
from billing_pipeline.domain.exceptions import DomainError, DomainValidationError

logger = logging.getLogger(__name__)


def create_app(container: Optional[Container] = None) -> FastAPI:
    """
    Admin app. With no container given, one is built from settings at startup
    and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "container", None) is None
        if owned:
            settings = get_settings()
            configure_logging(settings.log_level)
            app.state.container = await Container(settings).start()
        try:
            yield
        finally:
            if owned:
                await app.state.container.close()

    app = FastAPI(title="billing-pipeline admin", lifespan=lifespan)
    if container is not None:
        app.state.container = container

    # Middleware order: last added runs first (outermost). Request flow: CorrelationId -> AuditTrigger.
    app.add_middleware(AuditTriggerMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    @app.exception_handler(DomainValidationError)
    async def domain_validation_error_handler(request, exc: DomainValidationError):
        return JSONResponse(status_code=422, content={"detail": exc.message})

    @app.exception_handler(DomainError)
    async def domain_error_handler(request, exc: DomainError):
        return JSONResponse(status_code=400, content={"detail": exc.message})

    @app.exception_handler(ReplayError)
    async def replay_error_handler(request, exc: ReplayError):
        return JSONResponse(status_code=400, content={"detail": exc.message})

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request, exc: ConfigurationError):
        return JSONResponse(status_code=400, content={"detail": exc.message})

    @app.exception_handler(MessagingFailureError)
    async def messaging_failure_error_handler(request, exc: MessagingFailureError):
        return JSONResponse(status_code=503, content={"detail": exc.message})

    @app.exception_handler(ApplicationError)
    async def application_error_handler(request, exc: ApplicationError):
        return JSONResponse(status_code=500, content={"detail": exc.message})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request, exc: Exception):
        logger.error("unhandled_error", extra={"path": request.url.path, "error": str(exc)})
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    # Routers: /health, /channels, /dlq
    app.include_router(health.router)
    app.include_router(channels.router, prefix="/channels")
    app.include_router(dlq.router, prefix="/dlq")
    return app
