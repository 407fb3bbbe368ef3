# billing_pipeline/api/routers/health.py

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from billing_pipeline.api.dependencies import get_container
from billing_pipeline.core.container import Container

router = APIRouter()


@router.get("/health")
async def health(request: Request, container: Annotated[Container, Depends(get_container)]):
    """Liveness plus the consumers this process serves."""
    settings = container.settings
    return {
        "status": "ok",
        "correlation_id": request.state.correlation_id,
        "environment": settings.environment,
        "version": settings.version,
        "channel_backend": settings.channel_backend,
        "consumers": sorted(container.registrations),
    }
