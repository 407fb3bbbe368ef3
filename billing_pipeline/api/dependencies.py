"""FastAPI dependency injection: process container and the components built from it."""

from typing import Annotated

from fastapi import Depends, Request

from billing_pipeline.application.dlq_reprocessor import DeadLetterReprocessor
from billing_pipeline.core.container import Container


def get_container(request: Request) -> Container:
    """Return the container attached to the app at startup."""
    return request.app.state.container


def get_reprocessor(
    container: Annotated[Container, Depends(get_container)],
) -> DeadLetterReprocessor:
    return container.reprocessor()


def get_correlation_id(request: Request) -> str:
    """Extract correlation_id from request.state (set by middleware)."""
    return getattr(request.state, "correlation_id", "") or ""
