"""Channels API router: GET /channels (queue and dead-letter depths)."""

from typing import Annotated

from fastapi import APIRouter, Depends

from billing_pipeline.api.dependencies import get_container
from billing_pipeline.core.container import Container

router = APIRouter()


@router.get("")
async def list_channels(container: Annotated[Container, Depends(get_container)]):
    """Depth of every consumer channel and its DLQ. A non-zero DLQ depth needs an operator."""
    channels = []
    for name, registration in sorted(container.registrations.items()):
        channel = container.registry.get(name)
        dlq = container.registry.get(registration.dead_letter_name)
        channels.append(
            {
                "name": name,
                "depth": await channel.depth(),
                "deadLetter": registration.dead_letter_name,
                "deadLetterDepth": await dlq.depth(),
                "batchSize": registration.batch_size,
                "maxReceiveCount": registration.max_receive_count,
                "visibilityTimeout": registration.visibility_timeout,
            }
        )
    return {"channels": channels}
