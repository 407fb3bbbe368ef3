"""DLQ API router: POST /dlq/replay. Operator action, never triggered by the pipeline."""

from typing import Annotated

from fastapi import APIRouter, Depends

from billing_pipeline.api.dependencies import get_reprocessor
from billing_pipeline.application.dlq_reprocessor import DeadLetterReprocessor
from billing_pipeline.domain.schemas.operations import ReplayRequest, ReplayResponse

router = APIRouter()


@router.post("/replay", response_model=ReplayResponse, response_model_by_alias=True)
async def replay(
    body: ReplayRequest,
    reprocessor: Annotated[DeadLetterReprocessor, Depends(get_reprocessor)],
):
    """Re-send up to maxMessages dead-lettered messages to targetChannelRef."""
    result = await reprocessor.replay(
        body.dlq_ref,
        body.target_channel_ref,
        max_messages=body.max_messages,
    )
    return result.to_response()
