"""Pydantic schemas for wire formats."""

from billing_pipeline.domain.schemas.event import EventEnvelopeSchema
from billing_pipeline.domain.schemas.operations import BatchResponse, ReplayRequest, ReplayResponse

__all__ = [
    "BatchResponse",
    "EventEnvelopeSchema",
    "ReplayRequest",
    "ReplayResponse",
]
