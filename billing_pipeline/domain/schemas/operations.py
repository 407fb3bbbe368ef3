"""Schemas for consumer-to-channel batch responses and operator replay requests."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BatchResponse(_CamelModel):
    """Ids omitted from failed_message_ids are treated as fully acknowledged."""

    failed_message_ids: List[str] = Field(default_factory=list)


class ReplayRequest(_CamelModel):
    """Operator invocation of the dead-letter reprocessor."""

    dlq_ref: str = Field(..., min_length=1, description="Dead-letter channel identifier")
    target_channel_ref: str = Field(..., min_length=1, description="Channel to re-publish onto")
    max_messages: Optional[int] = Field(None, ge=1, description="Upper bound on messages replayed")


class ReplayResponse(_CamelModel):
    total_processed: int
    total_replayed: int
    total_failed: int
    remaining: Optional[int] = None
