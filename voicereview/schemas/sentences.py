"""
Pydantic schemas for sentence availability and recording submission.
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
import uuid


class AvailableSentencesResponse(BaseModel):
    user_id: uuid.UUID
    sentences: list[str]
    count: int


class RecordingSubmitRequest(BaseModel):
    """Metadata for a recording whose audio is stored elsewhere."""
    user_id: uuid.UUID
    sentence: str = Field(min_length=1)
    duration_seconds: float = Field(ge=0)
    language: Optional[str] = None


class RecordingSubmitResponse(BaseModel):
    recording_id: uuid.UUID
    user_id: uuid.UUID
    sentence: str
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}
