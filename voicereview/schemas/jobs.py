"""
Pydantic schemas for audit job endpoints.
"""

from pydantic import BaseModel
from typing import Any, Optional
from datetime import datetime


class AuditJobRequest(BaseModel):
    dry_run: bool = False
    reset_unbacked: bool = False
    delay_seconds: Optional[int] = None


class AuditJobQueued(BaseModel):
    job_id: str
    message: str = "Audit queued"


class JobStatus(BaseModel):
    job_id: str
    status: str
    enqueued_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    error_message: Optional[str] = None
    result: Optional[Any] = None
