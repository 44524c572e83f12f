"""
Job run schemas.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from commonmeal.models.enums import JobStatus, JobType


class JobTrigger(BaseModel):
    job_type: JobType
    arguments: List[str] = Field(default_factory=list)
    triggered_by: str = "ADMIN"


class JobRunResponse(BaseModel):
    id: int
    job_type: JobType
    status: JobStatus
    started_at: datetime
    completed_at: Optional[datetime]
    duration_ms: Optional[int]
    result_summary: Optional[Dict[str, Any]]
    error_message: Optional[str]
    triggered_by: str

    model_config = ConfigDict(from_attributes=True)


class JobRunListResponse(BaseModel):
    runs: List[JobRunResponse]
    total: int
