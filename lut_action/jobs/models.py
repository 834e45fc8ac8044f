"""Job record data model for LUT application jobs."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field
import uuid

from lut_action.media.filters import LUTApplicationOptions


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStage(str, Enum):
    DOWNLOADING = "downloading"
    PROCESSING = "processing"
    UPLOADING = "uploading"
    COMPLETING = "completing"


class LUTJobRequest(BaseModel):
    """What to grade, with which LUT, on whose behalf."""
    asset_id: str
    lut_id: str
    requested_by: str
    account_id: str
    workspace_id: Optional[str] = None
    idempotency_key: str
    source_version_id: Optional[str] = None
    options: LUTApplicationOptions = Field(default_factory=LUTApplicationOptions)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class JobProgress(BaseModel):
    percent: float = 0.0
    stage: Optional[JobStage] = None
    message: str = ""
    fps: Optional[float] = None
    elapsed: Optional[float] = None


class JobResult(BaseModel):
    output_asset_id: str
    output_version_id: Optional[str] = None
    duration_ms: int
    input_properties: Dict[str, Any] = Field(default_factory=dict)
    output_properties: Dict[str, Any] = Field(default_factory=dict)
    lut_applied: Dict[str, Any] = Field(default_factory=dict)


class JobError(BaseModel):
    code: str
    message: str
    retryable: bool = False
    details: Dict[str, Any] = Field(default_factory=dict)


class JobRecord(BaseModel):
    """Tracks the lifecycle of one LUT job."""
    id: str = Field(default_factory=lambda: f"job_{uuid.uuid4()}")
    request: LUTJobRequest
    status: JobStatus = JobStatus.PENDING
    progress: JobProgress = Field(default_factory=JobProgress)
    result: Optional[JobResult] = None
    error: Optional[JobError] = None
    attempts: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)
