"""
Response models for monitoring API.

All responses are read-only views of job state.
Job detail is returned in the wire shape (camelCase) so clients can
consume it exactly as they consume broadcast updates.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict

from fabtrack.workflow.models import DispatchStatus, QCStatus, Stage


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    model_config = ConfigDict(extra="forbid")

    status: str = "ok"


class JobSummary(BaseModel):
    """
    Summary view of a job for list endpoints.

    Batch counts are grouped by stage for routable batches only.
    """

    model_config = ConfigDict(extra="forbid")

    # Identity
    id: str
    code_no: str
    customer: str
    total_qty: int

    # State
    current_stage: Stage
    qc_status: QCStatus
    is_completed: bool
    dispatch_status: Optional[DispatchStatus] = None
    last_updated: int

    # Progress summary
    batch_count: int
    scrapped_qty: int
    returned_qty: int
    batches_by_stage: Dict[str, int]
    overdue: bool


class JobListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    jobs: List[JobSummary]
    total_count: int


class StageTiming(BaseModel):
    model_config = ConfigDict(extra="forbid")

    stage: Stage
    elapsed_ms: int
    formatted: str


class JobTimingResponse(BaseModel):
    """Time spent per stage plus the running current stage."""

    model_config = ConfigDict(extra="forbid")

    job_id: str
    current_stage: Stage
    current_stage_elapsed: str
    current_stage_status: str
    total_elapsed: str
    stages: List[StageTiming]
