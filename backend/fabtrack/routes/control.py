"""
Control endpoints for explicit operator actions.

HTTP adapter over the workflow engine. Every endpoint runs exactly one
engine operation through the JobRegistry, which serialises writes per job.

Status codes:
- 404: unknown job or batch
- 409: the operation did not apply to the job's current state
- 500: invariant violation or storage failure
"""

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field
from typing import Callable, Optional
import logging

from fabtrack.persistence.errors import PersistenceError
from fabtrack.workflow import batches, dispatch, engine, returns
from fabtrack.workflow.errors import (
    BatchNotFoundError,
    JobNotFoundError,
    TransitionNotApplicableError,
)
from fabtrack.workflow.invariants import InvariantViolation
from fabtrack.workflow.models import BatchStatus, Job, JobPriority, Stage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/control", tags=["control"])


# ============================================================================
# REQUEST / RESPONSE MODELS
# ============================================================================

class CreateJobRequest(BaseModel):
    """Request body for creating a job order."""

    model_config = ConfigDict(extra="forbid")

    code_no: str
    customer: str
    total_qty: int = Field(gt=0)
    description: str = ""
    user: str = "system"
    sr_no: Optional[int] = None
    priority: Optional[JobPriority] = None
    max_completion_time: Optional[int] = Field(default=None, gt=0)  # days


class UserRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user: str


class ReasonRequest(UserRequest):
    reason: str


class DispatchReadyRequest(UserRequest):
    vehicle_number: Optional[str] = None
    challan_number: Optional[str] = None
    invoice_number: Optional[str] = None
    dispatcher_name: Optional[str] = None


class InvoiceRequest(UserRequest):
    invoice_number: str
    amount: float


class BatchStatusRequest(UserRequest):
    status: BatchStatus
    reason: Optional[str] = None


class SplitBatchRequest(UserRequest):
    done_qty: int


class CustomerReturnRequest(UserRequest):
    return_qty: int
    reason: str
    origin_stage: Stage


class ReprocessReturnRequest(UserRequest):
    target_stage: Stage


class OperationResponse(BaseModel):
    """Result of a control operation. `job` is the wire-format job document."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    message: str
    job: dict


# ============================================================================
# HELPERS
# ============================================================================

def _run(
    request: Request,
    job_id: str,
    operation: Callable[..., Job],
    *args,
    batch_id: Optional[str] = None,
    **kwargs,
) -> OperationResponse:
    """
    Apply one engine operation and translate the outcome to HTTP.

    Raises:
        HTTPException: 404 / 409 / 500 as documented in the module docstring
    """
    registry = request.app.state.job_registry
    name = operation.__name__

    try:
        if batch_id is not None:
            job = registry.get_job_or_raise(job_id)
            if job.get_batch(batch_id) is None:
                raise BatchNotFoundError(job_id, batch_id)
            args = (batch_id, *args)

        result, changed = registry.apply(job_id, operation, *args, **kwargs)
        if not changed:
            raise TransitionNotApplicableError(job_id, name, f"not valid from {result.current_stage.value}")

    except (JobNotFoundError, BatchNotFoundError) as e:
        logger.warning(f"{name} rejected: {e}")
        raise HTTPException(status_code=404, detail=str(e))
    except TransitionNotApplicableError as e:
        logger.warning(f"{name} not applied: {e}")
        raise HTTPException(status_code=409, detail=str(e))
    except InvariantViolation as e:
        logger.error(f"{name} on job {job_id} broke an invariant: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    except PersistenceError as e:
        logger.error(f"{name} on job {job_id} could not be saved: {e}")
        raise HTTPException(status_code=500, detail=f"Storage failure: {e}")

    logger.info(f"Job {job_id}: {name} applied via control endpoint")
    return OperationResponse(
        success=True,
        message=f"{name} applied to job {job_id}",
        job=result.to_wire(),
    )


# ============================================================================
# JOB LIFECYCLE
# ============================================================================

@router.post("/jobs", response_model=OperationResponse, status_code=201)
async def create_job_endpoint(body: CreateJobRequest, request: Request):
    """
    Create a job order at DESIGN.

    Raises:
        409: A job with the same id already exists
        500: Storage failure
    """
    registry = request.app.state.job_registry
    fields = {}
    if body.sr_no is not None:
        fields["sr_no"] = body.sr_no
    if body.priority is not None:
        fields["priority"] = body.priority
    if body.max_completion_time is not None:
        fields["max_completion_time"] = body.max_completion_time

    job = Job.create(
        code_no=body.code_no,
        customer=body.customer,
        total_qty=body.total_qty,
        description=body.description,
        user=body.user,
        **fields,
    )

    try:
        registry.add_job(job)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceError as e:
        logger.error(f"Failed to store new job {job.id}: {e}")
        raise HTTPException(status_code=500, detail=f"Storage failure: {e}")

    logger.info(f"Job {job.id} ({job.code_no}) created via control endpoint")
    return OperationResponse(success=True, message=f"Job {job.id} created", job=job.to_wire())


@router.delete("/jobs/{job_id}", response_model=OperationResponse)
async def delete_job_endpoint(job_id: str, request: Request):
    """
    Remove a job and its stored audit trail.

    Raises:
        404: Job not found
    """
    registry = request.app.state.job_registry
    try:
        job = registry.get_job_or_raise(job_id)
        registry.remove_job(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    logger.info(f"Job {job_id} deleted via control endpoint")
    return OperationResponse(success=True, message=f"Job {job_id} deleted", job=job.to_wire())


@router.post("/jobs/{job_id}/start", response_model=OperationResponse)
async def start_stage_endpoint(job_id: str, body: UserRequest, request: Request):
    return _run(request, job_id, engine.start_stage, body.user)


@router.post("/jobs/{job_id}/pause", response_model=OperationResponse)
async def pause_stage_endpoint(job_id: str, body: UserRequest, request: Request):
    return _run(request, job_id, engine.pause_stage, body.user)


@router.post("/jobs/{job_id}/complete", response_model=OperationResponse)
async def complete_stage_endpoint(job_id: str, body: UserRequest, request: Request):
    """
    Mark the current stage's work done.

    At DISPATCH this completes the job; otherwise the stage waits for QC.
    """
    return _run(request, job_id, engine.complete_stage, body.user)


@router.post("/jobs/{job_id}/approve-qc", response_model=OperationResponse)
async def approve_qc_endpoint(job_id: str, body: UserRequest, request: Request):
    return _run(request, job_id, engine.approve_qc, body.user)


@router.post("/jobs/{job_id}/reject-qc", response_model=OperationResponse)
async def reject_qc_endpoint(job_id: str, body: ReasonRequest, request: Request):
    return _run(request, job_id, engine.reject_qc, body.user, body.reason)


@router.post("/jobs/{job_id}/skip", response_model=OperationResponse)
async def skip_stage_endpoint(job_id: str, body: ReasonRequest, request: Request):
    return _run(request, job_id, engine.skip_stage, body.user, body.reason)


# ============================================================================
# DISPATCH
# ============================================================================

@router.post("/jobs/{job_id}/dispatch-ready", response_model=OperationResponse)
async def dispatch_ready_endpoint(job_id: str, body: DispatchReadyRequest, request: Request):
    return _run(
        request, job_id, dispatch.mark_dispatch_ready, body.user,
        vehicle_number=body.vehicle_number,
        challan_number=body.challan_number,
        invoice_number=body.invoice_number,
        dispatcher_name=body.dispatcher_name,
    )


@router.post("/jobs/{job_id}/dispatch", response_model=OperationResponse)
async def dispatch_endpoint(job_id: str, body: UserRequest, request: Request):
    return _run(request, job_id, dispatch.dispatch_job, body.user)


@router.post("/jobs/{job_id}/invoice", response_model=OperationResponse)
async def invoice_endpoint(job_id: str, body: InvoiceRequest, request: Request):
    return _run(request, job_id, dispatch.generate_invoice, body.user, body.invoice_number, body.amount)


@router.post("/jobs/{job_id}/payment", response_model=OperationResponse)
async def payment_endpoint(job_id: str, body: UserRequest, request: Request):
    return _run(request, job_id, dispatch.record_payment, body.user)


@router.post("/jobs/{job_id}/close", response_model=OperationResponse)
async def close_endpoint(job_id: str, body: UserRequest, request: Request):
    return _run(request, job_id, dispatch.close_order, body.user)


# ============================================================================
# BATCHES
# ============================================================================

@router.post("/jobs/{job_id}/batches/init", response_model=OperationResponse)
async def init_batches_endpoint(job_id: str, request: Request):
    """Create B1 with the full quantity. 409 when batches already exist."""
    return _run(request, job_id, batches.initialize_batches)


@router.post("/jobs/{job_id}/batches/{batch_id}/status", response_model=OperationResponse)
async def batch_status_endpoint(job_id: str, batch_id: str, body: BatchStatusRequest, request: Request):
    return _run(
        request, job_id, batches.update_batch_status, body.status, body.user,
        batch_id=batch_id, reason=body.reason,
    )


@router.post("/jobs/{job_id}/batches/{batch_id}/complete", response_model=OperationResponse)
async def batch_complete_endpoint(job_id: str, batch_id: str, body: UserRequest, request: Request):
    return _run(request, job_id, batches.complete_batch_work, body.user, batch_id=batch_id)


@router.post("/jobs/{job_id}/batches/{batch_id}/reprocess", response_model=OperationResponse)
async def batch_reprocess_endpoint(job_id: str, batch_id: str, body: UserRequest, request: Request):
    return _run(request, job_id, batches.reprocess_batch, body.user, batch_id=batch_id)


@router.post("/jobs/{job_id}/batches/{batch_id}/split", response_model=OperationResponse)
async def batch_split_endpoint(job_id: str, batch_id: str, body: SplitBatchRequest, request: Request):
    """
    Split off `done_qty` units as COMPLETED; the rest becomes a new
    PENDING batch at the same stage.
    """
    return _run(request, job_id, batches.split_batch, body.done_qty, body.user, batch_id=batch_id)


@router.post("/jobs/{job_id}/batches/{batch_id}/move", response_model=OperationResponse)
async def batch_move_endpoint(job_id: str, batch_id: str, body: UserRequest, request: Request):
    return _run(request, job_id, batches.move_batch_to_next_stage, body.user, batch_id=batch_id)


# ============================================================================
# RETURNS & SCRAP
# ============================================================================

@router.post("/jobs/{job_id}/batches/{batch_id}/return", response_model=OperationResponse)
async def batch_return_endpoint(job_id: str, batch_id: str, body: CustomerReturnRequest, request: Request):
    return _run(
        request, job_id, returns.handle_customer_return,
        body.return_qty, body.reason, body.origin_stage, body.user,
        batch_id=batch_id,
    )


@router.post("/jobs/{job_id}/batches/{batch_id}/reprocess-return", response_model=OperationResponse)
async def batch_reprocess_return_endpoint(
    job_id: str, batch_id: str, body: ReprocessReturnRequest, request: Request
):
    return _run(
        request, job_id, returns.reprocess_return_batch, body.target_stage, body.user,
        batch_id=batch_id,
    )


@router.post("/jobs/{job_id}/batches/{batch_id}/scrap", response_model=OperationResponse)
async def batch_scrap_endpoint(job_id: str, batch_id: str, body: ReasonRequest, request: Request):
    return _run(request, job_id, returns.scrap_batch, body.reason, body.user, batch_id=batch_id)
