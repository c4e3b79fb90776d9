"""
Query layer for read-only job state access.

Wraps JobRegistry lookups and derives summary views.
All operations are strictly read-only.
"""

from typing import Optional

from fabtrack.jobs.registry import JobRegistry
from fabtrack.workflow.errors import BatchNotFoundError
from fabtrack.workflow.batches import batches_at_stage
from fabtrack.workflow.models import BatchStatus, Job
from fabtrack.workflow.stages import STAGE_SEQUENCE
from fabtrack.workflow.timing import (
    current_stage_elapsed,
    format_time_elapsed,
    is_overdue,
    now_ms,
    time_status,
    total_time_spent,
)
from .models import JobSummary, JobListResponse, StageTiming, JobTimingResponse


def summarize_job(job: Job, now: Optional[int] = None) -> JobSummary:
    by_stage = {stage.value: len(batches_at_stage(job, stage)) for stage in STAGE_SEQUENCE}
    return JobSummary(
        id=job.id,
        code_no=job.code_no,
        customer=job.customer,
        total_qty=job.total_qty,
        current_stage=job.current_stage,
        qc_status=job.qc_status,
        is_completed=job.is_completed,
        dispatch_status=job.dispatch_status,
        last_updated=job.last_updated,
        batch_count=len(job.batches),
        scrapped_qty=sum(b.quantity for b in job.batches if not b.is_active),
        returned_qty=sum(b.quantity for b in job.batches if b.status == BatchStatus.RETURNED),
        batches_by_stage={stage: count for stage, count in by_stage.items() if count},
        overdue=is_overdue(job, now),
    )


def get_job_summaries(registry: JobRegistry) -> JobListResponse:
    """
    Summaries for all jobs, most recently updated first.
    """
    now = now_ms()
    summaries = [summarize_job(job, now) for job in registry.list_jobs()]
    return JobListResponse(jobs=summaries, total_count=len(summaries))


def get_job_detail(registry: JobRegistry, job_id: str) -> dict:
    """
    Raises:
        JobNotFoundError: If the job does not exist
    """
    return registry.get_job_or_raise(job_id).to_wire()


def get_job_history(registry: JobRegistry, job_id: str, batch_id: Optional[str] = None) -> list:
    """
    Job timeline (newest first), or one batch's timeline (oldest first).

    Raises:
        JobNotFoundError: If the job does not exist
        BatchNotFoundError: If batch_id is given and unknown
    """
    job = registry.get_job_or_raise(job_id)
    if batch_id is None:
        return [entry.model_dump(mode="json", by_alias=True) for entry in job.history]

    batch = job.get_batch(batch_id)
    if batch is None:
        raise BatchNotFoundError(job_id, batch_id)
    return [entry.model_dump(mode="json", by_alias=True) for entry in batch.history]


def get_job_timing(registry: JobRegistry, job_id: str, now: Optional[int] = None) -> JobTimingResponse:
    """
    Raises:
        JobNotFoundError: If the job does not exist
    """
    job = registry.get_job_or_raise(job_id)
    reference = now if now is not None else now_ms()
    running = 0 if job.is_completed else current_stage_elapsed(job.current_stage_start_time, reference)
    start = None if job.is_completed else job.current_stage_start_time

    stages = [
        StageTiming(stage=stage, elapsed_ms=job.stage_times[stage], formatted=format_time_elapsed(job.stage_times[stage]))
        for stage in STAGE_SEQUENCE
        if stage in job.stage_times
    ]
    return JobTimingResponse(
        job_id=job.id,
        current_stage=job.current_stage,
        current_stage_elapsed=format_time_elapsed(running),
        current_stage_status=time_status(running),
        total_elapsed=format_time_elapsed(total_time_spent(job.stage_times, start, reference)),
        stages=stages,
    )
