"""
Job-level transition engine.

Advances a Job through its stages and enforces the Job-level QC gate:

    start -> complete -> (READY_FOR_QC) -> approve -> next stage
                                        -> reject  -> rework same stage
    skip  -> next stage, no QC gate

Every function takes the current Job and returns a new Job carrying
exactly one new history entry. None of them raise; a missing stage record
is synthesised as PENDING before it is written.

The Job passed in is never modified.
"""

import logging
from typing import Dict, Optional

from .batches import create_initial_batch
from .history import make_entry, prepend_job_history
from .models import (
    Job,
    JobAction,
    QCStatus,
    Stage,
    StageStatus,
    StageWorkStatus,
)
from .stages import (
    LAST_STAGE,
    SKIPPABLE_STAGES,
    is_production_stage,
    is_terminal,
    next_stage,
)
from .timing import current_stage_elapsed, now_ms

logger = logging.getLogger(__name__)


# ============================================================================
# Internal helpers
# ============================================================================

def _stage_record(job: Job, stage: Stage) -> StageStatus:
    return job.stage_status.get(stage) or StageStatus()


def _with_stage_record(job: Job, stage: Stage, record: StageStatus) -> Dict[Stage, StageStatus]:
    updated = dict(job.stage_status)
    updated[stage] = record
    return updated


def _close_stage_timer(job: Job, timestamp: int) -> Dict[Stage, int]:
    """Add the time spent in the current stage to stage_times."""
    stage_times = dict(job.stage_times)
    elapsed = current_stage_elapsed(job.current_stage_start_time, timestamp)
    stage_times[job.current_stage] = stage_times.get(job.current_stage, 0) + elapsed
    return stage_times


def _leave_stage(job: Job, target, timestamp: int) -> dict:
    """
    Field updates for leaving the current stage towards `target`.

    `target` is a Stage or STAGE_COMPLETED. Leaving DESIGN for a production
    stage creates the first batch when the job has none.
    """
    updates = {"stage_times": _close_stage_timer(job, timestamp)}

    if is_terminal(target):
        updates["is_completed"] = True
        updates["current_stage_start_time"] = None
        return updates

    updates["current_stage"] = target
    updates["current_stage_start_time"] = timestamp

    if not job.batches and is_production_stage(target) and job.total_qty > 0:
        first = create_initial_batch(job, now=timestamp)
        updates["batches"] = [b.model_copy(update={"stage": target}) for b in first]
        logger.info(f"[WORKFLOW] Job {job.id}: created {first[0].id} ({job.total_qty} units) at {target.value}")

    return updates


def _commit(job: Job, action: JobAction, user: str, details: str, timestamp: int, **updates) -> Job:
    """Build the next Job value with one new history entry."""
    entry = make_entry(job.id, action, job.current_stage, user, timestamp, details)
    updates["history"] = prepend_job_history(job.history, entry)
    updates["last_updated"] = timestamp
    return job.model_copy(update=updates)


# ============================================================================
# Transitions
# ============================================================================

def start_stage(job: Job, user: str, now: Optional[int] = None) -> Job:
    """
    Start work on the current stage.

    Marks the stage record IN_PROGRESS, stamps its start time and appends
    the acting user to assigned_workers. Calling twice appends the same
    user twice.
    """
    timestamp = now if now is not None else now_ms()
    existing = _stage_record(job, job.current_stage)
    record = existing.model_copy(update={
        "status": StageWorkStatus.IN_PROGRESS,
        "start_time": timestamp,
        "assigned_workers": [*existing.assigned_workers, user],
    })

    logger.info(f"[WORKFLOW] Job {job.id}: {user} started {job.current_stage.value}")
    return _commit(
        job, JobAction.START, user, f"Started {job.current_stage.value}", timestamp,
        stage_status=_with_stage_record(job, job.current_stage, record),
    )


def pause_stage(job: Job, user: str, now: Optional[int] = None) -> Job:
    """Record a pause. The stage record is left as it is."""
    timestamp = now if now is not None else now_ms()
    logger.info(f"[WORKFLOW] Job {job.id}: {user} paused {job.current_stage.value}")
    return _commit(job, JobAction.PAUSE, user, f"Paused {job.current_stage.value}", timestamp)


def complete_stage(job: Job, user: str, now: Optional[int] = None) -> Job:
    """
    Finish work on the current stage.

    At DISPATCH the job becomes completed (terminal). At any other stage
    the job waits for QC: qc_status becomes READY_FOR_QC and the stage
    does not advance until approve_qc() is called.
    """
    timestamp = now if now is not None else now_ms()
    existing = _stage_record(job, job.current_stage)
    record = existing.model_copy(update={
        "status": StageWorkStatus.COMPLETED,
        "end_time": timestamp,
    })
    stage_status = _with_stage_record(job, job.current_stage, record)

    if job.current_stage == LAST_STAGE:
        logger.info(f"[WORKFLOW] Job {job.id}: dispatched and completed by {user}")
        return _commit(
            job, JobAction.COMPLETE, user, "Job Dispatched & Completed", timestamp,
            stage_status=stage_status,
            is_completed=True,
        )

    logger.info(f"[WORKFLOW] Job {job.id}: {job.current_stage.value} completed, awaiting QC")
    return _commit(
        job, JobAction.COMPLETE, user,
        f"Completed work in {job.current_stage.value}, awaiting QC", timestamp,
        stage_status=stage_status,
        qc_status=QCStatus.READY_FOR_QC,
    )


def approve_qc(job: Job, user: str, now: Optional[int] = None) -> Job:
    """
    Approve QC for the current stage and advance.

    The approval is recorded on the current stage record (qc_by, qc_date).
    If no stage remains the job is completed and current_stage stays where
    it is; otherwise the job moves to the next stage with a fresh PENDING
    gate.

    Args:
        job: Job whose current stage passed QC
        user: Approving inspector
        now: Optional clock override in milliseconds

    Returns:
        The advanced Job
    """
    timestamp = now if now is not None else now_ms()
    target = next_stage(job.current_stage, job.skipped_stages)

    existing = _stage_record(job, job.current_stage)
    record = existing.model_copy(update={
        "qc_status": QCStatus.APPROVED,
        "qc_by": user,
        "qc_date": timestamp,
    })

    if is_terminal(target):
        details = "Job Completed"
    else:
        details = f"Moved to {target.value}"

    logger.info(f"[WORKFLOW] Job {job.id}: QC approved at {job.current_stage.value} by {user}, {details}")
    return _commit(
        job, JobAction.QC_APPROVE, user, details, timestamp,
        stage_status=_with_stage_record(job, job.current_stage, record),
        qc_status=QCStatus.PENDING,
        **_leave_stage(job, target, timestamp),
    )


def reject_qc(job: Job, user: str, reason: str, now: Optional[int] = None) -> Job:
    """
    Reject QC for the current stage.

    The stage never advances. The stage record and the job's qc_status go
    back to PENDING so the stage shows up as active rework, and the reason
    is kept on the job.
    """
    timestamp = now if now is not None else now_ms()
    existing = _stage_record(job, job.current_stage)
    record = existing.model_copy(update={
        "status": StageWorkStatus.PENDING,
        "qc_status": QCStatus.PENDING,
    })

    logger.info(f"[WORKFLOW] Job {job.id}: QC rejected at {job.current_stage.value} by {user}: {reason}")
    return _commit(
        job, JobAction.QC_REJECT, user,
        f"Rejected: {reason} - Sent back to worker for reprocessing", timestamp,
        stage_status=_with_stage_record(job, job.current_stage, record),
        qc_status=QCStatus.PENDING,
        rejection_reason=reason,
    )


def skip_stage(job: Job, user: str, reason: str, now: Optional[int] = None) -> Job:
    """
    Skip the current stage and advance without a QC gate.

    The current stage is added to skipped_stages (once) and the next stage
    is resolved against the updated set. If nothing remains the job is
    completed.
    """
    if job.current_stage not in SKIPPABLE_STAGES:
        logger.debug(f"[WORKFLOW] Job {job.id}: {job.current_stage.value} cannot be skipped")
        return job

    timestamp = now if now is not None else now_ms()
    skipped = list(job.skipped_stages)
    if job.current_stage not in skipped:
        skipped.append(job.current_stage)
    target = next_stage(job.current_stage, skipped)

    existing = _stage_record(job, job.current_stage)
    record = existing.model_copy(update={"status": StageWorkStatus.SKIPPED})

    logger.info(f"[WORKFLOW] Job {job.id}: {user} skipped {job.current_stage.value} ({reason})")
    return _commit(
        job, JobAction.SKIP, user, f"Skipped {job.current_stage.value}: {reason}", timestamp,
        stage_status=_with_stage_record(job, job.current_stage, record),
        skipped_stages=skipped,
        qc_status=QCStatus.PENDING,
        **_leave_stage(job, target, timestamp),
    )
