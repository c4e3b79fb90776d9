"""
Batch splitting and routing engine.

A Job's quantity is carried by Batches (B1, B2, ...) that move through the
stages independently. The first batch is created lazily when the job first
needs physical production; later batches come from splits and returns.

Rules shared by every operation here:
- An unknown or scrapped batch id is a no-op: the input Job is returned as is.
- Each effective operation appends exactly one entry to the touched batch's
  history (a split also gives the new batch its CREATE entry).
- After every operation the Job's current_stage is recomputed as the most
  advanced stage among all of its batches, scrapped ones included.
- Quantities are conserved: a split or partial return redistributes, never
  creates or drops units.
"""

import logging
import re
from typing import List, Optional

from .history import append_batch_history, make_entry
from .models import Batch, BatchStatus, Job, JobAction, Stage
from .stages import is_terminal, most_advanced, next_stage
from .timing import current_stage_elapsed, next_reminder_at, now_ms

logger = logging.getLogger(__name__)

_BATCH_NUMBER = re.compile(r"^B(\d+)")

# Batch status -> history action recorded by update_batch_status()
_STATUS_ACTIONS = {
    BatchStatus.COMPLETED: JobAction.COMPLETE,
    BatchStatus.REJECTED: JobAction.QC_REJECT,
    BatchStatus.OK_QUALITY: JobAction.QC_APPROVE,
}

# Statuses that (re)start the follow-up reminder clock
_REMINDER_STATUSES = frozenset({BatchStatus.PENDING, BatchStatus.OK_QUALITY})


# ============================================================================
# Shared helpers (also used by returns.py)
# ============================================================================

def batch_number(batch_id: str) -> int:
    """Numeric part of B<n> / B<n>-R, 0 when the id does not match."""
    match = _BATCH_NUMBER.match(batch_id)
    return int(match.group(1)) if match else 0


def next_batch_number(batches: List[Batch]) -> int:
    """One past the highest numeric suffix in use."""
    return max((batch_number(b.id) for b in batches), default=0) + 1


def routable_batch(job: Job, batch_id: str) -> Optional[Batch]:
    """The batch if it exists and can still be routed (not scrapped)."""
    batch = job.get_batch(batch_id)
    if batch is None:
        logger.debug(f"[BATCH] Job {job.id}: unknown batch {batch_id}, no-op")
        return None
    if not batch.is_active:
        logger.debug(f"[BATCH] Job {job.id}: batch {batch_id} is scrapped, no-op")
        return None
    return batch


def replace_batch(batches: List[Batch], updated: Batch) -> List[Batch]:
    return [updated if b.id == updated.id else b for b in batches]


def batch_entry(job: Job, stage: Stage, action: JobAction, user: str, timestamp: int, details: Optional[str]):
    return make_entry(job.id, action, stage, user, timestamp, details)


def project_current_stage(job: Job, batches: List[Batch]) -> Stage:
    """Most advanced stage among all batches, or the job's own stage."""
    return most_advanced((b.stage for b in batches), default=job.current_stage)


def commit_batches(job: Job, batches: List[Batch], timestamp: int) -> Job:
    """
    Build the next Job value from a new batch list.

    Orders batches by id number and re-derives current_stage from them.
    When the projected stage moves, the stage timer is rolled over.
    A completed job keeps its current_stage.
    """
    ordered = sorted(batches, key=lambda b: (batch_number(b.id), b.id))
    projected = project_current_stage(job, ordered)

    updates = {"batches": ordered, "last_updated": timestamp}
    if projected != job.current_stage and not job.is_completed:
        stage_times = dict(job.stage_times)
        elapsed = current_stage_elapsed(job.current_stage_start_time, timestamp)
        stage_times[job.current_stage] = stage_times.get(job.current_stage, 0) + elapsed
        updates["stage_times"] = stage_times
        updates["current_stage"] = projected
        updates["current_stage_start_time"] = timestamp
        logger.info(
            f"[BATCH] Job {job.id}: current stage {job.current_stage.value} -> {projected.value}"
        )
    return job.model_copy(update=updates)


# ============================================================================
# Operations
# ============================================================================

def create_initial_batch(job: Job, now: Optional[int] = None) -> List[Batch]:
    """
    Batches for a job entering production.

    Returns job.batches unchanged when any exist. Otherwise returns a single
    PENDING batch B1 carrying the full total_qty at the job's current stage.
    """
    if job.batches:
        return job.batches

    timestamp = now if now is not None else now_ms()
    return [
        Batch(
            id="B1",
            job_id=job.id,
            stage=job.current_stage,
            quantity=job.total_qty,
            status=BatchStatus.PENDING,
            created_date=timestamp,
            updated_date=timestamp,
            history=[],
        )
    ]


def initialize_batches(job: Job, now: Optional[int] = None) -> Job:
    """
    Give a job its first batch (B1 with the full quantity).

    No-op when the job already has batches or nothing to split.
    """
    if job.batches or job.total_qty <= 0:
        return job

    timestamp = now if now is not None else now_ms()
    logger.info(f"[BATCH] Job {job.id}: initialised B1 with {job.total_qty} units at {job.current_stage.value}")
    return commit_batches(job, create_initial_batch(job, now=timestamp), timestamp)


def update_batch_status(
    job: Job,
    batch_id: str,
    status: BatchStatus,
    user: str,
    reason: Optional[str] = None,
    now: Optional[int] = None,
) -> Job:
    """
    Set a batch's status.

    PENDING and OK_QUALITY restart the follow-up clock: pending_since is
    stamped and next_reminder is set to 09:00 the next day. A reason, when
    given, replaces the batch's rejection_reason.

    Args:
        job: Owning job
        batch_id: Target batch id
        status: New status
        user: Acting user
        reason: Optional rejection reason / note
        now: Optional clock override in milliseconds

    Returns:
        The updated Job, or `job` itself when the batch is unknown or scrapped
    """
    batch = routable_batch(job, batch_id)
    if batch is None:
        return job

    status = BatchStatus(status)
    timestamp = now if now is not None else now_ms()
    updates = {
        "status": status,
        "updated_date": timestamp,
        "rejection_reason": reason or batch.rejection_reason,
    }
    if status in _REMINDER_STATUSES:
        updates["pending_since"] = timestamp
        updates["next_reminder"] = next_reminder_at(timestamp)
    if status == BatchStatus.SCRAPPED:
        updates["is_scrapped"] = True
        updates["scrap_reason"] = reason

    action = _STATUS_ACTIONS.get(status, JobAction.START)
    entry = batch_entry(job, batch.stage, action, user, timestamp, reason)
    updates["history"] = append_batch_history(batch.history, entry)

    logger.info(f"[BATCH] Job {job.id}: {batch_id} {batch.status.value} -> {status.value} by {user}")
    updated = batch.model_copy(update=updates)
    return commit_batches(job, replace_batch(job.batches, updated), timestamp)


def complete_batch_work(job: Job, batch_id: str, user: str, now: Optional[int] = None) -> Job:
    """Mark a batch's work done; it now waits for QC."""
    return update_batch_status(
        job, batch_id, BatchStatus.COMPLETED, user, "Work Completed - Awaiting QC", now=now
    )


def reprocess_batch(job: Job, batch_id: str, user: str, now: Optional[int] = None) -> Job:
    """
    Send a batch back to PENDING for rework at its current stage.

    Used after a batch-level QC rejection. Increments reprocess_count.
    """
    batch = routable_batch(job, batch_id)
    if batch is None:
        return job

    timestamp = now if now is not None else now_ms()
    entry = batch_entry(job, batch.stage, JobAction.START, user, timestamp, "Reprocessing Initiated")
    updated = batch.model_copy(update={
        "status": BatchStatus.PENDING,
        "reprocess_count": batch.reprocess_count + 1,
        "updated_date": timestamp,
        "pending_since": timestamp,
        "next_reminder": next_reminder_at(timestamp),
        "history": append_batch_history(batch.history, entry),
    })

    logger.info(f"[BATCH] Job {job.id}: {batch_id} reprocess #{updated.reprocess_count} by {user}")
    return commit_batches(job, replace_batch(job.batches, updated), timestamp)


def split_batch(job: Job, batch_id: str, done_qty: int, user: str, now: Optional[int] = None) -> Job:
    """
    Split a batch into a COMPLETED part and a new PENDING remainder.

    The original keeps its id with done_qty units; the remainder gets the
    next free B<n> id at the same stage. When done_qty covers the whole
    batch this is a plain status update to COMPLETED.

    done_qty is not checked against the job's unallocated quantity.
    """
    batch = routable_batch(job, batch_id)
    if batch is None:
        return job
    if done_qty <= 0:
        logger.debug(f"[BATCH] Job {job.id}: split of {batch_id} with qty {done_qty}, no-op")
        return job

    if done_qty >= batch.quantity:
        return update_batch_status(
            job, batch_id, BatchStatus.COMPLETED, user, "Full Batch Completed", now=now
        )

    timestamp = now if now is not None else now_ms()
    pending_qty = batch.quantity - done_qty

    done_entry = batch_entry(
        job, batch.stage, JobAction.COMPLETE, user, timestamp, f"Split Completion: {done_qty} units"
    )
    completed = batch.model_copy(update={
        "quantity": done_qty,
        "status": BatchStatus.COMPLETED,
        "updated_date": timestamp,
        "history": append_batch_history(batch.history, done_entry),
    })

    new_id = f"B{next_batch_number(job.batches)}"
    remainder = Batch(
        id=new_id,
        job_id=job.id,
        stage=batch.stage,
        quantity=pending_qty,
        status=BatchStatus.PENDING,
        created_date=timestamp,
        updated_date=timestamp,
        pending_since=timestamp,
        history=[
            batch_entry(job, batch.stage, JobAction.CREATE, user, timestamp, f"Created from split of {batch.id}")
        ],
    )

    logger.info(
        f"[BATCH] Job {job.id}: split {batch_id} -> {batch_id}={done_qty} COMPLETED, {new_id}={pending_qty} PENDING"
    )
    batches = [*replace_batch(job.batches, completed), remainder]
    return commit_batches(job, batches, timestamp)


def move_batch_to_next_stage(job: Job, batch_id: str, user: str, now: Optional[int] = None) -> Job:
    """
    QC-approve a batch and move it to its next stage.

    The next stage is resolved from the batch's own stage with the job's
    skip set. When the pipeline is exhausted the batch is marked COMPLETED
    instead. The job's current_stage is then re-projected from all batches.
    """
    batch = routable_batch(job, batch_id)
    if batch is None:
        return job

    target = next_stage(batch.stage, job.skipped_stages)
    if is_terminal(target):
        return update_batch_status(job, batch_id, BatchStatus.COMPLETED, user, "Process Finished", now=now)

    timestamp = now if now is not None else now_ms()
    entry = batch_entry(
        job, batch.stage, JobAction.QC_APPROVE, user, timestamp,
        f"QC Approved: Moved from {batch.stage.value} to {target.value}",
    )
    moved = batch.model_copy(update={
        "stage": target,
        "status": BatchStatus.PENDING,
        "pending_since": timestamp,
        "next_reminder": next_reminder_at(timestamp),
        "updated_date": timestamp,
        "history": append_batch_history(batch.history, entry),
    })

    logger.info(f"[BATCH] Job {job.id}: {batch_id} {batch.stage.value} -> {target.value} by {user}")
    return commit_batches(job, replace_batch(job.batches, moved), timestamp)


def batches_at_stage(job: Job, stage: Stage) -> List[Batch]:
    """Routable batches currently sitting at `stage`, in id order."""
    return [b for b in job.batches if b.is_active and b.stage == stage]
